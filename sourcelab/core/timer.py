from __future__ import annotations
from typing import Any, Callable, Optional, Protocol
import asyncio


class TimerHandle(Protocol):
    def cancel(self) -> Any: ...


# (delay_seconds, callback) -> handle; asyncio's loop.call_later fits this shape
CallLater = Callable[[float, Callable[[], None]], TimerHandle]


class DebounceTimer:
    """Single-slot cancellable timer. Scheduling again replaces the outstanding one.

    ``call_later`` defaults to the running asyncio loop; tests pass a fake clock.
    """

    def __init__(self, delay_ms: float, callback: Callable[[], None], call_later: Optional[CallLater] = None):
        self.delay_ms = delay_ms
        self._callback = callback
        self._call_later = call_later
        self._handle: Optional[TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self):
        self.cancel()
        call_later = self._call_later or asyncio.get_running_loop().call_later
        self._handle = call_later(self.delay_ms / 1000.0, self._fire)

    def cancel(self):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def fire_now(self):
        self.cancel()
        self._callback()

    def _fire(self):
        self._handle = None
        self._callback()
