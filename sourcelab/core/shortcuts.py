from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class KeyEvent:
    key: str
    ctrl: bool = False
    meta: bool = False

    @property
    def command(self) -> bool:
        return self.ctrl or self.meta


@dataclass
class ShortcutHandlers:
    on_select_tool: Optional[Callable[[], None]] = None
    on_annotate_tool: Optional[Callable[[], None]] = None
    on_zoom_in: Optional[Callable[[], None]] = None
    on_zoom_out: Optional[Callable[[], None]] = None
    on_delete: Optional[Callable[[], None]] = None


class ShortcutDispatcher:
    """Maps global key presses to editor actions.

    The host shell calls ``register()`` when its window is live and feeds every
    key press to ``dispatch``; nothing happens while ``is_text_input_focused()``
    is true, so typing a note never switches tools or deletes the selection.
    """

    def __init__(self, is_text_input_focused: Callable[[], bool], handlers: ShortcutHandlers):
        self._is_text_input_focused = is_text_input_focused
        self.handlers = handlers
        self._registered = False
        self._dispatching = False

    @property
    def registered(self) -> bool:
        return self._registered

    def register(self):
        self._registered = True

    def unregister(self):
        self._registered = False

    def dispatch(self, event: KeyEvent) -> bool:
        """Run the bound action. Returns True when the key was consumed."""
        if not self._registered or self._dispatching or self._is_text_input_focused():
            return False
        handler = self._resolve(event)
        if handler is None:
            return False
        self._dispatching = True
        try:
            handler()
        finally:
            self._dispatching = False
        return True

    def _resolve(self, event: KeyEvent) -> Optional[Callable[[], None]]:
        key = event.key.lower()
        h = self.handlers
        if key in ("v", "escape"):
            return h.on_select_tool
        if key == "a":
            return h.on_annotate_tool
        if key in ("=", "+"):
            return h.on_zoom_in if event.command else None
        if key == "-":
            return h.on_zoom_out if event.command else None
        if key in ("delete", "backspace"):
            return h.on_delete
        return None
