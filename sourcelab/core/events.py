"""
Event system for the annotation editor.

Lets the store, the sync engine and the host shell notify each other about
state changes without depending on a UI framework.
"""

from __future__ import annotations
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass, field
import logging

logger = logging.getLogger(__name__)


class EventType(Enum):
    # Store events
    ANNOTATION_ADDED = "annotation_added"
    ANNOTATION_UPDATED = "annotation_updated"
    ANNOTATION_REMOVED = "annotation_removed"
    ANNOTATION_REKEYED = "annotation_rekeyed"
    ANNOTATIONS_LOADED = "annotations_loaded"
    SYNC_STATUS_CHANGED = "sync_status_changed"

    # Editor events
    TOOL_MODE_CHANGED = "tool_mode_changed"
    ZOOM_CHANGED = "zoom_changed"
    SELECTION_CHANGED = "selection_changed"
    DRAW_STATE_CHANGED = "draw_state_changed"
    DOCUMENT_CHANGED = "document_changed"

    # Sync engine events
    SYNC_STARTED = "sync_started"
    SYNC_COMPLETED = "sync_completed"
    SYNC_FAILED = "sync_failed"


# Store events that count as local edits (they restart the debounce timer)
MUTATION_EVENTS = frozenset({
    EventType.ANNOTATION_ADDED,
    EventType.ANNOTATION_UPDATED,
    EventType.ANNOTATION_REMOVED,
})


@dataclass
class AnnotationEvent:
    event_type: EventType
    data: Dict[str, Any] = field(default_factory=dict)


Listener = Callable[[AnnotationEvent], None]


class EventEmitter:
    """Minimal pub/sub: listeners are called synchronously in subscription order."""

    def __init__(self):
        self._listeners: Dict[EventType, List[Listener]] = {}

    def on(self, event_type: EventType, callback: Listener):
        self._listeners.setdefault(event_type, []).append(callback)

    def on_many(self, event_types, callback: Listener):
        for et in event_types:
            self.on(et, callback)

    def off(self, event_type: EventType, callback: Listener):
        if callback in self._listeners.get(event_type, []):
            self._listeners[event_type].remove(callback)

    def emit(self, event_type: EventType, data: Optional[Dict[str, Any]] = None):
        event = AnnotationEvent(event_type, data or {})
        for callback in list(self._listeners.get(event_type, [])):
            try:
                callback(event)
            except Exception:
                # A broken listener must not abort the mutation that emitted the event
                logger.exception("Error in %s listener", event_type.value)

    def clear(self):
        self._listeners.clear()
