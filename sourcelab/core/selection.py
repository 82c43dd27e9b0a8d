from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Optional, Union

from .annotations import Geometry, ToolMode
from .transform import Point, to_image_space

# "move" drags the whole rectangle; the compass handles resize from that edge/corner
HANDLES = ("move", "n", "s", "e", "w", "ne", "nw", "se", "sw")


@dataclass(frozen=True)
class DragState:
    annotation_id: str
    handle: str
    pointer_origin: Point  # image space
    origin: Geometry
    current: Geometry

    @property
    def is_resize(self) -> bool:
        return self.handle != "move"

    def patch(self) -> dict:
        """Fields to write back: position only for a move, the full box for a resize."""
        if self.is_resize:
            return self.current.as_patch()
        return {"x": self.current.x, "y": self.current.y}


@dataclass(frozen=True)
class SelectionState:
    selected_id: Optional[str] = None
    drag: Optional[DragState] = None
    finished: Optional[DragState] = None  # drag completed by the last DragEnd, still to be applied


# --- events ---

@dataclass(frozen=True)
class Select:
    annotation_id: str


@dataclass(frozen=True)
class EmptyCanvasDown:
    pass


@dataclass(frozen=True)
class DragStart:
    annotation_id: str
    x: float
    y: float
    geometry: Geometry
    handle: str = "move"


@dataclass(frozen=True)
class DragMove:
    x: float
    y: float


@dataclass(frozen=True)
class DragEnd:
    x: Optional[float] = None
    y: Optional[float] = None


@dataclass(frozen=True)
class AnnotationDeleted:
    annotation_id: str


@dataclass(frozen=True)
class ModeChanged:
    mode: ToolMode


@dataclass(frozen=True)
class Rekeyed:
    old_id: str
    new_id: str


SelectionEvent = Union[Select, EmptyCanvasDown, DragStart, DragMove, DragEnd, AnnotationDeleted, ModeChanged, Rekeyed]

NOTHING_SELECTED = SelectionState()


def transition(state: SelectionState, event: SelectionEvent, mode: ToolMode, scale: float) -> SelectionState:
    if state.finished is not None:
        state = replace(state, finished=None)

    if isinstance(event, Select):
        if mode != ToolMode.SELECT:
            return state
        return SelectionState(selected_id=event.annotation_id)

    if isinstance(event, (EmptyCanvasDown, ModeChanged)):
        return NOTHING_SELECTED

    if isinstance(event, AnnotationDeleted):
        if event.annotation_id in (state.selected_id, state.drag.annotation_id if state.drag else None):
            return NOTHING_SELECTED
        return state

    if isinstance(event, Rekeyed):
        selected = event.new_id if state.selected_id == event.old_id else state.selected_id
        drag = state.drag
        if drag is not None and drag.annotation_id == event.old_id:
            drag = replace(drag, annotation_id=event.new_id)
        return SelectionState(selected_id=selected, drag=drag)

    if isinstance(event, DragStart):
        if mode != ToolMode.SELECT or event.handle not in HANDLES:
            return state
        drag = DragState(
            annotation_id=event.annotation_id,
            handle=event.handle,
            pointer_origin=to_image_space((event.x, event.y), scale),
            origin=event.geometry,
            current=event.geometry,
        )
        return SelectionState(selected_id=event.annotation_id, drag=drag)

    if isinstance(event, DragMove):
        if state.drag is None:
            return state
        return replace(state, drag=_dragged(state.drag, event.x, event.y, scale))

    if isinstance(event, DragEnd):
        if state.drag is None:
            return state
        drag = state.drag
        if event.x is not None and event.y is not None:
            drag = _dragged(drag, event.x, event.y, scale)
        if drag.current == drag.origin:
            return SelectionState(selected_id=state.selected_id)
        return SelectionState(selected_id=state.selected_id, finished=drag)

    raise TypeError(f"Unsupported selection event: {event!r}")


def _dragged(drag: DragState, x: float, y: float, scale: float) -> DragState:
    px, py = to_image_space((x, y), scale)
    dx, dy = px - drag.pointer_origin[0], py - drag.pointer_origin[1]
    g = drag.origin
    if drag.handle == "move":
        return replace(drag, current=Geometry(x=g.x + dx, y=g.y + dy, width=g.width, height=g.height))
    x0, y0, w, h = g.x, g.y, g.width, g.height
    if "e" in drag.handle:
        w += dx
    if "w" in drag.handle:
        x0 += dx
        w -= dx
    if "s" in drag.handle:
        h += dy
    if "n" in drag.handle:
        y0 += dy
        h -= dy
    return replace(drag, current=Geometry(x=x0, y=y0, width=w, height=h).normalize())
