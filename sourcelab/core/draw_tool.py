from __future__ import annotations
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Union

from .annotations import Category, Geometry, ToolMode, CATEGORY_COLORS, DEFAULT_CATEGORY, DEFAULT_COLOR, DEFAULT_TEXT
from .errors import ValidationFailure
from .transform import Point, to_image_space

# Rectangles with either side at or below this many image-space pixels are discarded
MIN_DRAW_SIZE = 10.0


class DrawPhase(str, Enum):
    IDLE = "idle"
    DRAWING = "drawing"
    PENDING_COMMIT = "pending_commit"


@dataclass(frozen=True)
class Draft:
    geometry: Geometry
    text: str = DEFAULT_TEXT
    category: Category = DEFAULT_CATEGORY
    color: str = DEFAULT_COLOR


@dataclass(frozen=True)
class DrawState:
    phase: DrawPhase = DrawPhase.IDLE
    anchor: Optional[Point] = None     # image space
    width: float = 0.0                 # signed extent while drawing
    height: float = 0.0
    pending: Optional[Draft] = None    # set in PENDING_COMMIT
    committed: Optional[Draft] = None  # set on the IDLE state produced by a commit

    @property
    def preview(self) -> Optional[Geometry]:
        if self.phase == DrawPhase.DRAWING and self.anchor is not None:
            return Geometry(x=self.anchor[0], y=self.anchor[1], width=self.width, height=self.height).normalize()
        if self.pending is not None:
            return self.pending.geometry
        return None


# --- events (pointer positions are canvas/device coordinates) ---

@dataclass(frozen=True)
class PointerDown:
    x: float
    y: float
    on_annotation: bool = False


@dataclass(frozen=True)
class PointerMove:
    x: float
    y: float


@dataclass(frozen=True)
class PointerUp:
    x: Optional[float] = None
    y: Optional[float] = None


@dataclass(frozen=True)
class Cancel:
    pass


@dataclass(frozen=True)
class Commit:
    text: str
    category: Union[Category, str, None] = None
    color: Optional[str] = None


DrawEvent = Union[PointerDown, PointerMove, PointerUp, Cancel, Commit]

IDLE = DrawState()


def transition(state: DrawState, event: DrawEvent, mode: ToolMode, scale: float) -> DrawState:
    """Pure draw-tool transition. Returns a new state; never mutates ``state``."""
    if state.committed is not None:
        state = replace(state, committed=None)

    if isinstance(event, PointerDown):
        if state.phase != DrawPhase.IDLE or mode != ToolMode.ANNOTATE or event.on_annotation:
            return state
        return DrawState(phase=DrawPhase.DRAWING, anchor=to_image_space((event.x, event.y), scale))

    if isinstance(event, PointerMove):
        if state.phase != DrawPhase.DRAWING:
            return state
        return _extend(state, event.x, event.y, scale)

    if isinstance(event, PointerUp):
        if state.phase != DrawPhase.DRAWING:
            return state
        if event.x is not None and event.y is not None:
            state = _extend(state, event.x, event.y, scale)
        if abs(state.width) <= MIN_DRAW_SIZE or abs(state.height) <= MIN_DRAW_SIZE:
            return IDLE
        return DrawState(phase=DrawPhase.PENDING_COMMIT, pending=Draft(geometry=state.preview))

    if isinstance(event, Cancel):
        return IDLE if state.phase != DrawPhase.IDLE else state

    if isinstance(event, Commit):
        if state.phase != DrawPhase.PENDING_COMMIT:
            return state
        text = event.text.strip()
        if not text:
            raise ValidationFailure("Annotation text must not be empty")
        try:
            category = Category(event.category) if event.category is not None else state.pending.category
        except ValueError:
            raise ValidationFailure(f"Unknown category: {event.category!r}")
        draft = Draft(
            geometry=state.pending.geometry,
            text=text,
            category=category,
            color=event.color or (CATEGORY_COLORS[category] if event.category is not None else state.pending.color),
        )
        return DrawState(committed=draft)

    raise TypeError(f"Unsupported draw event: {event!r}")


def _extend(state: DrawState, x: float, y: float, scale: float) -> DrawState:
    cx, cy = to_image_space((x, y), scale)
    ax, ay = state.anchor
    return replace(state, width=cx - ax, height=cy - ay)
