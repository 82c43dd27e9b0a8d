from __future__ import annotations
from typing import Tuple

# Zoom scale bounds; every scale leaving this module is clamped to [MIN_SCALE, MAX_SCALE]
MIN_SCALE = 0.5
MAX_SCALE = 3.0
DEFAULT_SCALE = 1.0
ZOOM_IN_FACTOR = 1.2
ZOOM_OUT_FACTOR = 0.8

Point = Tuple[float, float]


def clamp_scale(scale: float) -> float:
    return max(MIN_SCALE, min(MAX_SCALE, scale))


def to_image_space(pos: Point, scale: float) -> Point:
    """Map a pointer position on the zoomed canvas to image-space pixels."""
    s = clamp_scale(scale)
    return pos[0] / s, pos[1] / s


def to_device_space(pos: Point, scale: float) -> Point:
    s = clamp_scale(scale)
    return pos[0] * s, pos[1] * s


def zoom_in(scale: float) -> float:
    return clamp_scale(min(scale * ZOOM_IN_FACTOR, MAX_SCALE))


def zoom_out(scale: float) -> float:
    return clamp_scale(max(scale * ZOOM_OUT_FACTOR, MIN_SCALE))


def reset_zoom() -> float:
    return DEFAULT_SCALE


__all__ = [
    "MIN_SCALE", "MAX_SCALE", "DEFAULT_SCALE",
    "clamp_scale", "to_image_space", "to_device_space", "zoom_in", "zoom_out", "reset_zoom",
]
