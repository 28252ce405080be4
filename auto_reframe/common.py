# common.py
"""Objects that are shared across multiple modules."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Optional, Tuple

Point = Tuple[float, float]
Size = Tuple[int, int]


@dataclass(frozen=True)
class Rect:
    """Axis-aligned box in sensor pixels, top-left origin."""
    x: float
    y: float
    w: float
    h: float

    @classmethod
    def from_center(cls, cx: float, cy: float, w: float, h: float) -> "Rect":
        return cls(cx - w / 2.0, cy - h / 2.0, w, h)

    @classmethod
    def sensor(cls, size: Size) -> "Rect":
        return cls(0.0, 0.0, float(size[0]), float(size[1]))

    @property
    def max_x(self) -> float:
        return self.x + self.w

    @property
    def max_y(self) -> float:
        return self.y + self.h

    @property
    def mid_x(self) -> float:
        return self.x + self.w / 2.0

    @property
    def mid_y(self) -> float:
        return self.y + self.h / 2.0

    @property
    def center(self) -> Point:
        return (self.mid_x, self.mid_y)

    @property
    def area(self) -> float:
        return max(0.0, self.w) * max(0.0, self.h)

    def is_empty(self) -> bool:
        return (
            self.w <= 0
            or self.h <= 0
            or not all(math.isfinite(v) for v in (self.x, self.y, self.w, self.h))
        )

    def intersection(self, other: "Rect") -> Optional["Rect"]:
        """Overlap of two rects, or ``None`` when they do not overlap."""
        x0 = max(self.x, other.x)
        y0 = max(self.y, other.y)
        x1 = min(self.max_x, other.max_x)
        y1 = min(self.max_y, other.max_y)
        if x1 <= x0 or y1 <= y0:
            return None
        return Rect(x0, y0, x1 - x0, y1 - y0)

    def rounded(self) -> "Rect":
        """Snap each edge to the nearest integer pixel."""
        x0 = round(self.x)
        y0 = round(self.y)
        x1 = round(self.max_x)
        y1 = round(self.max_y)
        return Rect(float(x0), float(y0), float(x1 - x0), float(y1 - y0))

    def contains(self, other: "Rect", tol: float = 1e-6) -> bool:
        return (
            other.x >= self.x - tol
            and other.y >= self.y - tol
            and other.max_x <= self.max_x + tol
            and other.max_y <= self.max_y + tol
        )

    def as_int_tuple(self) -> Tuple[int, int, int, int]:
        return (int(round(self.x)), int(round(self.y)), int(round(self.w)), int(round(self.h)))


@dataclass(frozen=True)
class Detection:
    """One detector hit: subject rect in sensor pixels plus confidence in [0, 1]."""
    rect: Rect
    confidence: float


@dataclass(frozen=True)
class FrameInput:
    """
    A single captured frame.
    ``image`` may be ``None`` when only geometry is needed (offline replays, tests).
    """
    width: int
    height: int
    timestamp: float
    image: Optional[Any] = None

    @property
    def size(self) -> Size:
        return (self.width, self.height)


@dataclass(frozen=True)
class FrameResult:
    """
    A single-frame snapshot of the reframing engine.
    All rects are in *sensor* pixel space; ``rendered`` is in output space.
    """
    fps: float
    zoom: float
    confidence: float
    raw_box: Optional[Rect]
    filtered_box: Optional[Rect]
    stable_box: Optional[Rect]
    crop_rect: Rect
    rendered: Optional[Any]
    timestamp: float
    sensor_size: Size
    phase: str
