# helpers.py
"""Small numeric utilities and smoothers that don’t fit elsewhere."""
from __future__ import annotations

from collections import deque
from typing import Deque, Iterable, Optional, Sequence, Tuple

import numpy as np

from auto_reframe.common import Point, Rect


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def smoothstep(x: float, edge0: float, edge1: float) -> float:
    """Cubic Hermite ramp: 0 below ``edge0``, 1 above ``edge1``."""
    span = edge1 - edge0
    if abs(span) < 1e-9:
        return 1.0 if x >= edge1 else 0.0
    t = clamp((x - edge0) / span, 0.0, 1.0)
    return t * t * (3.0 - 2.0 * t)


def iou(a: Rect, b: Rect) -> float:
    inter = a.intersection(b)
    if inter is None:
        return 0.0
    i = inter.area
    u = a.area + b.area - i
    return i / u if u > 0 else 0.0


def trimmed_rms(samples: Iterable[float], trim: int = 2) -> float:
    """RMS after dropping the ``trim`` lowest and highest samples."""
    arr = np.sort(np.asarray(list(samples), dtype=float))
    if arr.size > 2 * trim:
        arr = arr[trim: arr.size - trim]
    if arr.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(arr * arr)))


class ExponentialSmoother:
    """
    Single-pole exponential smoother for a 2-D point.
    The first sample initialises the state.
    """
    def __init__(self, alpha: float = 0.2):
        self.alpha = alpha
        self.state: Optional[Tuple[float, float]] = None

    def update(self, point: Point) -> Point:
        x, y = point
        if self.state is None:
            self.state = (x, y)
        else:
            sx, sy = self.state
            self.state = (
                self.alpha * x + (1.0 - self.alpha) * sx,
                self.alpha * y + (1.0 - self.alpha) * sy,
            )
        return self.state

    def reset(self) -> None:
        self.state = None


class MotionPredictor:
    """
    Conservative one-step linear predictor.

    Keeps the last ``history`` positions and velocities and, once three
    velocities are known, extrapolates ``lead`` of the mean velocity one
    ``dt`` ahead.
    """
    def __init__(self, history: int = 5, lead: float = 0.3):
        self.lead = lead
        self.positions: Deque[Tuple[float, float]] = deque(maxlen=history)
        self.velocities: Deque[Tuple[float, float]] = deque(maxlen=history)

    def update(self, position: Point, dt: float) -> Point:
        dt = max(dt, 1e-3)
        x, y = position
        if self.positions:
            px, py = self.positions[-1]
            self.velocities.append(((x - px) / dt, (y - py) / dt))
        self.positions.append((x, y))

        if len(self.velocities) >= 3:
            recent = list(self.velocities)[-3:]
            vx = sum(v[0] for v in recent) / 3.0
            vy = sum(v[1] for v in recent) / 3.0
            return (x + vx * dt * self.lead, y + vy * dt * self.lead)
        return (x, y)

    def reset(self) -> None:
        self.positions.clear()
        self.velocities.clear()


def rect_from_keypoints(
    points: Sequence[Tuple[float, float, float]],
    *,
    min_confidence: float = 0.2,
    pad_ratio: float = 0.08,
    bounds: Optional[Tuple[int, int]] = None,
) -> Optional[Tuple[Rect, float]]:
    """
    Build a subject rect from per-joint ``(x, y, confidence)`` triples.

    Joints below ``min_confidence`` are ignored. The rect is padded by
    ``pad_ratio`` of its size and clipped to ``bounds`` when given.
    Returns ``(rect, mean_confidence)`` or ``None`` when fewer than two
    joints survive.
    """
    kept = [(x, y, c) for x, y, c in points if c >= min_confidence]
    if len(kept) < 2:
        return None
    xs = np.array([p[0] for p in kept], dtype=float)
    ys = np.array([p[1] for p in kept], dtype=float)
    conf = float(np.mean([p[2] for p in kept]))

    x0, x1 = float(xs.min()), float(xs.max())
    y0, y1 = float(ys.min()), float(ys.max())
    pad_x = (x1 - x0) * pad_ratio
    pad_y = (y1 - y0) * pad_ratio
    x0, x1 = x0 - pad_x, x1 + pad_x
    y0, y1 = y0 - pad_y, y1 + pad_y

    if bounds is not None:
        bw, bh = bounds
        x0, x1 = clamp(x0, 0.0, bw), clamp(x1, 0.0, bw)
        y0, y1 = clamp(y0, 0.0, bh), clamp(y1, 0.0, bh)
    if x1 - x0 <= 0 or y1 - y0 <= 0:
        return None
    return Rect(x0, y0, x1 - x0, y1 - y0), clamp(conf, 0.0, 1.0)


def map_point_to_crop(point: Point, crop: Rect) -> Optional[Point]:
    """Map a sensor-space point into the unit square of ``crop`` (None if outside)."""
    u = (point[0] - crop.x) / max(crop.w, 1e-6)
    v = (point[1] - crop.y) / max(crop.h, 1e-6)
    if not (np.isfinite(u) and np.isfinite(v)) or not (0.0 <= u <= 1.0 and 0.0 <= v <= 1.0):
        return None
    return (float(u), float(v))
