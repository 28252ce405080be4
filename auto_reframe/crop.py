# crop.py
"""Aspect-locked crop rectangle from zoom + subject box."""
from __future__ import annotations

import math
from typing import Optional, Tuple

from auto_reframe.common import Point, Rect, Size
from auto_reframe.helpers import clamp


class CropRectComputer:
    """
    ``aspect`` is output height / width. The crop is always inside the
    sensor, keeps the aspect (to integer rounding) and slides to cover the
    stable box whenever it is large enough to.
    """
    def __init__(self, aspect: float):
        self.aspect = aspect

    def size_for_zoom(self, zoom: float, sensor: Size) -> Tuple[float, float]:
        sw, sh = sensor
        w = sw / max(zoom, 1e-6)
        h = w * self.aspect
        if h > sh:
            h = float(sh)
            w = h / self.aspect
        if w > sw:
            w = float(sw)
            h = w * self.aspect
        return w, h

    def fit_zoom(self, zoom: float, center: Point, sensor: Size) -> float:
        """
        Zoom whose crop fits the sensor around ``center``.

        Bounded to ``[1, zoom]``: an off-centre crop leaves less room around
        ``center`` than the crop needs, so the request stands and the crop
        is slid back inside instead.
        """
        if zoom <= 1.0:
            return zoom
        sw, sh = sensor
        cx, cy = center
        w, h = self.size_for_zoom(zoom, sensor)
        inside = w / 2.0 <= cx <= sw - w / 2.0 and h / 2.0 <= cy <= sh - h / 2.0
        if inside:
            return zoom

        allow_w = 2.0 * min(cx, sw - cx)
        allow_h = allow_w * self.aspect
        max_h = 2.0 * min(cy, sh - cy)
        if allow_h > max_h:
            allow_w = max_h / max(self.aspect, 1e-6)
        return clamp(sw / max(allow_w, 1.0), 1.0, zoom)

    def compute(
        self,
        zoom: float,
        box: Optional[Rect],
        sensor: Size,
        center: Optional[Point] = None,
    ) -> Tuple[Rect, float]:
        """
        Return ``(crop, zoom)`` where ``zoom`` is what the crop was built
        with. ``center`` overrides the box centre (locked framing).
        """
        sw, sh = sensor
        if box is None:
            w, h = self._integral_size(*self.size_for_zoom(1.0, sensor), sensor)
            return Rect(float((sw - w) // 2), float((sh - h) // 2), float(w), float(h)), zoom

        cx, cy = center if center is not None else box.center
        zoom = self.fit_zoom(zoom, (cx, cy), sensor)
        w, h = self._integral_size(*self.size_for_zoom(zoom, sensor), sensor)

        x = cx - w / 2.0
        y = cy - h / 2.0
        # Slide so the box is covered, then back inside the sensor.
        if w >= box.w:
            x = clamp(x, box.max_x - w, box.x)
        if h >= box.h:
            y = clamp(y, box.max_y - h, box.y)
        x = clamp(x, 0.0, sw - w)
        y = clamp(y, 0.0, sh - h)

        return Rect(float(math.floor(x)), float(math.floor(y)), float(w), float(h)), zoom

    def _integral_size(self, w: float, h: float, sensor: Size) -> Tuple[int, int]:
        iw = int(clamp(round(w), 1, sensor[0]))
        ih = int(clamp(round(iw * self.aspect), 1, sensor[1]))
        return iw, ih
