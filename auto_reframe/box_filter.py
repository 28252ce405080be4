# box_filter.py
"""Four scalar Kalman filters (cx, cy, w, h) with IoU-gated soft re-anchoring."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import numpy as np
from filterpy.kalman import KalmanFilter

from auto_reframe.common import Rect
from auto_reframe.config import Tunables
from auto_reframe.helpers import clamp, iou, lerp

IOU_UPDATE_THRESHOLD = 0.05
SOFT_RESET_MIN_RATIO = 0.05
SOFT_RESET_MAX_RATIO = 0.20
SOFT_RESET_IOU_GAIN = 4.0

INITIAL_VARIANCE = 1.0
SOFT_RESET_VARIANCE_BUMP = 0.1

# Width/height change slower than the centre.
SIZE_PROCESS_NOISE_SCALE = 0.5
SIZE_MEASUREMENT_NOISE_SCALE = 0.8


class ScalarKalman:
    """1-state constant-position filter built on filterpy."""

    def __init__(self, process_noise: float, measurement_noise: float, value: float = 0.0):
        self.kf = KalmanFilter(dim_x=1, dim_z=1)
        self.kf.F = np.array([[1.0]])
        self.kf.H = np.array([[1.0]])
        self.set_noise(process_noise, measurement_noise)
        self.kf.x = np.array([[float(value)]])
        self.kf.P = np.array([[INITIAL_VARIANCE]])

    def set_noise(self, process_noise: float, measurement_noise: float) -> None:
        self.kf.Q = np.array([[float(process_noise)]])
        self.kf.R = np.array([[float(measurement_noise)]])

    @property
    def value(self) -> float:
        return float(self.kf.x[0, 0])

    @property
    def variance(self) -> float:
        return float(self.kf.P[0, 0])

    def update(self, measurement: float) -> float:
        self.kf.predict()
        self.kf.update(float(measurement))
        return self.value

    def blend(self, measurement: float, ratio: float) -> float:
        """
        Pull the estimate toward ``measurement`` by ``ratio``.
        ``ratio >= 1`` is a hard reset: state = measurement, covariance reinitialised.
        """
        ratio = clamp(ratio, 0.0, 1.0)
        self.kf.x = np.array([[lerp(self.value, float(measurement), ratio)]])
        if ratio >= 1.0:
            self.kf.P = np.array([[INITIAL_VARIANCE]])
        else:
            bumped = min(self.variance + SOFT_RESET_VARIANCE_BUMP, INITIAL_VARIANCE)
            self.kf.P = np.array([[max(bumped, 0.0)]])
        return self.value


@dataclass
class BoxFilterState:
    filters: Optional[List[ScalarKalman]] = None   # cx, cy, w, h
    last: Optional[Rect] = None
    needs_reinit: bool = False


class BoxFilter:
    def __init__(self, tunables: Tunables):
        self.tunables = tunables

    def _noise(self, index: int) -> tuple[float, float]:
        q = self.tunables.kalman_process_noise
        r = self.tunables.kalman_measurement_noise
        if index >= 2:
            return q * SIZE_PROCESS_NOISE_SCALE, r * SIZE_MEASUREMENT_NOISE_SCALE
        return q, r

    def apply_tunables(self, tunables: Tunables, state: Optional[BoxFilterState] = None) -> None:
        """Swap noise terms in place; filter estimates survive."""
        self.tunables = tunables
        if state is not None and state.filters is not None:
            for i, f in enumerate(state.filters):
                f.set_noise(*self._noise(i))

    @staticmethod
    def blend_ratio(overlap: float) -> float:
        return clamp(overlap * SOFT_RESET_IOU_GAIN, SOFT_RESET_MIN_RATIO, SOFT_RESET_MAX_RATIO)

    def update(self, state: BoxFilterState, measurement: Rect) -> Rect:
        """Fold one raw detection into the filters and return the smoothed rect."""
        if state.filters is None:
            state.filters = [ScalarKalman(*self._noise(i)) for i in range(4)]

        z = (measurement.mid_x, measurement.mid_y, measurement.w, measurement.h)

        ratio: Optional[float]
        if state.last is None or state.needs_reinit:
            ratio = 1.0
        else:
            overlap = iou(measurement, state.last)
            ratio = None if overlap > IOU_UPDATE_THRESHOLD else self.blend_ratio(overlap)

        for f, value in zip(state.filters, z):
            if ratio is None:
                f.update(value)
            else:
                f.blend(value, ratio)

        cx, cy, w, h = (f.value for f in state.filters)
        out = Rect.from_center(cx, cy, max(w, 1.0), max(h, 1.0))
        state.last = out
        state.needs_reinit = False
        return out
