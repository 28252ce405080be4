# motion.py
"""
In-place motion classifier.

Exercise reps (squats, lunges, jumping jacks) keep the subject centre almost
still while the body shape changes a lot. Recognising that pattern lets the
zoom controller hold its value instead of "breathing" with every rep.
"""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Optional, Sequence

import numpy as np

from auto_reframe.common import Point, Rect, Size
from auto_reframe.config import Tunables

log = logging.getLogger(__name__)

CENTER_WINDOW = 20
ASPECT_WINDOW = 10
ASPECT_SAMPLES = 8
PRE_SAMPLES = 3
PRE_PHASE_COUNT = 2


class MotionPhase(Enum):
    NORMAL = "normal"
    PRE_LOCKED = "pre_locked"
    LOCKED = "locked"


@dataclass
class ClassifierState:
    centers: Deque[Point] = field(default_factory=lambda: deque(maxlen=CENTER_WINDOW))
    aspects: Deque[float] = field(default_factory=lambda: deque(maxlen=ASPECT_WINDOW))
    in_place: bool = False
    position_stable_frames: int = 0
    pre_in_place_frames: int = 0
    zoom_frozen: bool = False

    @property
    def phase(self) -> MotionPhase:
        if self.in_place:
            return MotionPhase.LOCKED
        if self.zoom_frozen or self.pre_in_place_frames > PRE_PHASE_COUNT:
            return MotionPhase.PRE_LOCKED
        return MotionPhase.NORMAL

    def clear(self) -> None:
        self.centers.clear()
        self.aspects.clear()
        self.in_place = False
        self.position_stable_frames = 0
        self.pre_in_place_frames = 0
        self.zoom_frozen = False


def aspect_change(aspects: Sequence[float]) -> float:
    """Relative spread ``(max - min) / mean`` of a run of aspect ratios."""
    if not aspects:
        return 0.0
    arr = np.asarray(aspects, dtype=float)
    mean = float(arr.mean())
    if mean <= 1e-9:
        return 0.0
    return float((arr.max() - arr.min()) / mean)


def position_spread(centers: Sequence[Point]) -> float:
    """``sqrt(var_x + var_y)`` of normalised centres."""
    if not centers:
        return 0.0
    arr = np.asarray(centers, dtype=float)
    return float(np.sqrt(arr[:, 0].var() + arr[:, 1].var()))


class InPlaceMotionClassifier:
    def __init__(self, tunables: Tunables):
        self.tunables = tunables

    def update(
        self,
        state: ClassifierState,
        stable_box: Rect,
        shape_box: Optional[Rect],
        sensor: Size,
        confidence: float,
    ) -> MotionPhase:
        """
        Feed one frame. Position comes from the stable box, body shape from
        ``shape_box`` (the raw detection when available); smoothing would
        flatten the aspect swings of a rep.
        """
        t = self.tunables
        before = state.phase

        if confidence <= t.classify_min_confidence:
            state.position_stable_frames = max(0, state.position_stable_frames - 1)
            if state.position_stable_frames == 0:
                state.in_place = False
            state.pre_in_place_frames = 0
            state.zoom_frozen = False
            return self._report(before, state)

        sw, sh = sensor
        shape = shape_box if shape_box is not None and not shape_box.is_empty() else stable_box
        state.centers.append((stable_box.mid_x / max(sw, 1), stable_box.mid_y / max(sh, 1)))
        state.aspects.append(shape.h / max(shape.w, 1e-6))

        self._update_pre_detection(state)

        n = t.in_place_frames
        if len(state.centers) < n or len(state.aspects) < ASPECT_SAMPLES:
            state.in_place = False
            return self._report(before, state)

        recent_centers = list(state.centers)[-n:]
        recent_aspects = list(state.aspects)[-ASPECT_SAMPLES:]
        spread = position_spread(recent_centers)
        change = aspect_change(recent_aspects)

        if (
            spread < t.position_stable_threshold
            and change > t.aspect_change_threshold
            and confidence > t.count_min_confidence
        ):
            state.position_stable_frames += 1
        else:
            state.position_stable_frames = 0

        if not state.in_place:
            if (
                state.position_stable_frames > n + t.in_place_entry_margin
                and change > t.aspect_change_threshold * t.in_place_entry_aspect_factor
            ):
                state.in_place = True
        elif state.position_stable_frames <= n // 2:
            state.in_place = False

        return self._report(before, state)

    # ------------------------------------------------------------------ #
    #   P R E - D E T E C T I O N
    # ------------------------------------------------------------------ #
    def _update_pre_detection(self, state: ClassifierState) -> None:
        t = self.tunables
        if len(state.centers) < PRE_SAMPLES or len(state.aspects) < PRE_SAMPLES:
            return

        pts = np.asarray(list(state.centers)[-PRE_SAMPLES:], dtype=float)
        mean_dist = float(np.linalg.norm(pts - pts.mean(axis=0), axis=1).mean())
        change = aspect_change(list(state.aspects)[-PRE_SAMPLES:])

        if mean_dist < t.pre_in_place_threshold and change > t.aspect_change_threshold:
            state.pre_in_place_frames += 1
            if state.pre_in_place_frames > t.pre_in_place_frames:
                state.zoom_frozen = True
        else:
            state.pre_in_place_frames = 0
            if not state.in_place:
                state.zoom_frozen = False

    @staticmethod
    def _report(before: MotionPhase, state: ClassifierState) -> MotionPhase:
        after = state.phase
        if after is not before:
            log.debug("Motion phase %s -> %s (stable=%d pre=%d)",
                      before.value, after.value,
                      state.position_stable_frames, state.pre_in_place_frames)
        return after
