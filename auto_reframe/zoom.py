# zoom.py
"""
Three-tier zoom control: locked (in place), pre-locked (likely in place)
and normal (width-ratio tracking with confidence-scaled rate limits).
"""
from __future__ import annotations

import logging

from auto_reframe.common import Rect, Size
from auto_reframe.config import Tunables
from auto_reframe.helpers import clamp, lerp
from auto_reframe.motion import MotionPhase
from auto_reframe.state import EngineState, Locked, Normal, PreLocked

log = logging.getLogger(__name__)

MIN_DESIRED_ZOOM = 0.8
PRELOCK_STEP = 0.005
CENTER_CREEP_GAIN = 0.2
CENTER_CREEP_MAX_PX = 20.0
VERY_LOW_RELAX = 0.1
LOW_CONF_SHRINK = 0.3
NO_SUBJECT_SHRINK = 0.5
MIN_CONF_SCALE = 0.1


class ZoomController:
    def __init__(self, tunables: Tunables):
        self.tunables = tunables

    def desired_zoom(self, box: Rect, sensor: Size) -> float:
        ratio = max(box.w / max(sensor[0], 1), 1e-3)
        return clamp(self.tunables.target_width_mid / ratio, MIN_DESIRED_ZOOM, self.tunables.max_zoom)

    def update(self, state: EngineState, sensor: Size, dt: float) -> float:
        """Advance ``state.zoom`` / ``state.zoom_mode`` by one frame and return the zoom."""
        t = self.tunables
        box = state.stable_box

        if box is None:
            state.zoom -= NO_SUBJECT_SHRINK * t.max_zoom_out_per_sec * dt
            self._set_mode(state, Normal())
        else:
            phase = state.classifier.phase
            conf = state.confidence
            if phase is MotionPhase.LOCKED and conf > t.lock_min_confidence:
                self._locked(state, box)
            elif phase is MotionPhase.PRE_LOCKED and conf > t.prelock_min_confidence:
                self._set_mode(state, PreLocked())
                step = self.desired_zoom(box, sensor) - state.zoom
                state.zoom += clamp(step, -PRELOCK_STEP, PRELOCK_STEP)
            else:
                self._set_mode(state, Normal())
                self._normal(state, box, sensor, dt)

        state.zoom = clamp(state.zoom, 1.0, t.max_zoom)
        return state.zoom

    # ------------------------------------------------------------------ #
    #   T I E R S
    # ------------------------------------------------------------------ #
    def _locked(self, state: EngineState, box: Rect) -> None:
        mode = state.zoom_mode
        if not isinstance(mode, Locked):
            mode = Locked(zoom=state.zoom, center=box.center)
            self._set_mode(state, mode)
        else:
            cx, cy = mode.center
            dx = clamp(box.mid_x - cx, -CENTER_CREEP_MAX_PX, CENTER_CREEP_MAX_PX)
            dy = clamp(box.mid_y - cy, -CENTER_CREEP_MAX_PX, CENTER_CREEP_MAX_PX)
            mode = Locked(zoom=mode.zoom, center=(cx + CENTER_CREEP_GAIN * dx,
                                                  cy + CENTER_CREEP_GAIN * dy))
            state.zoom_mode = mode
        state.zoom = mode.zoom

    def _normal(self, state: EngineState, box: Rect, sensor: Size, dt: float) -> None:
        t = self.tunables
        conf = state.confidence
        desired = self.desired_zoom(box, sensor)

        if conf < t.very_low_confidence:
            state.zoom = lerp(state.zoom, 1.0, VERY_LOW_RELAX)
            return
        if conf < t.low_confidence:
            desired = min(desired, t.low_confidence_zoom_cap)
            if state.zoom > desired:
                shrink = LOW_CONF_SHRINK * t.max_zoom_out_per_sec * dt
                state.zoom = max(desired, state.zoom - shrink)
                return

        scale = clamp(conf, MIN_CONF_SCALE, 1.0)
        diff = desired - state.zoom
        if abs(diff) <= t.zoom_deadband * (2.0 - scale):
            return

        rate = t.max_zoom_in_per_sec if diff > 0 else t.max_zoom_out_per_sec
        max_step = min(rate * scale * dt, t.max_zoom_change_per_sec * dt)
        step = clamp(diff, -max_step, max_step)
        if abs(step) < t.zoom_change_threshold:
            return
        state.zoom += step * (0.7 + 0.3 * scale)

    @staticmethod
    def _set_mode(state: EngineState, mode) -> None:
        if type(mode) is not type(state.zoom_mode):
            log.debug("Zoom mode %s -> %s (zoom=%.3f)", state.zoom_mode.label, mode.label, state.zoom)
        state.zoom_mode = mode
