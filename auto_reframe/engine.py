# engine.py
"""
ReframeEngine: one call per frame, strictly forward.

    detection → box filter → stabilizer → in-place classifier
              → zoom → crop → render

The adaptive tuner runs after the crop and retunes the gains used on the
*next* frame.
"""
from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Callable, Optional, Sequence

from auto_reframe.adaptive import AdaptiveDampingTuner
from auto_reframe.box_filter import BoxFilter
from auto_reframe.common import Detection, FrameInput, FrameResult, Rect, Size
from auto_reframe.config import CaptureMode, EngineConfig, Tunables, preset_tunables
from auto_reframe.crop import CropRectComputer
from auto_reframe.helpers import clamp
from auto_reframe.motion import InPlaceMotionClassifier
from auto_reframe.renderer import FrameRenderer
from auto_reframe.stabilizer import ControlGains, PositionStabilizer
from auto_reframe.state import EngineState, Locked, PreLocked
from auto_reframe.zoom import ZoomController

log = logging.getLogger(__name__)

Detector = Callable[[FrameInput], Sequence[Detection]]


def select_subject(candidates: Sequence[Detection], previous: Optional[Rect]) -> Optional[Detection]:
    """Nearest candidate to the previous raw box, or the largest one on first sight."""
    valid = [d for d in candidates if not d.rect.is_empty() and math.isfinite(d.confidence)]
    if not valid:
        return None
    if previous is None:
        return max(valid, key=lambda d: d.rect.area)
    px, py = previous.center
    return min(valid, key=lambda d: math.hypot(d.rect.mid_x - px, d.rect.mid_y - py))


class ReframeEngine:
    def __init__(
        self,
        tunables: Optional[Tunables] = None,
        config: Optional[EngineConfig] = None,
        detector: Optional[Detector] = None,
    ):
        self.config = replace(config) if config is not None else EngineConfig()
        self._check_output_size(*self.config.output_size)
        self.detector = detector

        self._tunables = (tunables or Tunables()).clamped()
        self.box_filter = BoxFilter(self._tunables)
        self.stabilizer = PositionStabilizer(self._tunables, self.config.output_size)
        self.classifier = InPlaceMotionClassifier(self._tunables)
        self.zoom = ZoomController(self._tunables)
        self.crop = CropRectComputer(self.config.output_aspect)
        self.adaptive = AdaptiveDampingTuner(self._tunables)
        self.renderer = FrameRenderer(self.config.output_size)

        self.state = EngineState(gains=ControlGains.from_tunables(self._tunables))
        self.last_result: Optional[FrameResult] = None

    # ------------------------------------------------------------------ #
    #   C O N F I G U R A T I O N
    # ------------------------------------------------------------------ #
    @property
    def tunables(self) -> Tunables:
        return replace(self._tunables)

    @tunables.setter
    def tunables(self, value: Tunables) -> None:
        t = value.clamped()
        self._tunables = t
        self.box_filter.apply_tunables(t, self.state.box_filter)
        self.stabilizer.tunables = t
        self.classifier.tunables = t
        self.zoom.tunables = t
        self.adaptive.tunables = t
        self.state.gains = ControlGains.from_tunables(t)

    def apply_preset(self, mode: CaptureMode | str) -> None:
        mode = CaptureMode.parse(mode)
        self.tunables = preset_tunables(mode, self._tunables)
        log.info("Capture mode set to %s", mode.value)

    @staticmethod
    def _check_output_size(w: int, h: int) -> None:
        if w <= 0 or h <= 0:
            raise ValueError(f"Output size must be positive, got {w}x{h}")

    def set_output_size(self, w: int, h: int) -> None:
        self._check_output_size(w, h)
        self.config = replace(self.config, output_size=(int(w), int(h)))
        self.stabilizer.output_size = self.config.output_size
        self.crop.aspect = self.config.output_aspect
        self.renderer.output_size = self.config.output_size

    def reset(self) -> None:
        self.state.reset(ControlGains.from_tunables(self._tunables))
        self.last_result = None
        log.debug("Engine state reset")

    # ------------------------------------------------------------------ #
    #   S T A T U S
    # ------------------------------------------------------------------ #
    def zoom_status(self) -> str:
        s = self.state
        mode = s.zoom_mode
        if isinstance(mode, Locked):
            return f"LOCKED z={mode.zoom:.2f} @({mode.center[0]:.0f},{mode.center[1]:.0f})"
        if isinstance(mode, PreLocked):
            return f"PRE-LOCKED z={s.zoom:.2f} pre={s.classifier.pre_in_place_frames}"
        return f"NORMAL z={s.zoom:.2f} conf={s.confidence:.2f}"

    def in_place_status(self) -> str:
        c = self.state.classifier
        return (
            f"in_place={'yes' if c.in_place else 'no'} "
            f"stable={c.position_stable_frames}/{self._tunables.in_place_frames} "
            f"pre={c.pre_in_place_frames} frozen={'yes' if c.zoom_frozen else 'no'}"
        )

    # ------------------------------------------------------------------ #
    #   S T E P
    # ------------------------------------------------------------------ #
    def _dt(self, timestamp: float) -> float:
        cfg = self.config
        last = self.state.last_timestamp
        self.state.last_timestamp = timestamp
        if last is None:
            return cfg.nominal_dt_s
        return clamp(timestamp - last, cfg.min_dt_s, cfg.max_dt_s)

    def _detect(self, frame: FrameInput, detections: Optional[Sequence[Detection]]) -> Sequence[Detection]:
        if detections is not None:
            return detections
        if self.detector is None:
            return ()
        return self.detector(frame)

    def _drop_subject(self) -> None:
        s = self.state
        log.info("Subject lost for %d detection cycles; clearing framing", s.miss_count)
        s.stable_box = None
        s.filtered_box = None
        s.raw_box = None
        s.stabilizer.clear()
        s.classifier.clear()
        s.box_filter.needs_reinit = True

    def step(self, frame: FrameInput, detections: Optional[Sequence[Detection]] = None) -> FrameResult:
        """
        Advance one frame. ``detections`` overrides the attached detector;
        either is consulted only on detection cycles (every ``det_interval``).
        """
        sensor: Size = frame.size
        if sensor[0] <= 0 or sensor[1] <= 0:
            raise ValueError(f"Sensor size must be positive, got {sensor[0]}x{sensor[1]}")

        s = self.state
        t = self._tunables
        cfg = self.config
        dt = self._dt(frame.timestamp)
        s.frame_count += 1

        # -------- detection ------------------------------------------------
        hit = False
        if (s.frame_count - 1) % t.det_interval == 0:
            subject = select_subject(self._detect(frame, detections), s.raw_box)
            if subject is not None:
                if s.stable_box is None:
                    log.info("Subject acquired (conf=%.2f)", subject.confidence)
                hit = True
                s.raw_box = subject.rect
                s.confidence = clamp(subject.confidence, 0.0, 1.0)
                s.miss_count = 0
                s.filtered_box = self.box_filter.update(s.box_filter, subject.rect)
            else:
                s.miss_count += 1
                s.confidence = max(0.0, s.confidence - cfg.confidence_decay_per_miss)

        # -------- stabilizer -----------------------------------------------
        lost = cfg.lost_frames_threshold
        if s.filtered_box is not None and (hit or s.miss_count <= lost):
            target = self.stabilizer.frame_target(s.filtered_box, sensor)
            if s.stable_box is None:
                s.stable_box = self.stabilizer.start(s.stabilizer, target, sensor)
            else:
                s.stable_box = self.stabilizer.step(
                    s.stabilizer, s.stable_box, target, s.gains, sensor, dt, s.in_place
                )
        elif s.stable_box is not None:
            if s.miss_count > lost * 3:
                self._drop_subject()
            else:
                s.stable_box = self.stabilizer.decay(s.stabilizer, s.stable_box, s.gains, sensor, dt)

        # -------- classifier + zoom ----------------------------------------
        if s.stable_box is not None:
            self.classifier.update(s.classifier, s.stable_box, s.raw_box, sensor, s.confidence)
        self.zoom.update(s, sensor, dt)

        # -------- crop -----------------------------------------------------
        crop, s.zoom = self.crop.compute(s.zoom, s.stable_box, sensor, s.locked_center)

        # -------- adaptive gains (next frame) ------------------------------
        self.adaptive.update(
            s.adaptive, s.gains, s.stable_box, crop, cfg.output_size[0], s.frame_count
        )

        rendered = None
        if cfg.render and frame.image is not None:
            rendered = self.renderer.render(frame.image, crop)

        result = FrameResult(
            fps=1.0 / dt,
            zoom=s.zoom,
            confidence=s.confidence,
            raw_box=s.raw_box,
            filtered_box=s.filtered_box,
            stable_box=s.stable_box,
            crop_rect=crop,
            rendered=rendered,
            timestamp=frame.timestamp,
            sensor_size=sensor,
            phase=s.classifier.phase.value,
        )
        self.last_result = result
        return result
