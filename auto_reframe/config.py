# config.py
"""Typed configuration blobs for the whole system."""
from __future__ import annotations

import math
from dataclasses import asdict, dataclass, fields, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from auto_reframe.helpers import clamp


class CaptureMode(Enum):
    FITNESS = "fitness"
    DANCE = "dance"

    @classmethod
    def parse(cls, name: str | CaptureMode) -> CaptureMode:
        if isinstance(name, CaptureMode):
            return name
        try:
            return cls(str(name).lower())
        except ValueError:
            raise KeyError(
                f"Unknown capture mode '{name}'. Available: {[m.value for m in cls]}"
            ) from None


@dataclass
class Tunables:
    """
    Control-loop coefficients. Values are fractions of the sensor size, Hz,
    px/s or zoom units per second. Defaults are the *fitness* bundle.

    Use :meth:`clamped` (or ``ReframeEngine.tunables = ...``) before feeding a
    hand-edited instance to the pipeline.
    """
    # Dead-zone (fraction of sensor w/h)
    dead_zone_w: float = 0.08
    dead_zone_h: float = 0.10
    in_place_dead_zone_w: float = 0.15
    in_place_dead_zone_h: float = 0.18
    soft_zone_gain: float = 0.70

    # Spring-damper
    nat_freq_hz_x: float = 2.8
    nat_freq_hz_y: float = 3.0
    damping: float = 0.98
    max_vel_px_s: float = 2200.0
    max_acc_px_s2: float = 3500.0
    velocity_damping: float = 0.94
    position_filter_alpha: float = 0.20

    # Anti-jitter (px)
    jitter_threshold_px: float = 3.0
    micro_move_px: float = 6.0   # output pixels

    # Zoom
    max_zoom: float = 2.5
    zoom_deadband: float = 0.008
    max_zoom_change_per_sec: float = 1.8
    max_zoom_in_per_sec: float = 1.5
    max_zoom_out_per_sec: float = 1.2
    zoom_change_threshold: float = 0.002
    target_width_lower: float = 0.46
    target_width_upper: float = 0.54

    # Detection cadence (frames)
    det_interval: int = 1

    # Adaptive damping (output px)
    adaptive_enabled: bool = True
    jitter_low_px: float = 3.0
    jitter_high_px: float = 12.0

    # In-place classifier
    position_stable_threshold: float = 0.008
    aspect_change_threshold: float = 0.15
    in_place_frames: int = 15
    in_place_entry_margin: int = 5
    in_place_entry_aspect_factor: float = 1.2
    pre_in_place_frames: int = 3
    pre_in_place_threshold: float = 0.005

    # Confidence floors
    classify_min_confidence: float = 0.6
    count_min_confidence: float = 0.75
    lock_min_confidence: float = 0.6
    prelock_min_confidence: float = 0.5
    low_confidence: float = 0.5
    very_low_confidence: float = 0.3
    low_confidence_zoom_cap: float = 1.5

    # Kalman noise for the box filter
    kalman_process_noise: float = 0.0005
    kalman_measurement_noise: float = 0.05

    @property
    def target_width_mid(self) -> float:
        return (self.target_width_lower + self.target_width_upper) * 0.5

    def clamped(self) -> "Tunables":
        """Return a copy with every field forced into its safe range."""
        lower = clamp(self.target_width_lower, 0.30, 0.90)
        upper = clamp(self.target_width_upper, lower + 0.01, 0.95)
        jitter_low = clamp(self.jitter_low_px, 0.2, 20.0)
        very_low = clamp(self.very_low_confidence, 0.0, 1.0)
        return replace(
            self,
            dead_zone_w=clamp(self.dead_zone_w, 0.0, 0.20),
            dead_zone_h=clamp(self.dead_zone_h, 0.0, 0.25),
            in_place_dead_zone_w=clamp(self.in_place_dead_zone_w, 0.0, 0.25),
            in_place_dead_zone_h=clamp(self.in_place_dead_zone_h, 0.0, 0.30),
            soft_zone_gain=clamp(self.soft_zone_gain, 0.5, 1.0),
            nat_freq_hz_x=clamp(self.nat_freq_hz_x, 0.2, 8.0),
            nat_freq_hz_y=clamp(self.nat_freq_hz_y, 0.2, 8.0),
            damping=clamp(self.damping, 0.5, 1.2),
            max_vel_px_s=clamp(self.max_vel_px_s, 200.0, 6000.0),
            max_acc_px_s2=clamp(self.max_acc_px_s2, 2000.0, 40000.0),
            velocity_damping=clamp(self.velocity_damping, 0.80, 1.0),
            position_filter_alpha=clamp(self.position_filter_alpha, 0.05, 1.0),
            jitter_threshold_px=clamp(self.jitter_threshold_px, 0.0, 12.0),
            micro_move_px=clamp(self.micro_move_px, 0.0, 12.0),
            max_zoom=clamp(self.max_zoom, 1.0, 5.0),
            zoom_deadband=clamp(self.zoom_deadband, 0.0, 0.10),
            max_zoom_change_per_sec=clamp(self.max_zoom_change_per_sec, 0.05, 3.0),
            max_zoom_in_per_sec=clamp(self.max_zoom_in_per_sec, 0.1, 3.0),
            max_zoom_out_per_sec=clamp(self.max_zoom_out_per_sec, 0.05, 2.0),
            zoom_change_threshold=clamp(self.zoom_change_threshold, 0.0, 0.05),
            target_width_lower=lower,
            target_width_upper=upper,
            det_interval=int(clamp(round(self.det_interval), 1, 5)),
            adaptive_enabled=bool(self.adaptive_enabled),
            jitter_low_px=jitter_low,
            jitter_high_px=clamp(self.jitter_high_px, jitter_low + 0.2, 40.0),
            position_stable_threshold=clamp(self.position_stable_threshold, 0.0005, 0.1),
            aspect_change_threshold=clamp(self.aspect_change_threshold, 0.01, 1.0),
            in_place_frames=int(clamp(round(self.in_place_frames), 3, 20)),
            in_place_entry_margin=int(clamp(round(self.in_place_entry_margin), 0, 30)),
            in_place_entry_aspect_factor=clamp(self.in_place_entry_aspect_factor, 1.0, 3.0),
            pre_in_place_frames=int(clamp(round(self.pre_in_place_frames), 1, 10)),
            pre_in_place_threshold=clamp(self.pre_in_place_threshold, 0.0005, 0.05),
            classify_min_confidence=clamp(self.classify_min_confidence, 0.0, 1.0),
            count_min_confidence=clamp(self.count_min_confidence, 0.0, 1.0),
            lock_min_confidence=clamp(self.lock_min_confidence, 0.0, 1.0),
            prelock_min_confidence=clamp(self.prelock_min_confidence, 0.0, 1.0),
            low_confidence=clamp(self.low_confidence, very_low, 1.0),
            very_low_confidence=very_low,
            low_confidence_zoom_cap=clamp(self.low_confidence_zoom_cap, 1.0, 5.0),
            kalman_process_noise=clamp(self.kalman_process_noise, 1e-6, 1.0),
            kalman_measurement_noise=clamp(self.kalman_measurement_noise, 1e-5, 10.0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def updated(self, values: Dict[str, Any]) -> Tuple["Tunables", list[str], list[str]]:
        """
        Overlay ``values`` onto a copy of this instance.

        Each value is converted to its field's type. Returns the new instance,
        the keys that are not fields and the keys whose value could not be
        converted; both kinds are left out of the overlay.
        """
        kinds = {f.name: f.type for f in fields(self)}
        known: Dict[str, Any] = {}
        unknown: list[str] = []
        invalid: list[str] = []
        for key, value in values.items():
            if key not in kinds:
                unknown.append(key)
                continue
            try:
                known[key] = _coerce(value, kinds[key])
            except (TypeError, ValueError):
                invalid.append(key)
        return replace(self, **known), sorted(unknown), sorted(invalid)


_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}


def _coerce(value: Any, kind: Any) -> Any:
    """Convert a JSON value to a ``float`` / ``int`` / ``bool`` field type."""
    kind = getattr(kind, "__name__", kind)
    if kind == "bool":
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)) and value in (0, 1):
            return bool(value)
        if isinstance(value, str) and value.strip().lower() in _TRUE | _FALSE:
            return value.strip().lower() in _TRUE
        raise ValueError(f"not a boolean: {value!r}")

    if value is None or isinstance(value, bool):
        raise TypeError(f"not a number: {value!r}")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"not finite: {value!r}")
    if kind == "int":
        return int(round(number))
    return number


def preset_tunables(mode: CaptureMode | str, base: Optional[Tunables] = None) -> Tunables:
    """Apply the coefficient bundle of ``mode`` on top of ``base`` (or defaults)."""
    mode = CaptureMode.parse(mode)
    base = base or Tunables()
    if mode is CaptureMode.FITNESS:
        bundle = dict(
            target_width_lower=0.46, target_width_upper=0.54, max_zoom=2.5,
            dead_zone_w=0.08, dead_zone_h=0.10,
            in_place_dead_zone_w=0.15, in_place_dead_zone_h=0.18,
            micro_move_px=6.0, jitter_threshold_px=3.0, zoom_deadband=0.008,
            max_zoom_in_per_sec=1.5, max_zoom_out_per_sec=1.2,
            max_zoom_change_per_sec=1.8, zoom_change_threshold=0.002,
            nat_freq_hz_x=2.8, nat_freq_hz_y=3.0, damping=0.98, velocity_damping=0.94,
            position_filter_alpha=0.20,
            jitter_low_px=3.0, jitter_high_px=12.0,
            position_stable_threshold=0.008, aspect_change_threshold=0.15,
            in_place_frames=15, pre_in_place_frames=3, pre_in_place_threshold=0.005,
            kalman_process_noise=0.0005, kalman_measurement_noise=0.05,
        )
    else:
        bundle = dict(
            target_width_lower=0.40, target_width_upper=0.45, max_zoom=1.5,
            dead_zone_w=0.05, dead_zone_h=0.06,
            in_place_dead_zone_w=0.12, in_place_dead_zone_h=0.15,
            micro_move_px=4.0, jitter_threshold_px=2.5, zoom_deadband=0.006,
            max_zoom_in_per_sec=2.0, max_zoom_out_per_sec=1.8,
            max_zoom_change_per_sec=2.5, zoom_change_threshold=0.001,
            nat_freq_hz_x=3.5, nat_freq_hz_y=3.7, damping=0.90, velocity_damping=0.96,
            position_filter_alpha=0.30,
            position_stable_threshold=0.006, aspect_change_threshold=0.20,
            in_place_frames=20, pre_in_place_frames=4, pre_in_place_threshold=0.004,
            kalman_process_noise=0.001, kalman_measurement_noise=0.03,
        )
    return replace(base, **bundle).clamped()


@dataclass
class EngineConfig:
    output_size: Tuple[int, int] = (1080, 1920)   # (w, h)
    lost_frames_threshold: int = 5
    min_dt_s: float = 1.0 / 60.0
    max_dt_s: float = 0.25
    nominal_dt_s: float = 1.0 / 30.0
    confidence_decay_per_miss: float = 0.1
    render: bool = True

    @property
    def output_aspect(self) -> float:
        """Crop height / width."""
        w, h = self.output_size
        return h / max(w, 1)


@dataclass
class CameraConfig:
    source: int | str = 0          # device index or video file path
    width: int = 1280
    height: int = 720
    fps_request: int = 30
    fourcc_str: str = "MJPG"
    loop_file: bool = False


@dataclass
class DetectorConfig:
    model_complexity: int = 1
    min_detection_confidence: float = 0.5
    min_tracking_confidence: float = 0.5
    min_joint_confidence: float = 0.2
    min_bbox_size_px: int = 20
    bbox_pad_ratio: float = 0.08
