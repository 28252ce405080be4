# adaptive.py
"""Jitter-driven retuning of the spring-damper gains."""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Deque, Optional, Tuple

from auto_reframe.common import Point, Rect
from auto_reframe.config import Tunables
from auto_reframe.helpers import clamp, lerp, trimmed_rms

if TYPE_CHECKING:
    from auto_reframe.stabilizer import ControlGains

WINDOW = 36
MIN_SAMPLES = 10
TRIM = 2
BLEND_RATE = 0.08

DAMPING_CALM, DAMPING_SHAKY = 1.0, 0.92
FREQ_X_CALM, FREQ_X_SHAKY = 2.5, 3.2
FREQ_Y_CALM, FREQ_Y_SHAKY = 2.7, 3.4
FREQ_SPAN = 0.7


@dataclass
class AdaptiveState:
    samples: Deque[float] = field(default_factory=lambda: deque(maxlen=WINDOW))
    last_center: Optional[Point] = None

    def clear(self) -> None:
        self.samples.clear()
        self.last_center = None


class AdaptiveDampingTuner:
    """
    Measures frame-to-frame motion of the stable centre in *output* pixels
    and nudges damping down and frequencies up when the view is shaky.
    Runs after the crop is known, so its gains apply from the next frame.
    """
    def __init__(self, tunables: Tunables):
        self.tunables = tunables

    def targets(self, rms: float) -> Tuple[float, float, float]:
        t = self.tunables
        span = max(t.jitter_high_px - t.jitter_low_px, 1e-6)
        k = clamp((rms - t.jitter_low_px) / span, 0.0, 1.0)
        return (
            lerp(FREQ_X_CALM, FREQ_X_SHAKY, FREQ_SPAN * k),
            lerp(FREQ_Y_CALM, FREQ_Y_SHAKY, FREQ_SPAN * k),
            lerp(DAMPING_CALM, DAMPING_SHAKY, k * k),
        )

    def update(
        self,
        state: AdaptiveState,
        gains: "ControlGains",
        stable_box: Optional[Rect],
        crop: Rect,
        output_width: int,
        frame_count: int,
    ) -> None:
        t = self.tunables
        if not t.adaptive_enabled or stable_box is None:
            state.clear()
            return

        center = stable_box.center
        if state.last_center is not None and frame_count % (2 * t.det_interval) == 0:
            scale = output_width / max(crop.w, 1.0)
            dx = (center[0] - state.last_center[0]) * scale
            dy = (center[1] - state.last_center[1]) * scale
            state.samples.append((dx * dx + dy * dy) ** 0.5)
        state.last_center = center

        if len(state.samples) < MIN_SAMPLES:
            return

        fx, fy, zeta = self.targets(trimmed_rms(state.samples, TRIM))
        gains.nat_freq_hz_x = lerp(gains.nat_freq_hz_x, fx, BLEND_RATE)
        gains.nat_freq_hz_y = lerp(gains.nat_freq_hz_y, fy, BLEND_RATE)
        gains.damping = lerp(gains.damping, zeta, BLEND_RATE)
