# stabilizer.py
"""
Spring-damper position control for the stable box.

The filtered detection is first framed (margins around the subject), then
smoothed and led by a short predictor. The stable box centre chases that
target through a dead-zone/soft-zone weight, jitter suppression and a
critically-damped second-order controller with velocity and acceleration
limits. Box size follows with a plain blend.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional, Tuple

from auto_reframe.common import Rect, Size
from auto_reframe.config import Tunables
from auto_reframe.helpers import ExponentialSmoother, MotionPredictor, clamp, lerp, smoothstep

# Framing margins (fraction of subject size)
MARGIN_SIDE = 0.18
MARGIN_TOP = 0.12
MARGIN_BOTTOM = 0.18
HEADROOM = 0.05
HEADROOM_ZONE = 0.40           # subject centre in the upper 40% of the sensor

SIZE_BLEND = 0.40
FAST_SPEED_PX_S = 800.0
FAST_DEAD_ZONE_SCALE = 0.8
SLOW_DEAD_ZONE_SCALE = 1.1
VELOCITY_CHANGE_FRACTION = 0.5
MICRO_MOVE_STOP_FRACTION = 0.3

LOST_RATE = 0.1
LOST_SHRINK = 0.98


@dataclass
class ControlGains:
    """Live spring-damper gains; the adaptive tuner blends these between frames."""
    nat_freq_hz_x: float = 2.8
    nat_freq_hz_y: float = 3.0
    damping: float = 0.98

    @classmethod
    def from_tunables(cls, tunables: Tunables) -> "ControlGains":
        return cls(tunables.nat_freq_hz_x, tunables.nat_freq_hz_y, tunables.damping)


@dataclass
class StabilizerState:
    vx: float = 0.0
    vy: float = 0.0
    prefilter: ExponentialSmoother = field(default_factory=ExponentialSmoother)
    predictor: MotionPredictor = field(default_factory=MotionPredictor)

    def clear(self) -> None:
        self.vx = 0.0
        self.vy = 0.0
        self.prefilter.reset()
        self.predictor.reset()


class PositionStabilizer:
    def __init__(self, tunables: Tunables, output_size: Tuple[int, int]):
        self.tunables = tunables
        self.output_size = output_size

    # ------------------------------------------------------------------ #
    #   F R A M I N G
    # ------------------------------------------------------------------ #
    @staticmethod
    def frame_target(box: Rect, sensor: Size) -> Rect:
        """Expand the subject box by the framing margins, shifted back inside the sensor."""
        sw, sh = sensor
        x = box.x - box.w * MARGIN_SIDE
        y = box.y - box.h * MARGIN_TOP
        w = box.w * (1.0 + 2.0 * MARGIN_SIDE)
        h = box.h * (1.0 + MARGIN_TOP + MARGIN_BOTTOM)
        if box.mid_y < sh * HEADROOM_ZONE:
            add = h * HEADROOM
            y -= add
            h += add

        if x < 0:
            x = 0.0
        if y < 0:
            y = 0.0
        if x + w > sw:
            x = sw - w
        if y + h > sh:
            y = sh - h
        return Rect(x, y, w, h)

    # ------------------------------------------------------------------ #
    #   W E I G H T S
    # ------------------------------------------------------------------ #
    def zone_weight(self, distance: float, dead: float) -> float:
        """
        0 → 1 response weight for a displacement of ``distance`` px.
        Near zero inside the dead-zone, cubic ramp up to 2x dead-zone, 1 beyond.
        """
        if dead <= 1e-6:
            return 1.0
        ramp = smoothstep(distance, dead, 2.0 * dead)
        leak = (1.0 - self.tunables.soft_zone_gain) * smoothstep(distance, 0.0, dead) ** 2
        return ramp + (1.0 - ramp) * leak

    def suppress_jitter(self, delta: float) -> float:
        threshold = self.tunables.jitter_threshold_px
        if threshold > 0 and abs(delta) < threshold:
            return delta * (abs(delta) / threshold)
        return delta

    def suppress_micro_move(self, delta: float, sensor_w: float) -> float:
        """Output-pixel dead band: zero below 30% of the threshold, quadratic ramp to it."""
        threshold = self.tunables.micro_move_px * (sensor_w / max(self.output_size[0], 1))
        if threshold <= 0:
            return delta
        mag = abs(delta)
        stop = threshold * MICRO_MOVE_STOP_FRACTION
        if mag < stop:
            return 0.0
        if mag < threshold:
            t = (mag - stop) / (threshold - stop)
            return delta * t * t
        return delta

    # ------------------------------------------------------------------ #
    #   C O N T R O L
    # ------------------------------------------------------------------ #
    def spring_step(
        self, pos: float, vel: float, target: float, wn: float, zeta: float, dt: float
    ) -> Tuple[float, float]:
        """One unit-mass spring-damper step. Returns (position, velocity)."""
        t = self.tunables
        max_a = t.max_acc_px_s2
        max_v = t.max_vel_px_s
        last_vel = vel

        acc = clamp(wn * wn * (target - pos) - 2.0 * zeta * wn * vel, -max_a, max_a)
        vel = clamp(vel + acc * dt, -max_v, max_v)

        max_change = max_a * dt * VELOCITY_CHANGE_FRACTION
        vel = clamp(vel, last_vel - max_change, last_vel + max_change)
        vel *= t.velocity_damping
        return pos + vel * dt, vel

    def start(self, state: StabilizerState, target: Rect, sensor: Size) -> Optional[Rect]:
        """First sighting: place the stable box on the framed target."""
        state.clear()
        state.prefilter.alpha = self.tunables.position_filter_alpha
        state.prefilter.update(target.center)
        return Rect.sensor(sensor).intersection(target.rounded())

    def step(
        self,
        state: StabilizerState,
        previous: Rect,
        target: Rect,
        gains: ControlGains,
        sensor: Size,
        dt: float,
        in_place: bool = False,
        size_blend: float = SIZE_BLEND,
    ) -> Rect:
        t = self.tunables
        sw, sh = sensor
        dt = max(dt, 1e-4)

        state.prefilter.alpha = t.position_filter_alpha
        filtered = state.prefilter.update(target.center)
        aim_x, aim_y = state.predictor.update(filtered, dt)

        px, py = previous.center
        dx = aim_x - px
        dy = aim_y - py

        speed_scale = (
            FAST_DEAD_ZONE_SCALE if math.hypot(state.vx, state.vy) > FAST_SPEED_PX_S
            else SLOW_DEAD_ZONE_SCALE
        )
        if in_place:
            zone_w, zone_h = t.in_place_dead_zone_w, t.in_place_dead_zone_h
        else:
            zone_w, zone_h = t.dead_zone_w, t.dead_zone_h
        dead_x = sw * zone_w * speed_scale
        dead_y = sh * zone_h * speed_scale

        move_x = dx * self.zone_weight(abs(dx), dead_x)
        move_y = dy * self.zone_weight(abs(dy), dead_y)

        move_x = self.suppress_micro_move(self.suppress_jitter(move_x), sw)
        move_y = self.suppress_micro_move(self.suppress_jitter(move_y), sw)

        wn_x = 2.0 * math.pi * gains.nat_freq_hz_x
        wn_y = 2.0 * math.pi * gains.nat_freq_hz_y
        cx, state.vx = self.spring_step(px, state.vx, px + move_x, wn_x, gains.damping, dt)
        cy, state.vy = self.spring_step(py, state.vy, py + move_y, wn_y, gains.damping, dt)

        w = lerp(previous.w, target.w, size_blend)
        h = lerp(previous.h, target.h, size_blend)

        rect = Rect.from_center(cx, cy, w, h).rounded()
        clipped = Rect.sensor(sensor).intersection(rect)
        if clipped is None or clipped.is_empty():
            return previous
        return clipped

    def decay(
        self,
        state: StabilizerState,
        previous: Rect,
        gains: ControlGains,
        sensor: Size,
        dt: float,
    ) -> Rect:
        """No subject: drift toward the sensor centre slowly while shrinking."""
        sw, sh = sensor
        home = Rect.from_center(
            sw / 2.0, sh / 2.0, previous.w * LOST_SHRINK, previous.h * LOST_SHRINK
        )
        # size takes the full shrink each frame, only the position is slowed
        return self.step(state, previous, home, gains, sensor, dt * LOST_RATE, size_blend=1.0)
