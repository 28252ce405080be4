from __future__ import annotations

import pytest

from auto_reframe.adaptive import AdaptiveDampingTuner, AdaptiveState
from auto_reframe.common import Rect
from auto_reframe.config import Tunables
from auto_reframe.stabilizer import ControlGains

CROP = Rect(437, 0, 405, 720)
OUT_W = 1080


def run(tuner, state, gains, boxes):
    for i, box in enumerate(boxes, start=1):
        tuner.update(state, gains, box, CROP, OUT_W, i)


def test_targets_span(tunables: Tunables) -> None:
    tuner = AdaptiveDampingTuner(tunables)
    assert tuner.targets(0.0) == pytest.approx((2.5, 2.7, 1.0))
    assert tuner.targets(100.0) == pytest.approx((2.5 + 0.7 * 0.7, 2.7 + 0.7 * 0.7, 0.92))


def test_calm_view_raises_damping(tunables: Tunables) -> None:
    tuner = AdaptiveDampingTuner(tunables)
    state, gains = AdaptiveState(), ControlGains()
    run(tuner, state, gains, [Rect(500, 100, 200, 400)] * 60)
    assert gains.damping > 0.98
    assert gains.nat_freq_hz_x < 2.8
    assert gains.nat_freq_hz_y < 3.0


def test_shaky_view_lowers_damping(tunables: Tunables) -> None:
    tuner = AdaptiveDampingTuner(tunables)
    state, gains = AdaptiveState(), ControlGains()
    boxes = [Rect(500 + (30 if i % 2 else -30), 100, 200, 400) for i in range(60)]
    run(tuner, state, gains, boxes)
    assert gains.damping < 0.98
    assert gains.nat_freq_hz_x > 2.8


def test_needs_minimum_samples(tunables: Tunables) -> None:
    tuner = AdaptiveDampingTuner(tunables)
    state, gains = AdaptiveState(), ControlGains()
    run(tuner, state, gains, [Rect(500, 100, 200, 400)] * 18)
    assert len(state.samples) < 10
    assert gains == ControlGains()


def test_sampling_follows_detection_interval() -> None:
    tuner = AdaptiveDampingTuner(Tunables(det_interval=3))
    state, gains = AdaptiveState(), ControlGains()
    run(tuner, state, gains, [Rect(500, 100, 200, 400)] * 30)
    assert len(state.samples) == 5


def test_disabled_or_lost_clears_window(tunables: Tunables) -> None:
    tuner = AdaptiveDampingTuner(tunables)
    state, gains = AdaptiveState(), ControlGains()
    run(tuner, state, gains, [Rect(500, 100, 200, 400)] * 20)
    assert state.samples
    tuner.update(state, gains, None, CROP, OUT_W, 21)
    assert not state.samples and state.last_center is None

    tuner = AdaptiveDampingTuner(Tunables(adaptive_enabled=False))
    run(tuner, state, gains, [Rect(500, 100, 200, 400)] * 20)
    assert not state.samples
