from __future__ import annotations

import math

import pytest

from auto_reframe.common import Rect
from auto_reframe.helpers import (
    ExponentialSmoother,
    MotionPredictor,
    iou,
    map_point_to_crop,
    rect_from_keypoints,
    smoothstep,
    trimmed_rms,
)


def test_smoothstep_edges_and_midpoint() -> None:
    assert smoothstep(-1.0, 0.0, 1.0) == 0.0
    assert smoothstep(2.0, 0.0, 1.0) == 1.0
    assert smoothstep(0.5, 0.0, 1.0) == pytest.approx(0.5)
    # zero-width ramp is a step
    assert smoothstep(1.0, 1.0, 1.0) == 1.0
    assert smoothstep(0.9, 1.0, 1.0) == 0.0


def test_iou() -> None:
    a = Rect(0, 0, 10, 10)
    assert iou(a, a) == pytest.approx(1.0)
    assert iou(a, Rect(5, 0, 10, 10)) == pytest.approx(50 / 150)
    assert iou(a, Rect(20, 20, 5, 5)) == 0.0


def test_rect_helpers() -> None:
    r = Rect(1.2, 2.7, 3.0, 4.0)
    assert r.rounded() == Rect(1.0, 3.0, 3.0, 4.0)
    assert Rect.from_center(10, 10, 4, 6) == Rect(8, 7, 4, 6)
    assert Rect(0, 0, 0, 5).is_empty()
    assert Rect(math.nan, 0, 5, 5).is_empty()
    assert Rect(0, 0, 10, 10).contains(Rect(2, 2, 3, 3))
    assert not Rect(0, 0, 10, 10).contains(Rect(8, 8, 3, 3))


def test_trimmed_rms_drops_outliers() -> None:
    samples = [1.0] * 10 + [100.0, 100.0, 0.0, 0.0]
    assert trimmed_rms(samples, trim=2) == pytest.approx(1.0)
    assert trimmed_rms([]) == 0.0


def test_exponential_smoother() -> None:
    s = ExponentialSmoother(alpha=0.5)
    assert s.update((10.0, 0.0)) == (10.0, 0.0)
    assert s.update((20.0, 10.0)) == pytest.approx((15.0, 5.0))
    s.reset()
    assert s.state is None


def test_motion_predictor_leads_constant_velocity() -> None:
    p = MotionPredictor()
    dt = 0.1
    out = None
    for i in range(5):
        out = p.update((i * 10.0, 0.0), dt)
    # velocity 100 px/s, lead 30% of one dt => +3 px
    assert out == pytest.approx((43.0, 0.0))


def test_motion_predictor_needs_three_velocities() -> None:
    p = MotionPredictor()
    p.update((0.0, 0.0), 0.1)
    assert p.update((10.0, 0.0), 0.1) == (10.0, 0.0)


def test_rect_from_keypoints_ignores_weak_joints() -> None:
    pts = [(100.0, 100.0, 0.9), (200.0, 300.0, 0.8), (900.0, 900.0, 0.05)]
    rect, conf = rect_from_keypoints(pts, min_confidence=0.2, pad_ratio=0.0)
    assert rect == Rect(100.0, 100.0, 100.0, 200.0)
    assert conf == pytest.approx(0.85)


def test_rect_from_keypoints_pads_and_clips() -> None:
    pts = [(0.0, 10.0, 1.0), (100.0, 110.0, 1.0)]
    rect, _ = rect_from_keypoints(pts, pad_ratio=0.1, bounds=(105, 200))
    assert rect.x == 0.0 and rect.max_x == 105.0
    assert rect.y == pytest.approx(0.0) and rect.max_y == pytest.approx(120.0)


def test_rect_from_keypoints_too_few_joints() -> None:
    assert rect_from_keypoints([(1.0, 1.0, 0.9)]) is None
    assert rect_from_keypoints([(1.0, 1.0, 0.1), (5.0, 5.0, 0.1)]) is None


def test_map_point_to_crop() -> None:
    crop = Rect(100, 200, 400, 800)
    assert map_point_to_crop((300, 600), crop) == pytest.approx((0.5, 0.5))
    assert map_point_to_crop((100, 200), crop) == pytest.approx((0.0, 0.0))
    assert map_point_to_crop((50, 600), crop) is None
