from __future__ import annotations

import numpy as np
import pytest

from auto_reframe.common import Detection, Rect
from auto_reframe.config import CaptureMode, EngineConfig, Tunables
from auto_reframe.engine import ReframeEngine, select_subject
from auto_reframe.state import Locked, Normal

from conftest import SENSOR, det, make_frame

ASPECT = 1920 / 1080


def assert_invariants(results, max_zoom=2.5) -> None:
    sensor = Rect.sensor(SENSOR)
    for r in results:
        assert 1.0 <= r.zoom <= max_zoom
        assert sensor.contains(r.crop_rect)
        assert not r.crop_rect.is_empty()
        assert abs(r.crop_rect.h - r.crop_rect.w * ASPECT) <= 1.0
        if r.stable_box is not None:
            assert sensor.contains(r.stable_box)
            assert not r.stable_box.is_empty()


def rep(i: int) -> Detection:
    """Squat-like detection: centre fixed within 2 px, aspect swinging +-20%."""
    jitter = 2 if i % 3 == 0 else -2 if i % 3 == 1 else 0
    if (i // 2) % 2 == 0:
        w, h = 220, 360
    else:
        w, h = 180, 440
    return det(640 + jitter - w / 2, 360 - h / 2, w, h)


# ---------------------------------------------------------------------------
#   Subject selection
# ---------------------------------------------------------------------------
def test_select_subject_largest_then_nearest() -> None:
    small = det(0, 0, 50, 50)
    big = det(900, 300, 200, 300)
    near = det(60, 10, 40, 40)
    assert select_subject([small, big], None) is big
    assert select_subject([big, near], Rect(0, 0, 50, 50)) is near
    assert select_subject([], None) is None
    assert select_subject([det(0, 0, 0, 10)], None) is None


# ---------------------------------------------------------------------------
#   Scenarios
# ---------------------------------------------------------------------------
def test_constant_box_converges(engine, drive) -> None:
    results = drive(engine, [[det(100, 100, 200, 300)]] * 90)
    assert_invariants(results)

    last = results[-1]
    assert last.stable_box.w == pytest.approx(272, abs=2)
    desired = 0.5 * SENSOR[0] / last.stable_box.w
    assert last.zoom == pytest.approx(desired, abs=0.02)
    assert last.crop_rect.contains(last.stable_box)
    assert last.phase == "normal"
    # settled: nothing moves any more
    assert results[-2].crop_rect == last.crop_rect


def test_in_place_exercise_locks_zoom(engine, drive) -> None:
    results = drive(engine, [[rep(i)] for i in range(60)])
    assert_invariants(results)

    phases = [r.phase for r in results]
    assert "pre_locked" in phases[:10]
    assert "locked" in phases
    first_lock = phases.index("locked")
    assert first_lock < 45
    locked_zooms = {round(r.zoom, 9) for r in results[first_lock:]}
    assert len(locked_zooms) == 1
    assert isinstance(engine.state.zoom_mode, Locked)
    assert engine.state.locked_zoom == pytest.approx(results[-1].zoom)


def tall_rep(i: int) -> Detection:
    """Same rep, but the subject now fills most of the frame height."""
    w, h = (220, 520) if (i // 2) % 2 == 0 else (180, 600)
    return det(640 - w / 2, 360 - h / 2, w, h)


def test_locked_zoom_pinned_with_landscape_output(drive) -> None:
    eng = ReframeEngine(config=EngineConfig(output_size=(1920, 1080), render=False))
    drive(eng, [[rep(i)] for i in range(50)])
    assert isinstance(eng.state.zoom_mode, Locked)
    pinned = eng.state.locked_zoom
    assert pinned >= 1.0

    results = drive(eng, [[tall_rep(i)] for i in range(50, 90)])
    locked = [r for r in results if r.phase == "locked"]
    assert len(locked) >= 10
    for r in locked:
        assert r.zoom == pinned
        assert abs(r.crop_rect.w - 1280 / pinned) <= 1.0
        assert Rect.sensor(SENSOR).contains(r.crop_rect)


def test_in_place_exit_when_subject_walks(engine, drive) -> None:
    drive(engine, [[rep(i)] for i in range(50)])
    assert engine.state.in_place
    walk = [[det(440 + 12 * i, 180, 200, 360)] for i in range(40)]
    results = drive(engine, walk)
    assert_invariants(results)
    assert not engine.state.in_place
    assert results[-1].phase == "normal"
    assert isinstance(engine.state.zoom_mode, Normal)


def test_prolonged_loss_clears_stable_box(engine, drive) -> None:
    hits = drive(engine, [[det(400, 150, 200, 400)]] * 60)
    zoom_before = hits[-1].zoom
    assert zoom_before > 1.2

    misses = drive(engine, [None] * 20)
    assert_invariants(misses)
    # lost_frames_threshold 5 -> cleared after more than 15 misses
    assert misses[14].stable_box is not None
    assert misses[15].stable_box is None
    assert misses[15].filtered_box is None
    assert misses[-1].zoom < zoom_before
    assert [r.confidence for r in misses[:3]] == pytest.approx([0.8, 0.7, 0.6])
    assert misses[-1].confidence == 0.0
    # decaying zoom never increases
    zooms = [r.zoom for r in misses]
    assert all(b <= a + 1e-9 for a, b in zip(zooms, zooms[1:]))


def test_short_dropout_holds_framing(engine, drive) -> None:
    hits = drive(engine, [[det(400, 150, 200, 400)]] * 30)
    misses = drive(engine, [None] * 3)
    assert misses[-1].stable_box is not None
    assert misses[-1].filtered_box == hits[-1].filtered_box
    assert abs(misses[-1].stable_box.mid_x - hits[-1].stable_box.mid_x) < 2


def test_reacquisition_hard_resets_filter(engine, drive) -> None:
    drive(engine, [[det(100, 150, 200, 400)]] * 20)
    drive(engine, [None] * 16)
    assert engine.state.stable_box is None
    results = drive(engine, [[det(900, 150, 200, 300)]])
    f = results[-1].filtered_box
    assert (f.x, f.y, f.w, f.h) == pytest.approx((900, 150, 200, 300))
    assert results[-1].stable_box is not None
    assert results[-1].stable_box.mid_x == pytest.approx(1000, abs=1)


def test_random_walk_keeps_invariants(engine, drive) -> None:
    rng = np.random.default_rng(7)
    frames = []
    x, y = 500.0, 200.0
    for i in range(300):
        x = float(np.clip(x + rng.normal(0, 25), -100, 1300))
        y = float(np.clip(y + rng.normal(0, 10), -50, 600))
        w = float(rng.uniform(40, 500))
        h = float(rng.uniform(60, 700))
        conf = float(rng.uniform(0.0, 1.0))
        frames.append(None if rng.random() < 0.15 else [det(x, y, w, h, conf)])
    results = drive(engine, frames)
    assert_invariants(results)


# ---------------------------------------------------------------------------
#   Timing / cadence
# ---------------------------------------------------------------------------
def test_dt_is_clamped(engine) -> None:
    first = engine.step(make_frame(0), [])
    assert first.fps == pytest.approx(30.0)
    same = engine.step(make_frame(0), [])
    assert same.fps == pytest.approx(60.0)
    late = engine.step(make_frame(300), [])
    assert late.fps == pytest.approx(4.0)


def test_detector_runs_every_interval() -> None:
    calls = []

    def detector(frame):
        calls.append(frame.timestamp)
        return [det(400, 150, 200, 400)]

    eng = ReframeEngine(Tunables(det_interval=3), EngineConfig(render=False), detector=detector)
    for i in range(9):
        eng.step(make_frame(i))
    assert len(calls) == 3
    # off-cycle frames are neither hits nor misses
    assert eng.state.miss_count == 0


# ---------------------------------------------------------------------------
#   Configuration surface
# ---------------------------------------------------------------------------
def test_tunables_setter_clamps_and_getter_copies(engine) -> None:
    t = engine.tunables
    t.max_zoom = 9.0
    assert engine.tunables.max_zoom == 2.5
    engine.tunables = t
    assert engine.tunables.max_zoom == 5.0
    assert engine.zoom.tunables.max_zoom == 5.0
    assert engine.stabilizer.tunables is engine.classifier.tunables


def test_apply_preset(engine, drive) -> None:
    drive(engine, [[det(400, 150, 200, 400)]] * 5)
    engine.apply_preset(CaptureMode.DANCE)
    assert engine.tunables.max_zoom == 1.5
    assert float(engine.state.box_filter.filters[0].kf.Q[0, 0]) == pytest.approx(0.001)
    assert engine.state.gains.nat_freq_hz_x == pytest.approx(3.5)
    results = drive(engine, [[det(400, 150, 200, 400)]] * 5)
    assert_invariants(results, max_zoom=1.5)
    with pytest.raises(KeyError):
        engine.apply_preset("salsa")


def test_output_size_validation(engine) -> None:
    with pytest.raises(ValueError):
        engine.set_output_size(0, 100)
    with pytest.raises(ValueError):
        ReframeEngine(config=EngineConfig(output_size=(100, -1)))
    with pytest.raises(ValueError):
        engine.step(make_frame(0, size=(0, 720)))


def test_set_output_size_changes_aspect(engine, drive) -> None:
    engine.set_output_size(1920, 1080)
    r = drive(engine, [[det(400, 150, 200, 300)]])[-1]
    assert abs(r.crop_rect.h - r.crop_rect.w * 1080 / 1920) <= 1.0


def test_reset(engine, drive) -> None:
    drive(engine, [[rep(i)] for i in range(40)])
    engine.reset()
    assert engine.state.stable_box is None
    assert engine.state.zoom == 1.0
    assert engine.state.frame_count == 0
    assert isinstance(engine.state.zoom_mode, Normal)
    assert engine.last_result is None


def test_status_strings(engine, drive) -> None:
    assert engine.zoom_status().startswith("NORMAL")
    drive(engine, [[rep(i)] for i in range(50)])
    assert engine.zoom_status().startswith("LOCKED")
    assert "in_place=yes" in engine.in_place_status()


def test_renders_when_image_given() -> None:
    eng = ReframeEngine(config=EngineConfig(output_size=(108, 192)))
    img = np.zeros((720, 1280, 3), dtype=np.uint8)
    r = eng.step(make_frame(0, image=img), [det(400, 150, 200, 400)])
    assert r.rendered.shape == (192, 108, 3)
    r = ReframeEngine(config=EngineConfig(render=False)).step(make_frame(0, image=img), [])
    assert r.rendered is None
