"""Shared fixtures for the auto-reframe test suite."""
from __future__ import annotations

from typing import Callable, Iterable, List, Optional, Sequence

import pytest

from auto_reframe.common import Detection, FrameInput, FrameResult, Rect
from auto_reframe.config import EngineConfig, Tunables
from auto_reframe.engine import ReframeEngine

SENSOR = (1280, 720)
FPS = 30.0


def make_frame(index: int, size=SENSOR, image=None) -> FrameInput:
    return FrameInput(width=size[0], height=size[1], timestamp=index / FPS, image=image)


def det(x: float, y: float, w: float, h: float, conf: float = 0.9) -> Detection:
    return Detection(Rect(x, y, w, h), conf)


@pytest.fixture
def sensor() -> tuple[int, int]:
    return SENSOR


@pytest.fixture
def tunables() -> Tunables:
    return Tunables()


@pytest.fixture
def engine() -> ReframeEngine:
    """Engine with the default (fitness) tunables and a portrait 1080x1920 output."""
    return ReframeEngine(config=EngineConfig(render=False))


@pytest.fixture
def drive() -> Callable[..., List[FrameResult]]:
    """
    Feed a sequence of per-frame detection lists (``None`` entries are misses)
    into an engine, continuing its frame clock.
    """
    def _drive(eng: ReframeEngine, per_frame: Iterable[Optional[Sequence[Detection]]]) -> List[FrameResult]:
        out = []
        for dets in per_frame:
            index = eng.state.frame_count
            out.append(eng.step(make_frame(index), list(dets) if dets else []))
        return out

    return _drive
