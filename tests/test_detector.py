from __future__ import annotations

import numpy as np
import pytest

from auto_reframe.common import FrameInput
from auto_reframe.config import DetectorConfig

mp = pytest.importorskip("mediapipe")
if not hasattr(mp, "solutions"):
    pytest.skip("mediapipe build without the solutions API", allow_module_level=True)

from auto_reframe.detector import MediaPipePoseDetector  # noqa: E402


@pytest.fixture
def detector():
    d = MediaPipePoseDetector(DetectorConfig(model_complexity=0))
    yield d
    d.close()


def test_blank_frame_has_no_subject(detector) -> None:
    img = np.zeros((240, 320, 3), dtype=np.uint8)
    assert detector(FrameInput(320, 240, 0.0, img)) == []


def test_frame_without_image(detector) -> None:
    assert detector.detect(FrameInput(320, 240, 0.0)) == []
