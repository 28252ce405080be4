# renderer.py
"""Crop + scale a BGR frame into the output canvas."""
from __future__ import annotations

from typing import Tuple

import cv2
import numpy as np

from auto_reframe.common import Rect

MIN_CROP_PX = 4


class FrameRenderer:
    def __init__(self, output_size: Tuple[int, int]):
        self.output_size = output_size

    def render(self, image: np.ndarray, crop: Rect) -> np.ndarray:
        ih, iw = image.shape[:2]
        x, y, w, h = crop.as_int_tuple()
        x = max(0, min(x, iw))
        y = max(0, min(y, ih))
        w = min(w, iw - x)
        h = min(h, ih - y)

        if w < MIN_CROP_PX or h < MIN_CROP_PX:
            roi = image
        else:
            roi = image[y:y + h, x:x + w]

        interp = cv2.INTER_AREA if roi.shape[1] > self.output_size[0] else cv2.INTER_LINEAR
        return cv2.resize(roi, self.output_size, interpolation=interp)
