# camera.py
"""VideoCapture wrapper for a device index or a video file, with reconnection."""

from __future__ import annotations

import logging
import time
from typing import Optional, Tuple

import cv2

from auto_reframe.common import FrameInput
from auto_reframe.config import CameraConfig

log = logging.getLogger(__name__)


class Camera:
    def __init__(self, config: CameraConfig, max_reopens: int = 5) -> None:
        self.config = config
        self.cap: Optional[cv2.VideoCapture] = None
        self.max_reopens = max_reopens
        self.reopens = 0

        # Exposed runtime-queryable values
        self.actual_width: int = 0
        self.actual_height: int = 0
        self.actual_fps: float = 0.0
        self.actual_fourcc_str: str = ""

    # ------------------------------------------------------------------ #
    #   I N T E R N A L   H E L P E R S
    # ------------------------------------------------------------------ #
    @staticmethod
    def _get_fourcc_str(fourcc_val: int) -> str:
        if fourcc_val == 0:
            return ""
        return "".join(chr((fourcc_val >> (8 * i)) & 0xFF) for i in range(4))

    @property
    def is_file(self) -> bool:
        return isinstance(self.config.source, str) and not self.config.source.isdigit()

    # ------------------------------------------------------------------ #
    #   P U B L I C   A P I
    # ------------------------------------------------------------------ #
    def open(self) -> bool:
        source = self.config.source
        if isinstance(source, str) and source.isdigit():
            source = int(source)
        self.cap = cv2.VideoCapture(source)
        if not self.cap or not self.cap.isOpened():
            log.error("Could not open video source %r", self.config.source)
            self.cap = None
            return False

        if not self.is_file:
            if self.config.fourcc_str:
                self.cap.set(cv2.CAP_PROP_FOURCC, cv2.VideoWriter_fourcc(*self.config.fourcc_str))
            self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.width)
            self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.height)
            if self.config.fps_request > 0:
                self.cap.set(cv2.CAP_PROP_FPS, self.config.fps_request)
            time.sleep(0.1)  # let the driver settle

        self.actual_fourcc_str = self._get_fourcc_str(int(self.cap.get(cv2.CAP_PROP_FOURCC)))
        self.actual_width = int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        self.actual_height = int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        self.actual_fps = self.cap.get(cv2.CAP_PROP_FPS)

        log.info(
            "Capture %dx%d@%.1f FPS (FOURCC=%r)",
            self.actual_width, self.actual_height, self.actual_fps, self.actual_fourcc_str,
        )
        if self.actual_width == 0 or self.actual_height == 0:
            log.error("Capture returned zero resolution")
            self.release()
            return False
        self.reopens = 0
        return True

    def read(self) -> Optional[FrameInput]:
        """
        Next frame, or ``None``. A closed device is re-opened up to
        ``max_reopens`` times; a finished file rewinds when ``loop_file`` is set.
        """
        if not self.is_opened():
            if self.reopens < self.max_reopens:
                self.reopens += 1
                log.warning("Re-opening capture (attempt %d/%d)", self.reopens, self.max_reopens)
                self.open()
            return None

        ts = time.time()
        ret, image = self.cap.read()
        if not ret or image is None:
            if self.is_file and self.config.loop_file:
                self.cap.set(cv2.CAP_PROP_POS_FRAMES, 0)
            elif not self.is_file:
                log.warning("Frame grab failed; releasing device")
                self.release()
            return None

        if self.is_file and self.actual_fps > 0:
            ts = self.cap.get(cv2.CAP_PROP_POS_MSEC) / 1000.0
        h, w = image.shape[:2]
        return FrameInput(width=w, height=h, timestamp=ts, image=image)

    @property
    def exhausted(self) -> bool:
        """A non-looping file that reached its end."""
        if not (self.is_file and self.is_opened()) or self.config.loop_file:
            return False
        total = self.cap.get(cv2.CAP_PROP_FRAME_COUNT)
        return total > 0 and self.cap.get(cv2.CAP_PROP_POS_FRAMES) >= total

    def is_opened(self) -> bool:
        return bool(self.cap and self.cap.isOpened())

    def release(self) -> None:
        if self.cap:
            log.info("Releasing capture device")
            self.cap.release()
            self.cap = None

    # Convenience for other modules
    def get_properties(self) -> Tuple[int, int, float, str]:
        return (
            self.actual_width,
            self.actual_height,
            self.actual_fps,
            self.actual_fourcc_str,
        )
