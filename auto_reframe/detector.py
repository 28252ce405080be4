# detector.py
"""MediaPipe pose adapter: landmarks → subject :class:`Detection`."""
import logging
from typing import List

import cv2
import mediapipe as mp

from auto_reframe.common import Detection, FrameInput
from auto_reframe.config import DetectorConfig
from auto_reframe.helpers import rect_from_keypoints

log = logging.getLogger(__name__)


class MediaPipePoseDetector:
    def __init__(self, config: DetectorConfig):
        self.config = config
        self.pose = mp.solutions.pose.Pose(
            static_image_mode=False,
            model_complexity=config.model_complexity,
            min_detection_confidence=config.min_detection_confidence,
            min_tracking_confidence=config.min_tracking_confidence,
        )

    def __call__(self, frame: FrameInput) -> List[Detection]:
        return self.detect(frame)

    def detect(self, frame: FrameInput) -> List[Detection]:
        """
        Returns at most one detection (MediaPipe Pose tracks a single person).
        Any failure inside MediaPipe is logged and reported as a miss.
        """
        if frame.image is None:
            return []
        try:
            rgb = cv2.cvtColor(frame.image, cv2.COLOR_BGR2RGB)
            rgb.flags.writeable = False
            results = self.pose.process(rgb)
        except Exception as exc:  # noqa: BLE001
            log.warning("Pose inference failed: %s", exc)
            return []

        if not results.pose_landmarks:
            return []

        iw, ih = frame.width, frame.height
        points = [
            (lm.x * iw, lm.y * ih, float(lm.visibility))
            for lm in results.pose_landmarks.landmark
        ]
        found = rect_from_keypoints(
            points,
            min_confidence=self.config.min_joint_confidence,
            pad_ratio=self.config.bbox_pad_ratio,
            bounds=(iw, ih),
        )
        if found is None:
            return []
        rect, conf = found
        if rect.w < self.config.min_bbox_size_px or rect.h < self.config.min_bbox_size_px:
            return []
        return [Detection(rect, conf)]

    def close(self) -> None:
        self.pose.close()
