# processor.py
"""Glue logic that wires camera → detector → reframe engine → preview."""
from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from auto_reframe.camera import Camera
from auto_reframe.common import FrameResult
from auto_reframe.config import CameraConfig, CaptureMode, DetectorConfig, EngineConfig, Tunables
from auto_reframe.detector import MediaPipePoseDetector
from auto_reframe.engine import ReframeEngine
from auto_reframe.helpers import map_point_to_crop
from auto_reframe.live_tuning import TunablesWatcher

log = logging.getLogger(__name__)

SOURCE_WINDOW = "Auto Reframe - source"
OUTPUT_WINDOW = "Auto Reframe - output"
PREVIEW_HEIGHT = 640


class ReframingProcessor:
    """The main high-level orchestrator."""

    def __init__(
        self,
        camera_cfg: CameraConfig,
        detector_cfg: DetectorConfig,
        engine_cfg: EngineConfig,
        tunables: Optional[Tunables] = None,
        params_path: Optional[str | Path] = None,
    ):
        self.camera_cfg = camera_cfg
        self.detector_cfg = detector_cfg

        self.camera = Camera(camera_cfg)
        self.detector = MediaPipePoseDetector(detector_cfg)
        self.engine = ReframeEngine(tunables, engine_cfg, detector=self.detector)
        self.watcher = TunablesWatcher(params_path) if params_path else None
        if self.watcher is not None and self.watcher.params:
            self.engine.tunables, _ = self.watcher.apply(self.engine.tunables)

        # Runtime metrics
        self.frame_count = 0
        self.proc_time_sum = 0.0
        self.proc_samples = 0
        self.fps_timer_start = time.time()
        self.disp_fps = 0.0
        self.disp_proc_ms_avg = 0.0

        self.last_valid_frame: Optional[np.ndarray] = None
        self.total_frames = 0

    # ---------------------------------------------------------------------
    #                         Setup / teardown
    # ---------------------------------------------------------------------
    def setup(self) -> bool:
        if not self.camera.open():
            return False
        w, h, _, _ = self.camera.get_properties()
        cv2.namedWindow(SOURCE_WINDOW, cv2.WINDOW_NORMAL)
        cv2.resizeWindow(SOURCE_WINDOW, w // 2, h // 2)
        cv2.namedWindow(OUTPUT_WINDOW, cv2.WINDOW_NORMAL)
        out_w, out_h = self.engine.config.output_size
        cv2.resizeWindow(OUTPUT_WINDOW, max(1, out_w * PREVIEW_HEIGHT // out_h), PREVIEW_HEIGHT)
        log.info("Setup complete - q quit, f fitness, d dance, r reset")
        return True

    def cleanup(self) -> None:
        log.info("Cleaning up...")
        self.camera.release()
        self.detector.close()
        cv2.destroyAllWindows()
        log.info("Exited. Total frames: %d", self.total_frames)

    # ---------------------------------------------------------------------
    #                        Drawing / UI helpers
    # ---------------------------------------------------------------------
    def _draw_overlay(self, img: np.ndarray, res: FrameResult) -> None:
        green, yellow, red = (0, 255, 0), (0, 255, 255), (0, 0, 255)
        font = cv2.FONT_HERSHEY_SIMPLEX
        cv2.putText(img, f"FPS:{self.disp_fps:.1f}", (10, 30), font, 0.7, green, 2)
        cv2.putText(img, f"Proc:{self.disp_proc_ms_avg:.1f}ms", (10, 60), font, 0.7, green, 2)
        cv2.putText(img, self.engine.zoom_status(), (10, 90), font, 0.6, yellow, 1)
        cv2.putText(img, self.engine.in_place_status(), (10, 115), font, 0.6, yellow, 1)

        if res.raw_box is not None:
            x, y, w, h = res.raw_box.as_int_tuple()
            cv2.rectangle(img, (x, y), (x + w, y + h), green, 1)
            cv2.putText(img, f"Cf:{res.confidence:.2f}", (x, y - 10 if y > 10 else y + h + 15),
                        font, 0.5, green, 1)
        if res.stable_box is not None:
            x, y, w, h = res.stable_box.as_int_tuple()
            cv2.rectangle(img, (x, y), (x + w, y + h), yellow, 2)

        x, y, w, h = res.crop_rect.as_int_tuple()
        cv2.rectangle(img, (x, y), (x + w, y + h), red, 2)

    def _draw_output(self, img: np.ndarray, res: FrameResult) -> None:
        if res.stable_box is None:
            return
        uv = map_point_to_crop(res.stable_box.center, res.crop_rect)
        if uv is not None:
            oh, ow = img.shape[:2]
            cv2.circle(img, (int(uv[0] * ow), int(uv[1] * oh)), 6, (0, 255, 255), -1)
        cv2.putText(img, res.phase, (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 1.0, (0, 255, 255), 2)

    # ---------------------------------------------------------------------
    #                          Main per-frame loop
    # ---------------------------------------------------------------------
    def _process_frame(self) -> bool:
        """Returns False if the caller should exit the main loop."""
        now = time.time()

        if self.watcher is not None and self.watcher.maybe_reload():
            self.engine.tunables, _ = self.watcher.apply(self.engine.tunables)

        frame = self.camera.read()
        if frame is None:
            if self.camera.exhausted or (
                not self.camera.is_opened() and self.camera.reopens >= self.camera.max_reopens
            ):
                return False
            if self.last_valid_frame is not None:
                disp = self.last_valid_frame.copy()
                cv2.putText(disp, "Cam Err", (50, 50), cv2.FONT_HERSHEY_SIMPLEX, 0.8, (0, 0, 255), 2)
                cv2.imshow(SOURCE_WINDOW, disp)
            time.sleep(0.05)
            return True

        self.last_valid_frame = frame.image
        self.total_frames += 1

        tic = time.time()
        res = self.engine.step(frame)

        proc_ms = (time.time() - tic) * 1000.0
        self.proc_time_sum += proc_ms
        self.proc_samples += 1
        self.frame_count += 1

        if now - self.fps_timer_start >= 1.0:
            self.disp_fps = self.frame_count / (now - self.fps_timer_start)
            if self.proc_samples > 0:
                self.disp_proc_ms_avg = self.proc_time_sum / self.proc_samples
            self.frame_count = 0
            self.proc_time_sum = 0.0
            self.proc_samples = 0
            self.fps_timer_start = now

        src = frame.image.copy()
        self._draw_overlay(src, res)
        cv2.imshow(SOURCE_WINDOW, src)
        if res.rendered is not None:
            out = res.rendered.copy()
            self._draw_output(out, res)
            cv2.imshow(OUTPUT_WINDOW, out)
        return True

    def _handle_key(self, key: int) -> bool:
        if key == ord("q"):
            return False
        if key == ord("f"):
            self.engine.apply_preset(CaptureMode.FITNESS)
        elif key == ord("d"):
            self.engine.apply_preset(CaptureMode.DANCE)
        elif key == ord("r"):
            self.engine.reset()
            log.info("Engine reset by user")
        return True

    # ---------------------------------------------------------------------
    #                             Public run()
    # ---------------------------------------------------------------------
    def run(self) -> None:
        if not self.setup():
            self.cleanup()
            return
        try:
            while self._process_frame():
                if not self._handle_key(cv2.waitKey(1) & 0xFF):
                    break
        except KeyboardInterrupt:
            log.info("Stopped by user.")
        except Exception:
            log.exception("Main loop error")
        finally:
            self.cleanup()
