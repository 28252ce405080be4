# main.py
"""
Entry-point for the auto-reframe preview.

Live-tuning
-----------
Pass ``--params reframe_params.json`` and edit that file while the program
runs; any :class:`~auto_reframe.config.Tunables` field you put there
(dead-zones, gains, zoom rates ...) takes effect on the next frame. See
``auto_reframe/live_tuning.py`` for details.

Hot-keys: ``q`` quit, ``f`` fitness preset, ``d`` dance preset, ``r`` reset.
"""
from __future__ import annotations

import argparse
import logging
from typing import Sequence, Tuple

from auto_reframe.config import (
    CameraConfig,
    CaptureMode,
    DetectorConfig,
    EngineConfig,
    preset_tunables,
)


def _parse_size(text: str) -> Tuple[int, int]:
    try:
        w, h = (int(v) for v in text.lower().split("x"))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected WxH, got {text!r}") from None
    if w <= 0 or h <= 0:
        raise argparse.ArgumentTypeError(f"output size must be positive, got {text!r}")
    return w, h


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Real-time subject reframing preview")
    p.add_argument("--source", default="0", help="camera index or video file (default: 0)")
    p.add_argument("--mode", default=CaptureMode.FITNESS.value,
                   choices=[m.value for m in CaptureMode], help="capture preset")
    p.add_argument("--output", type=_parse_size, default=(1080, 1920), metavar="WxH",
                   help="output canvas size (default: 1080x1920)")
    p.add_argument("--params", default=None, metavar="JSON",
                   help="JSON file with live-tunable parameters")
    p.add_argument("--detect-interval", type=int, default=None, metavar="N",
                   help="run the detector every N frames (1-5)")
    p.add_argument("--loop", action="store_true", help="rewind video files at the end")
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return p


# ────────────────────────────────────────────────────────────────────────────
#   M A I N
# ────────────────────────────────────────────────────────────────────────────
def main(argv: Sequence[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    print("Initializing Auto-Reframe…")
    if args.params:
        print(f"Hint: edit '{args.params}' at any time to tweak parameters.\n")

    # -------------------- Config blobs --------------------
    source = int(args.source) if args.source.isdigit() else args.source
    cam_cfg = CameraConfig(source=source, loop_file=args.loop)
    det_cfg = DetectorConfig()
    eng_cfg = EngineConfig(output_size=args.output)
    tunables = preset_tunables(args.mode)
    if args.detect_interval is not None:
        tunables.det_interval = args.detect_interval
        tunables = tunables.clamped()

    # ------------------------ Banner ----------------------
    print(
        f"Source: {cam_cfg.source!r}, "
        f"{cam_cfg.width}x{cam_cfg.height}@{cam_cfg.fps_request} FPS requested"
    )
    print(
        f"Detector: pose complexity={det_cfg.model_complexity}, "
        f"conf={det_cfg.min_detection_confidence}, every {tunables.det_interval} frame(s)"
    )
    print(
        f"Output: {eng_cfg.output_size[0]}x{eng_cfg.output_size[1]}, mode={args.mode}, "
        f"max_zoom={tunables.max_zoom}, target width={tunables.target_width_lower:.2f}-"
        f"{tunables.target_width_upper:.2f}"
    )

    # ------------------------ Run -------------------------
    # Imported late so --help works without MediaPipe installed.
    from auto_reframe.processor import ReframingProcessor

    ReframingProcessor(cam_cfg, det_cfg, eng_cfg, tunables, args.params).run()
    print("Main program finished.")


if __name__ == "__main__":
    main()
