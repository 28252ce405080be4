# auto_reframe/__init__.py
"""Auto-reframe package – re-export the engine API (camera/detector glue is imported on demand)."""
from .common import Detection, FrameInput, FrameResult, Rect        # noqa: F401
from .config import (                                               # noqa: F401
    CameraConfig, CaptureMode, DetectorConfig, EngineConfig,
    Tunables, preset_tunables,
)
from .engine import ReframeEngine, select_subject                  # noqa: F401
from .helpers import map_point_to_crop, rect_from_keypoints        # noqa: F401
from .live_tuning import TunablesWatcher                           # noqa: F401
from .state import EngineState, Locked, Normal, PreLocked          # noqa: F401
