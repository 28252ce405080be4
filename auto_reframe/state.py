# state.py
"""Per-subject mutable state of the reframing engine."""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import ClassVar, Optional, Union

from auto_reframe.adaptive import AdaptiveState
from auto_reframe.box_filter import BoxFilterState
from auto_reframe.common import Point, Rect
from auto_reframe.motion import ClassifierState
from auto_reframe.stabilizer import ControlGains, StabilizerState


@dataclass(frozen=True)
class Normal:
    label: ClassVar[str] = "normal"


@dataclass(frozen=True)
class PreLocked:
    label: ClassVar[str] = "pre_locked"


@dataclass(frozen=True)
class Locked:
    """Zoom pinned at ``zoom``; ``center`` is the slowly creeping crop centre."""
    zoom: float
    center: Point
    label: ClassVar[str] = "locked"


ZoomMode = Union[Normal, PreLocked, Locked]


@dataclass
class EngineState:
    zoom: float = 1.0
    zoom_mode: ZoomMode = field(default_factory=Normal)
    confidence: float = 0.0

    raw_box: Optional[Rect] = None
    filtered_box: Optional[Rect] = None
    stable_box: Optional[Rect] = None

    miss_count: int = 0
    frame_count: int = 0
    last_timestamp: Optional[float] = None

    box_filter: BoxFilterState = field(default_factory=BoxFilterState)
    stabilizer: StabilizerState = field(default_factory=StabilizerState)
    classifier: ClassifierState = field(default_factory=ClassifierState)
    adaptive: AdaptiveState = field(default_factory=AdaptiveState)
    gains: ControlGains = field(default_factory=ControlGains)

    @property
    def velocity(self) -> Point:
        return (self.stabilizer.vx, self.stabilizer.vy)

    @property
    def in_place(self) -> bool:
        return self.classifier.in_place

    @property
    def locked_zoom(self) -> Optional[float]:
        return self.zoom_mode.zoom if isinstance(self.zoom_mode, Locked) else None

    @property
    def locked_center(self) -> Optional[Point]:
        return self.zoom_mode.center if isinstance(self.zoom_mode, Locked) else None

    def reset(self, gains: Optional[ControlGains] = None) -> None:
        """Reinitialise every field, rolling windows and lock included."""
        fresh = EngineState(gains=gains if gains is not None else ControlGains())
        for f in fields(self):
            setattr(self, f.name, getattr(fresh, f.name))
