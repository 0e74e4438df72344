"""Photo and guidance models produced during a capture session."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict

from .orientation import Orientation


class GuideDirection(Enum):
    """Direction label suggested to the user for reaching a guide."""

    LEFT = "left"
    RIGHT = "right"
    UP = "up"
    DOWN = "down"

    def __str__(self) -> str:  # pragma: no cover - convenience for UI display
        return self.value


class CaptureState(Enum):
    """Lifecycle of a capture session."""

    READY = "ready"
    CAPTURING = "capturing"
    PROCESSING = "processing"
    DONE = "done"

    def __str__(self) -> str:  # pragma: no cover - convenience for logs
        return self.value


@dataclass(slots=True, frozen=True)
class CapturedPhoto:
    """A photo together with the orientation it was taken at.

    Attributes
    ----------
    id:
        Sequential identifier within the session, starting at zero.
    image_ref:
        Reference returned by the camera, usually a file path or URI.
    orientation:
        Orientation of the device when the shutter was triggered.
    captured_at:
        Wall-clock timestamp (UNIX seconds) of the capture.
    """

    id: int
    image_ref: str
    orientation: Orientation
    captured_at: float

    @property
    def yaw(self) -> float:
        return self.orientation.yaw

    @property
    def pitch(self) -> float:
        return self.orientation.pitch

    @property
    def roll(self) -> float:
        return self.orientation.roll

    def orientation_record(self) -> Dict[str, Any]:
        """Return the record submitted with a stitch request."""
        return {
            "id": self.id,
            "yaw": self.yaw,
            "pitch": self.pitch,
            "roll": self.roll,
            "timestamp": self.captured_at,
        }


@dataclass(slots=True, frozen=True)
class FrontierGuide:
    """Candidate direction for the next photo, recomputed every tick."""

    yaw: float
    pitch: float
    direction: GuideDirection


@dataclass(slots=True, frozen=True)
class DirectionHint:
    """Offset from the current view to the closest guide."""

    guide: FrontierGuide
    d_yaw: float
    d_pitch: float
    distance: float


@dataclass(slots=True, frozen=True)
class ScreenPoint:
    """A guide projected into screen coordinates."""

    guide: FrontierGuide
    x: float
    y: float
    visible: bool
