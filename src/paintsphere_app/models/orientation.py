"""Orientation domain models."""
from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Any, Mapping, Optional

from ..math.geometry import clamp_pitch, wrap_yaw


@dataclass(slots=True, frozen=True)
class Orientation:
    """Device orientation relative to the session reference frame (degrees)."""

    yaw: float
    pitch: float
    roll: float = 0.0
    timestamp: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "yaw", wrap_yaw(self.yaw))
        object.__setattr__(self, "pitch", clamp_pitch(self.pitch))

    def to_dict(self) -> dict[str, float]:
        return {
            "yaw": self.yaw,
            "pitch": self.pitch,
            "roll": self.roll,
            "timestamp": self.timestamp,
        }


FALLBACK_ORIENTATION = Orientation(yaw=0.0, pitch=0.0, roll=0.0)


@dataclass(slots=True, frozen=True)
class AngularRate:
    """Absolute rotation rate on the heading (alpha) and tilt (beta) axes."""

    alpha: float = 0.0
    beta: float = 0.0

    def is_below(self, threshold: float) -> bool:
        return self.alpha < threshold and self.beta < threshold


@dataclass(slots=True, frozen=True)
class RawRotation:
    """One raw device-motion sample.

    ``alpha`` is the heading, ``beta`` the tilt and ``gamma`` the lean, all in
    radians as delivered by the sensor fusion layer. ``rotation_rate`` is the
    optional per-axis rate reported alongside.
    """

    alpha: float
    beta: float
    gamma: float
    rotation_rate: Optional[AngularRate] = None
    timestamp: Optional[float] = None

    @classmethod
    def from_sample(cls, sample: Mapping[str, Any]) -> Optional["RawRotation"]:
        """Parse a ``{alpha, beta, gamma, rotationRate?}`` mapping.

        The nested device-motion layout ``{"rotation": {...}, "rotationRate":
        {...}}`` is accepted as well. Returns ``None`` when the sample has no
        rotation payload.
        """
        rotation = sample.get("rotation", sample)
        if not isinstance(rotation, Mapping):
            return None
        try:
            alpha = float(rotation["alpha"])
            beta = float(rotation["beta"])
            gamma = float(rotation["gamma"])
        except (KeyError, TypeError, ValueError):
            return None
        if not all(math.isfinite(value) for value in (alpha, beta, gamma)):
            return None

        rate_payload = sample.get("rotationRate")
        rate: Optional[AngularRate] = None
        if isinstance(rate_payload, Mapping):
            rate = AngularRate(
                alpha=abs(float(rate_payload.get("alpha") or 0.0)),
                beta=abs(float(rate_payload.get("beta") or 0.0)),
            )
        timestamp = sample.get("timestamp")
        return cls(
            alpha=alpha,
            beta=beta,
            gamma=gamma,
            rotation_rate=rate,
            timestamp=float(timestamp) if timestamp is not None else None,
        )
