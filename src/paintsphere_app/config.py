"""Tunable parameters for capture guidance, stitching and the stitch server."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Tuple

SERVER_URL_ENV = "PAINTSPHERE_STITCH_SERVER"


@dataclass(slots=True)
class CaptureConfig:
    """Parameters of a guided capture session.

    Attributes
    ----------
    h_fov_deg, v_fov_deg:
        Camera field of view in portrait orientation.
    photo_h_span_deg, photo_v_span_deg:
        Angular footprint each photo stamps on the sphere. Kept below the FOV
        so neighbouring photos overlap.
    cell_size_deg:
        Angular size of one coverage grid cell.
    pitch_min_deg, pitch_max_deg:
        Pitch band tracked by the coverage grid; the full sphere by default.
    target_coverage:
        Coverage ratio that finishes the session automatically.
    stability_threshold:
        Maximum angular rate on each axis for an automatic capture.
    cooldown_s:
        Minimum delay between two capture triggers.
    min_photos:
        Photos required before the session may move to processing.
    """

    h_fov_deg: float = 60.0
    v_fov_deg: float = 80.0
    photo_h_span_deg: float = 60.0 * 0.65
    photo_v_span_deg: float = 80.0 * 0.65
    cell_size_deg: float = 5.0
    pitch_min_deg: float = -90.0
    pitch_max_deg: float = 90.0
    target_coverage: float = 0.85
    stability_threshold: float = 0.35
    cooldown_s: float = 0.7
    min_photos: int = 6
    capture_quality: float = 0.85
    capture_retries: int = 1
    tick_interval_s: float = 0.05
    sample_fraction: float = 0.3
    screen_size: Tuple[int, int] = (390, 844)
    screen_margin_px: float = 80.0

    def __post_init__(self) -> None:
        if self.cell_size_deg <= 0.0 or self.cell_size_deg > 90.0:
            raise ValueError(f"cell_size_deg must be in (0, 90], got {self.cell_size_deg}")
        if not -90.0 <= self.pitch_min_deg < self.pitch_max_deg <= 90.0:
            raise ValueError(
                f"Invalid pitch band [{self.pitch_min_deg}, {self.pitch_max_deg}]; expected -90 <= min < max <= 90"
            )
        if not 0.0 < self.target_coverage <= 1.0:
            raise ValueError(f"target_coverage must be in (0, 1], got {self.target_coverage}")
        if self.min_photos < 1:
            raise ValueError("min_photos must be at least 1")
        if self.capture_retries < 0:
            raise ValueError("capture_retries cannot be negative")

    @property
    def photo_h_half_span_deg(self) -> float:
        return self.photo_h_span_deg / 2.0

    @property
    def photo_v_half_span_deg(self) -> float:
        return self.photo_v_span_deg / 2.0


@dataclass(slots=True)
class StitchConfig:
    """Parameters of the stitch orchestration and output encoding."""

    canvas_width: int = 4096
    canvas_height: int = 2048
    jpeg_quality: int = 92
    pitch_bucket_deg: float = 30.0
    max_input_dimension: int = 1600
    whole_confidence: float = 0.15
    row_confidence: float = 0.1
    lossy_row_fallback: bool = True

    def __post_init__(self) -> None:
        if self.canvas_height <= 0 or self.canvas_width != 2 * self.canvas_height:
            raise ValueError(
                f"Equirectangular canvas must be exactly 2:1, got {self.canvas_width}x{self.canvas_height}"
            )
        if not 1 <= self.jpeg_quality <= 100:
            raise ValueError(f"jpeg_quality must be in [1, 100], got {self.jpeg_quality}")
        if self.pitch_bucket_deg <= 0.0:
            raise ValueError("pitch_bucket_deg must be positive")

    @classmethod
    def for_width(cls, width: int, **overrides) -> "StitchConfig":
        """Build a config whose canvas is ``width`` x ``width // 2``."""
        return cls(canvas_width=width, canvas_height=width // 2, **overrides)


@dataclass(slots=True)
class ServerConfig:
    """Connection settings for the remote stitch server."""

    server_url: str = "http://127.0.0.1:3000"
    request_timeout_s: float = 300.0
    health_timeout_s: float = 5.0
    connect_timeout_s: float = 10.0
    upload_quality: float = 0.85
    max_retries: int = 2
    capture_type: str = "paint-sphere-360"

    def __post_init__(self) -> None:
        self.server_url = self.server_url.rstrip("/")
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")

    @classmethod
    def from_env(cls, **overrides) -> "ServerConfig":
        """Prefer the ``PAINTSPHERE_STITCH_SERVER`` environment variable for the URL."""
        url = os.environ.get(SERVER_URL_ENV)
        if url and "server_url" not in overrides:
            overrides["server_url"] = url
        return cls(**overrides)

    def endpoint(self, path: str) -> str:
        return f"{self.server_url}/{path.lstrip('/')}"
