"""Capture session state owned by the scheduler."""
from __future__ import annotations

from dataclasses import dataclass, field
import json
from typing import Any, Dict, List, Optional
import uuid

from ..models.capture import CapturedPhoto, CaptureState
from ..models.orientation import Orientation
from .coverage import CoverageGrid


@dataclass(slots=True)
class CaptureSession:
    """One capture run: its coverage grid, photos and lifecycle state.

    A session is created when capture starts and is never shared: a new
    start always builds a new session with its own grid, so a stale
    reference held by an in-flight capture can be detected by identity.
    """

    grid: CoverageGrid
    state: CaptureState = CaptureState.CAPTURING
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    photos: List[CapturedPhoto] = field(default_factory=list)
    coverage: float = 0.0
    started_at: float = 0.0
    last_trigger_at: Optional[float] = None
    in_flight: bool = False
    result: Optional[Any] = None

    @property
    def photo_count(self) -> int:
        return len(self.photos)

    @property
    def last_photo(self) -> Optional[CapturedPhoto]:
        return self.photos[-1] if self.photos else None

    def add_photo(
        self,
        image_ref: str,
        orientation: Orientation,
        captured_at: float,
        h_half_span_deg: float,
        v_half_span_deg: float,
    ) -> CapturedPhoto:
        """Append a photo and stamp its footprint onto the grid."""
        photo = CapturedPhoto(
            id=len(self.photos),
            image_ref=image_ref,
            orientation=orientation,
            captured_at=captured_at,
        )
        self.photos.append(photo)
        self.grid.mark_covered(photo.yaw, photo.pitch, h_half_span_deg, v_half_span_deg)
        self.coverage = max(self.coverage, self.grid.coverage_ratio())
        return photo

    def orientation_records(self) -> List[Dict[str, Any]]:
        return [photo.orientation_record() for photo in self.photos]

    def orientation_record_json(self) -> str:
        """Serialised orientation list, as embedded in stitch request metadata."""
        return json.dumps(self.orientation_records(), separators=(",", ":"))
