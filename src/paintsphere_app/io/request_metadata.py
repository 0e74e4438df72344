"""Metadata part of a stitch request.

The metadata travels as one JSON form field next to the image parts::

    {"captureType": "paint-sphere-360", "photoCount": 6, "coverage": 87,
     "orientations": [{"id": 0, "yaw": 0.0, "pitch": 1.5, "roll": 0.2,
                       "timestamp": 1718000000.0}, ...],
     "timestamp": "2024-06-10T08:00:00+00:00"}

The orientation list is copied verbatim from the session record, in
capture order, so the server sees exactly what the device stored.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import json
import math
from typing import Any, Dict, List, Optional

from ..errors import ValidationError
from ..guidance.session import CaptureSession


@dataclass(slots=True, frozen=True)
class StitchRequestMetadata:
    """Validated metadata received with a stitch request."""

    capture_type: str
    photo_count: int
    orientations: List[Dict[str, float]]
    coverage: Optional[float] = None
    timestamp: Optional[str] = None


def build_request_metadata(
    session: CaptureSession,
    capture_type: str,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    return {
        "captureType": capture_type,
        "photoCount": session.photo_count,
        "coverage": round(session.coverage * 100),
        "orientations": session.orientation_records(),
        "timestamp": now.isoformat(),
    }


def encode_request_metadata(metadata: Dict[str, Any]) -> str:
    return json.dumps(metadata, separators=(",", ":"))


def parse_request_metadata(payload: str | bytes | Dict[str, Any]) -> StitchRequestMetadata:
    """Validate a metadata part; raises :class:`ValidationError` when malformed."""
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Metadata is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValidationError("Metadata must be a JSON object")

    raw_orientations = payload.get("orientations")
    if not isinstance(raw_orientations, list):
        raise ValidationError("Metadata is missing the orientations list")

    orientations = [_parse_orientation(entry, index) for index, entry in enumerate(raw_orientations)]
    photo_count = payload.get("photoCount", len(orientations))
    if not isinstance(photo_count, int) or photo_count != len(orientations):
        raise ValidationError(
            f"photoCount {photo_count!r} does not match {len(orientations)} orientation records"
        )

    coverage = payload.get("coverage")
    return StitchRequestMetadata(
        capture_type=str(payload.get("captureType", "unknown")),
        photo_count=photo_count,
        orientations=orientations,
        coverage=float(coverage) if isinstance(coverage, (int, float)) else None,
        timestamp=payload.get("timestamp"),
    )


def _parse_orientation(entry: Any, index: int) -> Dict[str, float]:
    if not isinstance(entry, dict):
        raise ValidationError(f"Orientation record {index} is not an object")
    record_id = entry.get("id", index)
    if isinstance(record_id, bool) or not isinstance(record_id, int):
        raise ValidationError(f"Orientation record {index} has invalid id: {record_id!r}")
    record: Dict[str, float] = {"id": record_id}
    for key in ("yaw", "pitch"):
        value = entry.get(key)
        if value is None:
            raise ValidationError(f"Orientation record {index} has invalid {key}: None")
        record[key] = _number(value, key, index)
    if not -90.0 <= record["pitch"] <= 90.0:
        raise ValidationError(f"Orientation record {index} pitch {record['pitch']} outside [-90, 90]")
    record["roll"] = _number(entry.get("roll"), "roll", index)
    record["timestamp"] = _number(entry.get("timestamp"), "timestamp", index)
    return record


def _number(value: Any, key: str, index: int) -> float:
    """Finite float from a JSON number; ``None`` reads as zero."""
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValidationError(f"Orientation record {index} has invalid {key}: {value!r}")
    return float(value)
