"""Request/response types shared by the stitch client and service."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from ..errors import StitchFailure, StitchFailureCode

PHOTOS_FIELD = "photos"
METADATA_FIELD = "metadata"
HEALTH_PATH = "/api/health"
STITCH_PATH = "/api/stitch-panorama"
PANORAMA_PATH = "/panoramas"
PANORAMA_METADATA_PATH = "/api/panorama/{panorama_id}/metadata"


@dataclass(slots=True, frozen=True)
class UploadPart:
    """One image part of a stitch request."""

    filename: str
    data: bytes
    content_type: str = "image/jpeg"


@dataclass(slots=True, frozen=True)
class StitchResponse:
    """``{success, outputRef?, error?}`` answer to a stitch request."""

    success: bool
    output_ref: Optional[str] = None
    error: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": self.success}
        if self.output_ref is not None:
            payload["outputRef"] = self.output_ref
        if self.error is not None:
            payload["error"] = self.error
        if self.details:
            payload.update(self.details)
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "StitchResponse":
        known = {"success", "outputRef", "error"}
        details = {key: value for key, value in payload.items() if key not in known}
        return cls(
            success=bool(payload.get("success")),
            output_ref=payload.get("outputRef"),
            error=payload.get("error"),
            details=details or None,
        )

    @property
    def failure_code(self) -> Optional[StitchFailureCode]:
        """Stitch stage named by a ``"<code>: <message>"`` error, if any."""
        if self.success or not self.error:
            return None
        prefix, sep, _ = self.error.partition(":")
        if not sep:
            return None
        try:
            return StitchFailureCode(prefix.strip())
        except ValueError:
            return None

    @classmethod
    def failure(cls, exc: Exception) -> "StitchResponse":
        return cls(success=False, error=str(exc))

    def raise_for_failure(self) -> "StitchResponse":
        """Return ``self`` when successful, otherwise raise the classified failure."""
        if self.success:
            return self
        raise StitchFailure.from_message(self.error or "")
