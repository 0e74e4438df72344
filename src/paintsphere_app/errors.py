"""Error taxonomy shared by capture guidance, transport and stitching."""
from __future__ import annotations

from enum import Enum
from typing import Optional


class PanoramaError(Exception):
    """Base class for every error raised by the application."""


class CaptureError(PanoramaError):
    """The camera failed to take a picture (shutter or permission failure)."""


class OrientationUnavailable(PanoramaError):
    """The device orientation stream cannot be read."""


class ValidationError(PanoramaError):
    """An operation was attempted with insufficient or malformed input."""


class StateTransitionError(PanoramaError):
    """The capture state machine was asked for a transition it does not allow."""


class NetworkError(PanoramaError):
    """The stitch server could not be reached or answered with an HTTP error."""


class StitchTimeoutError(NetworkError, TimeoutError):
    """A health probe or stitch request exceeded its deadline."""


class StitchFailureCode(Enum):
    """Reasons a spherical reconstruction can fail."""

    INSUFFICIENT_MATCHES = "insufficient-matches"
    HOMOGRAPHY_FAILURE = "homography-failure"
    CAMERA_PARAM_FAILURE = "camera-param-failure"
    ROW_FALLBACK_FAILURE = "row-fallback-failure"

    def __str__(self) -> str:  # pragma: no cover - convenience for messages
        return self.value


class StitchFailure(PanoramaError):
    """Reconstruction failed; ``code`` tells which stage gave up."""

    def __init__(self, code: StitchFailureCode, message: str = "") -> None:
        self.code = code
        self.message = message or _DEFAULT_MESSAGES[code]
        super().__init__(f"{code.value}: {self.message}")

    @classmethod
    def from_message(cls, text: str) -> "StitchFailure":
        """Rebuild a failure from a ``"<code>: <message>"`` server error string.

        Unknown prefixes are classified as ``insufficient-matches``, the most
        common reason a server gives up on a photo set.
        """
        prefix, sep, rest = text.partition(":")
        code = _code_from_value(prefix.strip()) if sep else None
        if code is None:
            return cls(StitchFailureCode.INSUFFICIENT_MATCHES, text.strip() or "Stitching failed")
        return cls(code, rest.strip())


_DEFAULT_MESSAGES = {
    StitchFailureCode.INSUFFICIENT_MATCHES: "Not enough feature matches between images; ensure sufficient overlap.",
    StitchFailureCode.HOMOGRAPHY_FAILURE: "Homography estimation failed.",
    StitchFailureCode.CAMERA_PARAM_FAILURE: "Camera parameter adjustment failed.",
    StitchFailureCode.ROW_FALLBACK_FAILURE: "Row-grouped fallback could not produce an image.",
}


def _code_from_value(value: str) -> Optional[StitchFailureCode]:
    for code in StitchFailureCode:
        if code.value == value:
            return code
    return None
