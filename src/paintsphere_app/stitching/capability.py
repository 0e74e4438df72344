"""Black-box spherical stitching capability and its OpenCV binding."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Sequence

import cv2
import numpy as np
from loguru import logger

from ..errors import StitchFailureCode


@dataclass(slots=True)
class StitchAttempt:
    """Result of one call to a stitching capability."""

    image: Optional[np.ndarray] = None
    failure: Optional[StitchFailureCode] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.failure is None and self.image is not None

    @classmethod
    def success(cls, image: np.ndarray) -> "StitchAttempt":
        return cls(image=image)

    @classmethod
    def failed(cls, code: StitchFailureCode, detail: str = "") -> "StitchAttempt":
        return cls(failure=code, detail=detail)


class SphericalStitcher(Protocol):
    """Feature matching, homography estimation and blending behind one call."""

    def stitch(self, images: Sequence[np.ndarray], confidence_threshold: float) -> StitchAttempt: ...

    def capabilities(self) -> Dict[str, object]: ...


_STATUS_CODES = {
    1: StitchFailureCode.INSUFFICIENT_MATCHES,
    2: StitchFailureCode.HOMOGRAPHY_FAILURE,
    3: StitchFailureCode.CAMERA_PARAM_FAILURE,
}


class OpenCVSphericalStitcher:
    """``cv2.Stitcher`` in PANORAMA mode (spherical warping)."""

    def capabilities(self) -> Dict[str, object]:
        return {
            "pythonOpenCV": True,
            "opencvVersion": cv2.__version__,
            "equirectangular360": True,
        }

    def stitch(self, images: Sequence[np.ndarray], confidence_threshold: float) -> StitchAttempt:
        if len(images) < 2:
            return StitchAttempt.failed(StitchFailureCode.INSUFFICIENT_MATCHES, "At least two images are required")

        stitcher = cv2.Stitcher_create(cv2.Stitcher_PANORAMA)
        stitcher.setPanoConfidenceThresh(confidence_threshold)
        try:
            status, panorama = stitcher.stitch(list(images))
        except cv2.error as exc:
            logger.warning("OpenCV stitcher raised: {}", exc)
            return StitchAttempt.failed(StitchFailureCode.HOMOGRAPHY_FAILURE, str(exc))

        if status != cv2.Stitcher_OK or panorama is None:
            code = _STATUS_CODES.get(int(status), StitchFailureCode.INSUFFICIENT_MATCHES)
            logger.debug("OpenCV stitch of {} images failed with status {}", len(images), status)
            return StitchAttempt.failed(code, f"OpenCV status {int(status)}")
        return StitchAttempt.success(panorama)
