"""Deterministic stand-in for the spherical stitching capability."""
from __future__ import annotations

from typing import Callable, Dict, List, Optional, Sequence

import cv2
import numpy as np

from ..errors import StitchFailureCode
from .capability import StitchAttempt

FailurePredicate = Callable[[Sequence[np.ndarray]], bool]


class FakeSphericalStitcher:
    """Concatenate images side by side, or fail on request.

    Images are scaled to the height of the first one and joined left to
    right, which is enough to exercise ordering, fallback and normalisation
    without real feature matching.

    Parameters
    ----------
    fail_when:
        Predicate receiving the image batch; when it returns ``True`` the
        call fails with ``failure``.
    failure:
        Code reported for scripted failures.
    """

    def __init__(
        self,
        fail_when: Optional[FailurePredicate] = None,
        failure: StitchFailureCode = StitchFailureCode.INSUFFICIENT_MATCHES,
    ) -> None:
        self._fail_when = fail_when
        self.failure = failure
        self.calls: List[int] = []
        self.confidences: List[float] = []

    @classmethod
    def failing_whole_set(cls, min_batch: int, **kwargs) -> "FakeSphericalStitcher":
        """Fail every batch with at least ``min_batch`` images."""
        return cls(fail_when=lambda images: len(images) >= min_batch, **kwargs)

    @classmethod
    def always_failing(cls, **kwargs) -> "FakeSphericalStitcher":
        return cls(fail_when=lambda images: True, **kwargs)

    def capabilities(self) -> Dict[str, object]:
        return {"pythonOpenCV": False, "equirectangular360": True, "fake": True}

    def stitch(self, images: Sequence[np.ndarray], confidence_threshold: float) -> StitchAttempt:
        self.calls.append(len(images))
        self.confidences.append(confidence_threshold)
        if not images:
            return StitchAttempt.failed(StitchFailureCode.INSUFFICIENT_MATCHES, "No images")
        if self._fail_when is not None and self._fail_when(images):
            return StitchAttempt.failed(self.failure, "scripted failure")

        height = images[0].shape[0]
        strips = []
        for image in images:
            if image.shape[0] != height:
                width = max(1, int(round(image.shape[1] * height / float(image.shape[0]))))
                image = cv2.resize(image, (width, height), interpolation=cv2.INTER_AREA)
            strips.append(image)
        return StitchAttempt.success(np.hstack(strips))
