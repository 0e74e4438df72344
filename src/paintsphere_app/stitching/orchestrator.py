"""Turn a captured photo set into one equirectangular panorama.

The whole set is first handed to the stitching capability in a single call.
When that fails the photos are grouped into horizontal rows by pitch, each
row is stitched on its own and the rows are stacked top (highest pitch) to
bottom. Either way the result is cropped to its non-black content, resized
to a fixed 2:1 canvas and encoded as JPEG.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np
from loguru import logger

from ..config import StitchConfig
from ..errors import PanoramaError, StitchFailure, StitchFailureCode, ValidationError
from ..io.loader import encode_jpeg, load_capture_image
from ..models.capture import CapturedPhoto
from .capability import SphericalStitcher

ImageLoader = Callable[[str], np.ndarray]

METHOD_WHOLE = "whole-sphere"
METHOD_ROWS = "row-fallback"


@dataclass(slots=True, frozen=True)
class EquirectangularImage:
    """Encoded panorama plus a summary of how it was produced."""

    data: bytes
    width: int
    height: int
    method: str
    photo_count: int
    row_pitches: Tuple[int, ...] = ()
    degraded_rows: Tuple[int, ...] = ()
    whole_failure: Optional[StitchFailureCode] = None

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"

    @property
    def lossy(self) -> bool:
        return bool(self.degraded_rows)


def pitch_bucket(pitch_deg: float, bucket_deg: float = 30.0) -> int:
    """Round a pitch to the nearest bucket centre; exact halves go to the even bucket (15 -> 0, 45 -> 60)."""
    return int(round(pitch_deg / bucket_deg) * bucket_deg)


def sort_for_stitching(photos: Sequence[CapturedPhoto], bucket_deg: float = 30.0) -> List[CapturedPhoto]:
    """Order photos by pitch row, then by yaw within the row."""
    return sorted(photos, key=lambda photo: (pitch_bucket(photo.pitch, bucket_deg), photo.yaw))


def crop_to_content(image: np.ndarray, threshold: int = 1) -> Optional[np.ndarray]:
    """Crop to the bounding box of pixels brighter than ``threshold``.

    Returns ``None`` when the image has no such pixel.
    """
    gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY) if image.ndim == 3 else image
    _, mask = cv2.threshold(gray, threshold, 255, cv2.THRESH_BINARY)
    points = cv2.findNonZero(mask)
    if points is None:
        return None
    x, y, w, h = cv2.boundingRect(points)
    return image[y : y + h, x : x + w]


def stack_rows(strips: Sequence[np.ndarray]) -> np.ndarray:
    """Scale strips to a common width (aspect preserved) and stack them vertically."""
    if not strips:
        raise ValueError("No row strips to stack")
    target_width = max(strip.shape[1] for strip in strips)
    resized = []
    for strip in strips:
        height, width = strip.shape[:2]
        if width != target_width:
            new_height = max(1, int(round(height * target_width / float(width))))
            strip = cv2.resize(strip, (target_width, new_height), interpolation=cv2.INTER_LINEAR)
        resized.append(strip)
    return np.vstack(resized)


class StitchOrchestrator:
    """Sort, stitch (with row fallback), crop, resize and encode a photo set."""

    def __init__(
        self,
        capability: SphericalStitcher,
        config: Optional[StitchConfig] = None,
        image_loader: Optional[ImageLoader] = None,
    ) -> None:
        self.capability = capability
        self.config = config or StitchConfig()
        self._load = image_loader or (lambda ref: load_capture_image(ref, self.config.max_input_dimension))

    def stitch(self, photos: Sequence[CapturedPhoto]) -> EquirectangularImage:
        if not photos:
            raise ValidationError("Cannot stitch an empty photo set")

        ordered = sort_for_stitching(photos, self.config.pitch_bucket_deg)
        try:
            images = [self._load(photo.image_ref) for photo in ordered]
        except FileNotFoundError as exc:
            raise ValidationError(str(exc)) from exc
        logger.info("Stitching {} photos with spherical projection", len(images))

        attempt = self.capability.stitch(images, self.config.whole_confidence)
        combined = crop_to_content(attempt.image) if attempt.ok else None
        if combined is not None:
            logger.info("Whole-sphere stitch succeeded: {}x{}", combined.shape[1], combined.shape[0])
            return self._finish(combined, METHOD_WHOLE, len(photos))

        whole_failure = attempt.failure or StitchFailureCode.INSUFFICIENT_MATCHES
        logger.warning("Whole-sphere stitch failed ({}), trying row-grouped fallback", whole_failure.value)
        stacked, row_pitches, degraded = self._stitch_rows(ordered, images)
        combined = crop_to_content(stacked)
        if combined is None:
            raise StitchFailure(StitchFailureCode.ROW_FALLBACK_FAILURE, "Row-grouped result has no visible content")
        return self._finish(
            combined,
            METHOD_ROWS,
            len(photos),
            row_pitches=row_pitches,
            degraded_rows=degraded,
            whole_failure=whole_failure,
        )

    # ------------------------------------------------------------------
    def _stitch_rows(
        self,
        ordered: Sequence[CapturedPhoto],
        images: Sequence[np.ndarray],
    ) -> Tuple[np.ndarray, Tuple[int, ...], Tuple[int, ...]]:
        rows: Dict[int, List[np.ndarray]] = {}
        for photo, image in zip(ordered, images):
            rows.setdefault(pitch_bucket(photo.pitch, self.config.pitch_bucket_deg), []).append(image)

        strips: List[np.ndarray] = []
        degraded: List[int] = []
        row_pitches = tuple(sorted(rows, reverse=True))
        for pitch in row_pitches:
            members = rows[pitch]
            logger.info("Row pitch={}: {} images", pitch, len(members))
            if len(members) == 1:
                strips.append(members[0])
                continue

            attempt = self.capability.stitch(members, self.config.row_confidence)
            if attempt.ok:
                strips.append(attempt.image)
                continue

            code = attempt.failure.value if attempt.failure else "unknown"
            if not self.config.lossy_row_fallback:
                raise StitchFailure(
                    StitchFailureCode.ROW_FALLBACK_FAILURE,
                    f"Row at pitch {pitch} could not be stitched ({code})",
                )
            # lossy: the rest of the row is dropped from the panorama
            logger.warning("Row pitch={} failed ({}), using its first image only", pitch, code)
            strips.append(members[0])
            degraded.append(pitch)

        return stack_rows(strips), row_pitches, tuple(degraded)

    def _finish(self, image: np.ndarray, method: str, photo_count: int, **summary) -> EquirectangularImage:
        width, height = self.config.canvas_width, self.config.canvas_height
        canvas = cv2.resize(image, (width, height), interpolation=cv2.INTER_LANCZOS4)
        try:
            data = encode_jpeg(canvas, self.config.jpeg_quality)
        except ValueError as exc:
            raise PanoramaError(f"Panorama encoding failed: {exc}") from exc
        logger.info("Equirectangular panorama {}x{} via {}", width, height, method)
        return EquirectangularImage(
            data=data,
            width=width,
            height=height,
            method=method,
            photo_count=photo_count,
            **summary,
        )
