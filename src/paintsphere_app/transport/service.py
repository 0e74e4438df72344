"""Processing-side handler of the stitch request/response contract.

The handler is independent of any web framework: a host server hands it
the uploaded parts and the raw metadata field and sends back
``StitchResponse.to_dict()`` as JSON.
"""
from __future__ import annotations

from datetime import datetime, timezone
import json
from pathlib import Path
import shutil
import tempfile
from typing import Any, Dict, Optional, Sequence

from loguru import logger

from ..errors import PanoramaError, ValidationError
from ..io.loader import generate_panorama_id, save_panorama
from ..io.request_metadata import parse_request_metadata
from ..models.capture import CapturedPhoto
from ..models.orientation import Orientation
from ..stitching.orchestrator import EquirectangularImage, StitchOrchestrator
from .contract import UploadPart, StitchResponse

SERVICE_NAME = "PaintSphere 360 Panorama Server"
SERVICE_VERSION = "1.0.0"
MIN_PHOTOS = 3


class StitchService:
    """Run the orchestrator on uploaded photos and store the panorama."""

    def __init__(
        self,
        orchestrator: StitchOrchestrator,
        output_dir: Path,
        metadata_dir: Optional[Path] = None,
        upload_root: Optional[Path] = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.output_dir = output_dir
        self.metadata_dir = metadata_dir or output_dir / "metadata"
        self.upload_root = upload_root

    def health(self) -> Dict[str, Any]:
        config = self.orchestrator.config
        return {
            "status": "ok",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "capabilities": dict(self.orchestrator.capability.capabilities()),
            "formats": {
                "equirectangular": {
                    "width": config.canvas_width,
                    "height": config.canvas_height,
                    "quality": config.jpeg_quality,
                }
            },
        }

    def handle(self, parts: Sequence[UploadPart], metadata: str | bytes | Dict[str, Any]) -> StitchResponse:
        panorama_id = generate_panorama_id()
        logger.info("Stitch request {} with {} photos", panorama_id, len(parts))

        if len(parts) < MIN_PHOTOS:
            return StitchResponse(
                success=False,
                error=f"At least {MIN_PHOTOS} photos are required for a 360 panorama, received {len(parts)}",
            )
        try:
            request = parse_request_metadata(metadata)
        except ValidationError as exc:
            logger.warning("Rejected stitch request {}: {}", panorama_id, exc)
            return StitchResponse.failure(exc)
        if len(request.orientations) != len(parts):
            return StitchResponse(
                success=False,
                error=f"{len(parts)} photos were uploaded but {len(request.orientations)} orientations were given",
            )

        upload_dir = Path(tempfile.mkdtemp(prefix="paintsphere-upload-", dir=self.upload_root))
        try:
            photos = []
            for index, (part, record) in enumerate(zip(parts, request.orientations)):
                path = upload_dir / f"{index:03d}.jpg"
                path.write_bytes(part.data)
                photos.append(
                    CapturedPhoto(
                        id=int(record["id"]),
                        image_ref=str(path),
                        orientation=Orientation(
                            yaw=record["yaw"],
                            pitch=record["pitch"],
                            roll=record["roll"],
                            timestamp=record["timestamp"],
                        ),
                        captured_at=record["timestamp"],
                    )
                )

            image = self.orchestrator.stitch(photos)
            output = save_panorama(image.data, self.output_dir, panorama_id)
            self._write_metadata(panorama_id, image, request.capture_type, request.coverage)
        except PanoramaError as exc:
            logger.error("Stitch request {} failed: {}", panorama_id, exc)
            return StitchResponse.failure(exc)
        finally:
            shutil.rmtree(upload_dir, ignore_errors=True)

        return StitchResponse(
            success=True,
            output_ref=output.name,
            details={
                "panoramaId": panorama_id,
                "resolution": image.resolution,
                "method": image.method,
                "fileSize": len(image.data),
                "degradedRows": list(image.degraded_rows),
            },
        )

    def panorama_path(self, output_ref: str) -> Path:
        path = (self.output_dir / Path(output_ref).name).resolve()
        if not path.is_file():
            raise FileNotFoundError(f"Panorama not found: {output_ref}")
        return path

    def load_metadata(self, panorama_id: str) -> Dict[str, Any]:
        path = self.metadata_dir / f"{Path(panorama_id).name}.json"
        if not path.is_file():
            raise FileNotFoundError(f"Metadata not found for panorama {panorama_id}")
        return json.loads(path.read_text(encoding="utf-8"))

    def _write_metadata(
        self,
        panorama_id: str,
        image: EquirectangularImage,
        capture_type: str,
        coverage: Optional[float],
    ) -> None:
        self.metadata_dir.mkdir(parents=True, exist_ok=True)
        record = {
            "panoramaId": panorama_id,
            "createdAt": datetime.now(timezone.utc).isoformat(),
            "imageCount": image.photo_count,
            "format": "equirectangular",
            "resolution": image.resolution,
            "fileSize": len(image.data),
            "method": image.method,
            "captureType": capture_type,
            "coverage": coverage,
            "degradedRows": list(image.degraded_rows),
            "wholeFailure": image.whole_failure.value if image.whole_failure else None,
        }
        path = self.metadata_dir / f"{panorama_id}.json"
        path.write_text(json.dumps(record, indent=2), encoding="utf-8")
