"""In-process stitching of a finished capture session."""
from __future__ import annotations

from pathlib import Path

from loguru import logger

from ..guidance.session import CaptureSession
from ..io.loader import save_panorama
from ..transport.contract import StitchResponse
from .orchestrator import StitchOrchestrator


class LocalStitchBackend:
    """Stitch on the device itself; same ``submit`` contract as the HTTP client."""

    def __init__(self, orchestrator: StitchOrchestrator, output_dir: Path) -> None:
        self.orchestrator = orchestrator
        self.output_dir = output_dir

    def submit(self, session: CaptureSession) -> StitchResponse:
        logger.info("Stitching session {} locally", session.session_id)
        image = self.orchestrator.stitch(session.photos)
        output = save_panorama(image.data, self.output_dir)
        return StitchResponse(
            success=True,
            output_ref=str(output),
            details={
                "resolution": image.resolution,
                "method": image.method,
                "degradedRows": list(image.degraded_rows),
            },
        )
