"""Command line entry point: stitch a set of oriented photos into a panorama."""
from __future__ import annotations

import argparse
import json
from pathlib import Path
import sys
from typing import List, Optional

from loguru import logger

from .config import StitchConfig
from .errors import PanoramaError, ValidationError
from .io.loader import save_panorama
from .logging import configure_logging
from .models.capture import CapturedPhoto
from .models.orientation import Orientation
from .stitching.capability import OpenCVSphericalStitcher
from .stitching.orchestrator import StitchOrchestrator


def load_manifest(path: Path) -> List[CapturedPhoto]:
    """Read a JSON list of ``{file, yaw, pitch, roll?, timestamp?, id?}`` entries.

    Relative ``file`` entries are resolved against the manifest's directory.
    """
    try:
        entries = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ValidationError(f"Unable to read manifest {path}: {exc}") from exc
    if not isinstance(entries, list) or not entries:
        raise ValidationError(f"Manifest {path} must be a non-empty JSON list")

    photos = []
    for index, entry in enumerate(entries):
        try:
            image = Path(entry["file"])
            orientation = Orientation(
                yaw=float(entry["yaw"]),
                pitch=float(entry["pitch"]),
                roll=float(entry.get("roll", 0.0)),
                timestamp=float(entry.get("timestamp", 0.0)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError(f"Manifest entry {index} is invalid: {exc}") from exc
        if not image.is_absolute():
            image = path.parent / image
        photos.append(
            CapturedPhoto(
                id=int(entry.get("id", index)),
                image_ref=str(image),
                orientation=orientation,
                captured_at=orientation.timestamp,
            )
        )
    return photos


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="paintsphere-stitch",
        description="Stitch oriented photos into an equirectangular 360 panorama.",
    )
    parser.add_argument("manifest", type=Path, help="JSON list of photos with yaw/pitch in degrees")
    parser.add_argument("--output", type=Path, required=True, help="Directory receiving the panorama")
    parser.add_argument("--canvas-width", type=int, default=4096, help="Output width; height is half of it")
    parser.add_argument(
        "--strict-rows",
        action="store_true",
        help="Fail instead of keeping one photo of a row that cannot be stitched",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging("DEBUG" if args.verbose else "INFO")

    try:
        config = StitchConfig.for_width(args.canvas_width, lossy_row_fallback=not args.strict_rows)
    except ValueError as exc:
        logger.error("Invalid canvas: {}", exc)
        return 2

    try:
        photos = load_manifest(args.manifest)
        orchestrator = StitchOrchestrator(OpenCVSphericalStitcher(), config)
        image = orchestrator.stitch(photos)
        output = save_panorama(image.data, args.output)
    except PanoramaError as exc:
        logger.error("Stitching failed: {}", exc)
        return 1

    if image.lossy:
        logger.warning("Rows at pitch {} kept a single photo", list(image.degraded_rows))
    logger.info("Wrote {} ({}, {})", output, image.resolution, image.method)
    return 0


if __name__ == "__main__":
    sys.exit(main())
