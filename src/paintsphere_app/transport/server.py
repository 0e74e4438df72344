"""Flask front end for :class:`StitchService`.

Routes mirror the paths in :mod:`.contract`: a health probe, the multipart
stitch upload, the stored JPEGs and their JSON sidecars.
"""
from __future__ import annotations

import argparse
from pathlib import Path
import sys
from typing import Optional

from flask import Flask, jsonify, request, send_file
from loguru import logger

from ..config import StitchConfig
from ..logging import configure_logging
from ..stitching.capability import OpenCVSphericalStitcher
from ..stitching.orchestrator import StitchOrchestrator
from .contract import (
    HEALTH_PATH,
    METADATA_FIELD,
    PANORAMA_METADATA_PATH,
    PANORAMA_PATH,
    PHOTOS_FIELD,
    STITCH_PATH,
    UploadPart,
)
from .service import StitchService

MAX_FILE_SIZE = 50 * 1024 * 1024
MAX_UPLOAD_FILES = 12


def create_app(service: StitchService, max_content_length: int = MAX_FILE_SIZE * MAX_UPLOAD_FILES) -> Flask:
    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = max_content_length

    @app.route(HEALTH_PATH, methods=["GET"])
    def health():
        return jsonify(service.health()), 200

    @app.route(STITCH_PATH, methods=["POST"])
    def stitch_panorama():
        parts = [
            UploadPart(
                filename=upload.filename or f"photo_{index}.jpg",
                data=upload.read(),
                content_type=upload.mimetype or "image/jpeg",
            )
            for index, upload in enumerate(request.files.getlist(PHOTOS_FIELD))
        ]
        response = service.handle(parts, request.form.get(METADATA_FIELD, "{}"))
        if response.success:
            return jsonify(response.to_dict()), 200
        # reconstruction failures are server-side; everything else is a bad request
        status = 500 if response.failure_code is not None else 400
        return jsonify(response.to_dict()), status

    @app.route(f"{PANORAMA_PATH}/<output_ref>", methods=["GET"])
    def panorama(output_ref):
        try:
            path = service.panorama_path(output_ref)
        except FileNotFoundError:
            return jsonify({"error": "Panorama not found"}), 404
        return send_file(path, mimetype="image/jpeg")

    @app.route(PANORAMA_METADATA_PATH.replace("{panorama_id}", "<panorama_id>"), methods=["GET"])
    def panorama_metadata(panorama_id):
        try:
            return jsonify(service.load_metadata(panorama_id)), 200
        except FileNotFoundError:
            return jsonify({"error": "Metadata not found"}), 404

    return app


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="paintsphere-server",
        description="Serve the panorama stitch endpoint over HTTP.",
    )
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=3000)
    parser.add_argument("--output", type=Path, default=Path("outputs"), help="Directory receiving panoramas")
    parser.add_argument("--canvas-width", type=int, default=4096, help="Output width; height is half of it")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging("DEBUG" if args.verbose else "INFO")

    try:
        config = StitchConfig.for_width(args.canvas_width)
    except ValueError as exc:
        logger.error("Invalid canvas: {}", exc)
        return 2

    service = StitchService(StitchOrchestrator(OpenCVSphericalStitcher(), config), args.output)
    logger.info("Stitch server listening on {}:{}, panoramas in {}", args.host, args.port, args.output)
    create_app(service).run(host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
