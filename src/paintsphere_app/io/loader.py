"""Image loading, encoding and output storage."""
from __future__ import annotations

import os
from pathlib import Path
import secrets
import tempfile
import time
from typing import Optional

import cv2
import numpy as np
from loguru import logger


def load_capture_image(image_ref: str | Path, max_dimension: Optional[int] = None) -> np.ndarray:
    """Load a captured photo as a BGR uint8 array, downscaled to ``max_dimension``.

    ``file://`` URIs as returned by mobile cameras are accepted.
    """
    path_text = str(image_ref)
    if path_text.startswith("file://"):
        path_text = path_text[len("file://"):]
    image = cv2.imread(path_text, cv2.IMREAD_COLOR)
    if image is None:
        raise FileNotFoundError(f"Unable to read captured photo: {path_text}")

    height, width = image.shape[:2]
    if max_dimension is not None and max(height, width) > max_dimension:
        scale = max_dimension / float(max(height, width))
        image = cv2.resize(image, None, fx=scale, fy=scale, interpolation=cv2.INTER_AREA)
        logger.debug("Downscaled {} from {}x{} to {}x{}", path_text, width, height, image.shape[1], image.shape[0])
    return image


def encode_jpeg(image: np.ndarray, quality: int) -> bytes:
    ok, buffer = cv2.imencode(".jpg", image, [cv2.IMWRITE_JPEG_QUALITY, int(quality)])
    if not ok:
        raise ValueError("JPEG encoding failed")
    return buffer.tobytes()


def decode_image(data: bytes) -> np.ndarray:
    image = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
    if image is None:
        raise ValueError("Unable to decode image bytes")
    return image


def generate_panorama_id(prefix: str = "pano") -> str:
    """Identifier of the form ``pano_<unix ms>_<6 hex>``."""
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(3)}"


def save_panorama(data: bytes, output_dir: Path, panorama_id: Optional[str] = None) -> Path:
    """Write encoded panorama bytes atomically as ``<id>.jpg`` in ``output_dir``.

    The bytes go to a temporary file in the same directory which is renamed
    into place; the temporary file is removed if anything fails.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    panorama_id = panorama_id or generate_panorama_id()
    target = output_dir / f"{panorama_id}.jpg"

    fd, tmp_name = tempfile.mkstemp(prefix=f".{panorama_id}-", suffix=".part", dir=str(output_dir))
    try:
        with os.fdopen(fd, "wb") as stream:
            stream.write(data)
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.info("Saved panorama {} ({:.2f} MB)", target, len(data) / (1024.0 * 1024.0))
    return target
