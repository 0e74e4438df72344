"""Input/output helpers for captured photos, panoramas and stitch metadata."""

from .loader import decode_image, encode_jpeg, generate_panorama_id, load_capture_image, save_panorama
from .request_metadata import build_request_metadata, encode_request_metadata, parse_request_metadata

__all__ = [
    "build_request_metadata",
    "decode_image",
    "encode_jpeg",
    "encode_request_metadata",
    "generate_panorama_id",
    "load_capture_image",
    "parse_request_metadata",
    "save_panorama",
]
