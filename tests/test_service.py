import json

import numpy as np
import pytest

from paintsphere_app.config import StitchConfig
from paintsphere_app.errors import StitchFailure
from paintsphere_app.io.loader import decode_image, encode_jpeg
from paintsphere_app.stitching.fake import FakeSphericalStitcher
from paintsphere_app.stitching.orchestrator import StitchOrchestrator
from paintsphere_app.transport.contract import StitchResponse, UploadPart
from paintsphere_app.transport.service import StitchService


def make_parts(count):
    rng = np.random.default_rng(3)
    return [
        UploadPart(f"photo_{i}.jpg", encode_jpeg(rng.integers(20, 255, size=(40, 30, 3), dtype=np.uint8), 90))
        for i in range(count)
    ]


def make_metadata(count):
    return json.dumps(
        {
            "captureType": "paint-sphere-360",
            "photoCount": count,
            "coverage": 88,
            "orientations": [
                {"id": i, "yaw": i * 90.0, "pitch": 0.0, "roll": 0.0, "timestamp": 1000.0 + i}
                for i in range(count)
            ],
        }
    )


@pytest.fixture
def uploads(tmp_path):
    root = tmp_path / "uploads"
    root.mkdir()
    return root


def make_service(tmp_path, uploads, stitcher=None, config=None):
    orchestrator = StitchOrchestrator(stitcher or FakeSphericalStitcher(), config or StitchConfig.for_width(256))
    return StitchService(orchestrator, tmp_path / "panoramas", upload_root=uploads)


def test_health_reports_capabilities(tmp_path, uploads):
    health = make_service(tmp_path, uploads).health()
    assert health["status"] == "ok"
    assert health["capabilities"]["fake"] is True
    assert health["formats"]["equirectangular"] == {"width": 256, "height": 128, "quality": 92}


def test_handle_stitches_and_stores_metadata(tmp_path, uploads):
    service = make_service(tmp_path, uploads)
    response = service.handle(make_parts(4), make_metadata(4))

    assert response.success
    assert response.error is None
    payload = response.to_dict()
    assert payload["outputRef"].endswith(".jpg")
    assert payload["resolution"] == "256x128"

    image = decode_image(service.panorama_path(response.output_ref).read_bytes())
    assert image.shape == (128, 256, 3)

    record = service.load_metadata(payload["panoramaId"])
    assert record["imageCount"] == 4
    assert record["format"] == "equirectangular"
    assert record["coverage"] == 88.0
    assert record["method"] == "whole-sphere"
    assert list(uploads.iterdir()) == []


def test_failed_stitch_cleans_up_uploads(tmp_path, uploads):
    config = StitchConfig.for_width(256, lossy_row_fallback=False)
    service = make_service(tmp_path, uploads, FakeSphericalStitcher.always_failing(), config)
    response = service.handle(make_parts(4), make_metadata(4))

    assert not response.success
    assert response.error.startswith("row-fallback-failure")
    assert list(uploads.iterdir()) == []
    with pytest.raises(StitchFailure):
        response.raise_for_failure()


def test_too_few_photos(tmp_path, uploads):
    response = make_service(tmp_path, uploads).handle(make_parts(2), make_metadata(2))
    assert not response.success
    assert "At least 3" in response.error


def test_orientation_count_must_match_parts(tmp_path, uploads):
    response = make_service(tmp_path, uploads).handle(make_parts(4), make_metadata(3))
    assert not response.success
    assert "orientations" in response.error


def test_invalid_metadata(tmp_path, uploads):
    response = make_service(tmp_path, uploads).handle(make_parts(3), "{broken")
    assert not response.success
    assert "JSON" in response.error


def test_undecodable_upload(tmp_path, uploads):
    parts = make_parts(2) + [UploadPart("photo_2.jpg", b"not an image")]
    response = make_service(tmp_path, uploads).handle(parts, make_metadata(3))
    assert not response.success
    assert list(uploads.iterdir()) == []


def test_unknown_panorama(tmp_path, uploads):
    service = make_service(tmp_path, uploads)
    with pytest.raises(FileNotFoundError):
        service.panorama_path("pano_missing.jpg")
    with pytest.raises(FileNotFoundError):
        service.load_metadata("pano_missing")


def test_response_payload_shape():
    assert StitchResponse(success=False, error="boom").to_dict() == {"success": False, "error": "boom"}
    parsed = StitchResponse.from_dict({"success": True, "outputRef": "a.jpg", "method": "row-fallback"})
    assert parsed.output_ref == "a.jpg"
    assert parsed.details == {"method": "row-fallback"}
