import cv2
import numpy as np
import pytest

from paintsphere_app.config import StitchConfig
from paintsphere_app.errors import StitchFailure, StitchFailureCode, ValidationError
from paintsphere_app.io.loader import decode_image
from paintsphere_app.models.capture import CapturedPhoto
from paintsphere_app.models.orientation import Orientation
from paintsphere_app.stitching.capability import OpenCVSphericalStitcher
from paintsphere_app.stitching.fake import FakeSphericalStitcher
from paintsphere_app.stitching.orchestrator import (
    METHOD_ROWS,
    METHOD_WHOLE,
    StitchOrchestrator,
    crop_to_content,
    pitch_bucket,
    sort_for_stitching,
    stack_rows,
)


def make_photos(positions):
    return [
        CapturedPhoto(id=index, image_ref=f"p{index}", orientation=Orientation(yaw, pitch), captured_at=float(index))
        for index, (yaw, pitch) in enumerate(positions)
    ]


def textured_loader(shape=(48, 64)):
    def load(ref: str) -> np.ndarray:
        seed = int(ref[1:])
        rng = np.random.default_rng(seed)
        return rng.integers(20, 255, size=(*shape, 3), dtype=np.uint8)

    return load


SPHERE = [(0, 0), (120, 0), (240, 0), (60, 30), (200, 30), (90, -30)]


def test_pitch_bucket_rounds_halves_to_even():
    assert pitch_bucket(15.0) == 0
    assert pitch_bucket(15.1) == 30
    assert pitch_bucket(45.0) == 60
    assert pitch_bucket(75.0) == 60
    assert pitch_bucket(-15.0) == 0
    assert pitch_bucket(-45.0) == -60
    assert pitch_bucket(44.0) == 30
    assert pitch_bucket(90.0) == 90


def test_sort_orders_by_row_then_yaw():
    photos = make_photos([(200, 2), (10, -28), (100, 31), (50, -1), (5, 29)])
    ordered = sort_for_stitching(photos)
    assert [p.id for p in ordered] == [1, 3, 0, 4, 2]


def test_crop_to_content_trims_black_border():
    image = np.zeros((40, 60, 3), dtype=np.uint8)
    image[10:20, 5:50] = 200
    cropped = crop_to_content(image)
    assert cropped.shape == (10, 45, 3)
    assert crop_to_content(np.zeros((10, 10, 3), dtype=np.uint8)) is None


def test_stack_rows_scales_to_widest_strip():
    wide = np.full((10, 100, 3), 50, dtype=np.uint8)
    narrow = np.full((10, 50, 3), 150, dtype=np.uint8)
    stacked = stack_rows([wide, narrow])
    assert stacked.shape == (30, 100, 3)
    with pytest.raises(ValueError):
        stack_rows([])


def test_whole_sphere_stitch_in_one_call():
    stitcher = FakeSphericalStitcher()
    orchestrator = StitchOrchestrator(stitcher, StitchConfig.for_width(512), image_loader=textured_loader())
    result = orchestrator.stitch(make_photos(SPHERE))

    assert result.method == METHOD_WHOLE
    assert stitcher.calls == [6]
    assert stitcher.confidences == [0.15]
    assert result.resolution == "512x256"
    assert decode_image(result.data).shape == (256, 512, 3)
    assert not result.lossy


def test_whole_failure_falls_back_to_rows():
    stitcher = FakeSphericalStitcher.failing_whole_set(min_batch=6)
    orchestrator = StitchOrchestrator(stitcher, StitchConfig.for_width(512), image_loader=textured_loader())
    result = orchestrator.stitch(make_photos(SPHERE))

    assert result.method == METHOD_ROWS
    assert result.whole_failure is StitchFailureCode.INSUFFICIENT_MATCHES
    assert result.row_pitches == (30, 0, -30)
    # single-photo row at -30 passes through without a call
    assert stitcher.calls == [6, 2, 3]
    assert stitcher.confidences == [0.15, 0.1, 0.1]
    assert result.degraded_rows == ()
    image = decode_image(result.data)
    assert image.shape[1] == 2 * image.shape[0]


def test_failed_rows_keep_first_photo():
    stitcher = FakeSphericalStitcher.always_failing(failure=StitchFailureCode.HOMOGRAPHY_FAILURE)
    orchestrator = StitchOrchestrator(stitcher, StitchConfig.for_width(256), image_loader=textured_loader())
    result = orchestrator.stitch(make_photos(SPHERE))

    assert result.method == METHOD_ROWS
    assert result.whole_failure is StitchFailureCode.HOMOGRAPHY_FAILURE
    assert result.degraded_rows == (30, 0)
    assert result.lossy
    assert decode_image(result.data).shape == (128, 256, 3)


def test_strict_rows_raise_row_fallback_failure():
    config = StitchConfig.for_width(256, lossy_row_fallback=False)
    orchestrator = StitchOrchestrator(
        FakeSphericalStitcher.always_failing(), config, image_loader=textured_loader()
    )
    with pytest.raises(StitchFailure) as excinfo:
        orchestrator.stitch(make_photos(SPHERE))
    assert excinfo.value.code is StitchFailureCode.ROW_FALLBACK_FAILURE


def test_all_black_result_is_a_failure():
    orchestrator = StitchOrchestrator(
        FakeSphericalStitcher(),
        StitchConfig.for_width(256),
        image_loader=lambda ref: np.zeros((20, 20, 3), dtype=np.uint8),
    )
    with pytest.raises(StitchFailure) as excinfo:
        orchestrator.stitch(make_photos([(0, 0), (90, 0), (180, 0)]))
    assert excinfo.value.code is StitchFailureCode.ROW_FALLBACK_FAILURE


def test_empty_photo_set_is_rejected():
    with pytest.raises(ValidationError):
        StitchOrchestrator(FakeSphericalStitcher()).stitch([])


def test_photos_load_from_disk_with_downscale(tmp_path):
    photos = []
    rng = np.random.default_rng(7)
    for index, yaw in enumerate((0, 90, 180)):
        path = tmp_path / f"shot_{index}.jpg"
        cv2.imwrite(str(path), rng.integers(20, 255, size=(300, 200, 3), dtype=np.uint8))
        photos.append(
            CapturedPhoto(id=index, image_ref=f"file://{path}", orientation=Orientation(yaw, 0), captured_at=0.0)
        )

    stitcher = FakeSphericalStitcher()
    config = StitchConfig(canvas_width=256, canvas_height=128, max_input_dimension=150)
    result = StitchOrchestrator(stitcher, config).stitch(photos)
    assert result.photo_count == 3
    assert decode_image(result.data).shape == (128, 256, 3)


def test_missing_photo_file_is_a_validation_error(tmp_path):
    photos = [
        CapturedPhoto(
            id=i,
            image_ref=str(tmp_path / f"gone_{i}.jpg"),
            orientation=Orientation(i * 120.0, 0),
            captured_at=0.0,
        )
        for i in range(3)
    ]
    with pytest.raises(ValidationError, match="gone_"):
        StitchOrchestrator(FakeSphericalStitcher(), StitchConfig.for_width(256)).stitch(photos)


def test_opencv_stitcher_needs_two_images():
    attempt = OpenCVSphericalStitcher().stitch([np.zeros((10, 10, 3), dtype=np.uint8)], 0.15)
    assert not attempt.ok
    assert attempt.failure is StitchFailureCode.INSUFFICIENT_MATCHES
    assert OpenCVSphericalStitcher().capabilities()["equirectangular360"]


def test_invalid_canvas_ratio_rejected():
    with pytest.raises(ValueError):
        StitchConfig(canvas_width=4000, canvas_height=2048)
