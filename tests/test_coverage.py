import numpy as np
import pytest

from paintsphere_app.config import CaptureConfig
from paintsphere_app.guidance.coverage import CoverageGrid, render_coverage_map
from paintsphere_app.models.orientation import Orientation


def covered_columns(grid: CoverageGrid) -> set:
    return set(int(c) for c in np.nonzero(grid.as_mask())[1])


def test_default_grid_spans_full_sphere():
    grid = CoverageGrid()
    assert grid.shape == (36, 72)
    assert grid.total_cells == 2592
    assert grid.coverage_ratio() == 0.0


def test_grid_from_config_uses_pitch_band():
    grid = CoverageGrid.from_config(CaptureConfig(pitch_min_deg=-50.0, pitch_max_deg=50.0))
    assert grid.shape == (20, 72)


def test_coverage_is_monotonic():
    grid = CoverageGrid()
    previous = 0.0
    for yaw, pitch in [(0, 0), (40, 10), (0, 0), (200, -60), (350, 80)]:
        grid.mark_covered(yaw, pitch, 19.5, 26.0)
        ratio = grid.coverage_ratio()
        assert ratio >= previous
        previous = ratio
    assert 0.0 < previous <= 1.0


def test_marking_same_footprint_twice_adds_nothing():
    grid = CoverageGrid()
    first = grid.mark_covered(120.0, 0.0, 19.5, 26.0)
    assert first > 0
    assert grid.mark_covered(120.0, 0.0, 19.5, 26.0) == 0
    assert grid.covered_count == first


def test_footprint_wraps_across_zero_heading():
    grid = CoverageGrid()
    grid.mark_covered(0.0, 0.0, 10.0, 3.0)
    assert covered_columns(grid) == {70, 71, 0, 1}
    assert grid.is_covered(355.0, 0.0)
    assert grid.is_covered(5.0, 0.0)
    assert not grid.is_covered(15.0, 0.0)


def test_centre_cell_is_always_marked():
    grid = CoverageGrid()
    grid.mark_covered(123.0, 7.0, 0.0, 0.0)
    assert grid.covered_count == 1
    assert grid.is_covered(123.0, 7.0)


def test_pitch_beyond_pole_is_clamped():
    grid = CoverageGrid()
    grid.mark_covered(0.0, 95.0, 5.0, 5.0)
    rows = set(int(r) for r in np.nonzero(grid.as_mask())[0])
    assert rows == {0}
    assert grid.locate(0.0, -95.0) == (0, 35)


def test_cells_outside_pitch_band_are_skipped():
    grid = CoverageGrid(5.0, -50.0, 50.0)
    assert grid.mark_covered(0.0, 80.0, 5.0, 5.0) == 0
    assert not grid.in_band(80.0)
    assert grid.coverage_ratio() == 0.0


def test_cell_lookup_rejects_out_of_range_indices():
    grid = CoverageGrid()
    with pytest.raises(IndexError):
        grid.cell_covered(72, 0)
    with pytest.raises(IndexError):
        grid.cell_covered(0, -1)


def test_invalid_grid_parameters():
    with pytest.raises(ValueError):
        CoverageGrid(cell_size_deg=0.0)
    with pytest.raises(ValueError):
        CoverageGrid(pitch_min_deg=30.0, pitch_max_deg=10.0)


def test_render_coverage_map_tints_covered_cells():
    grid = CoverageGrid()
    blank = render_coverage_map(grid, width=360)
    assert blank.shape == (180, 360, 3)
    assert blank.dtype == np.uint8

    grid.mark_covered(180.0, 0.0, 20.0, 20.0)
    preview = render_coverage_map(grid, current=Orientation(yaw=180.0, pitch=0.0), width=360)
    green = (preview[:, :, 1] > 150) & (preview[:, :, 2] < 100)
    assert green.any()
