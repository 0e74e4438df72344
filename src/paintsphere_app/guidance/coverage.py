"""Discretised record of which parts of the sphere have been photographed."""
from __future__ import annotations

import math
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

from ..config import CaptureConfig
from ..math.geometry import angle_delta_array, angles_to_pixel, clamp_pitch, wrap_yaw
from ..models.capture import CapturedPhoto
from ..models.orientation import Orientation


class CoverageGrid:
    """Boolean grid of fixed angular cells over yaw ``[0, 360)`` and a pitch band.

    Column ``c`` spans yaw ``[c * cell, (c + 1) * cell)``; row ``r`` spans pitch
    ``(pitch_max - (r + 1) * cell, pitch_max - r * cell]`` so row 0 is the
    top of the band. With a 5 degree cell over the full sphere the grid is
    72 x 36 cells.

    Cells are counted uniformly: a polar cell weighs as much as an equatorial
    one although it covers far less solid angle.
    """

    def __init__(
        self,
        cell_size_deg: float = 5.0,
        pitch_min_deg: float = -90.0,
        pitch_max_deg: float = 90.0,
    ) -> None:
        if cell_size_deg <= 0.0:
            raise ValueError(f"cell_size_deg must be positive, got {cell_size_deg}")
        if not -90.0 <= pitch_min_deg < pitch_max_deg <= 90.0:
            raise ValueError(f"Invalid pitch band [{pitch_min_deg}, {pitch_max_deg}]")

        self.cell_size = float(cell_size_deg)
        self.pitch_min = float(pitch_min_deg)
        self.pitch_max = float(pitch_max_deg)
        self.cols = int(math.ceil(360.0 / self.cell_size - 1e-9))
        self.rows = int(math.ceil((self.pitch_max - self.pitch_min) / self.cell_size - 1e-9))
        self._cells = np.zeros((self.rows, self.cols), dtype=bool)
        self._col_centers = (np.arange(self.cols, dtype=np.float64) + 0.5) * self.cell_size
        self._row_centers = self.pitch_max - (np.arange(self.rows, dtype=np.float64) + 0.5) * self.cell_size

    @classmethod
    def from_config(cls, config: CaptureConfig) -> "CoverageGrid":
        return cls(config.cell_size_deg, config.pitch_min_deg, config.pitch_max_deg)

    # ------------------------------------------------------------------
    @property
    def shape(self) -> Tuple[int, int]:
        return self.rows, self.cols

    @property
    def total_cells(self) -> int:
        return int(self._cells.size)

    @property
    def covered_count(self) -> int:
        return int(np.count_nonzero(self._cells))

    def coverage_ratio(self) -> float:
        """Fraction of covered cells, without solid-angle weighting."""
        return self.covered_count / float(self.total_cells)

    def as_mask(self) -> np.ndarray:
        """Copy of the boolean cell buffer, shape ``(rows, cols)``."""
        return self._cells.copy()

    # ------------------------------------------------------------------
    def in_band(self, pitch_deg: float) -> bool:
        return self.pitch_min <= pitch_deg <= self.pitch_max

    def locate(self, yaw_deg: float, pitch_deg: float) -> Tuple[int, int]:
        """Return the ``(col, row)`` containing a direction, clamped into the grid."""
        col = int(math.floor(wrap_yaw(yaw_deg) / self.cell_size)) % self.cols
        row = int(math.floor((self.pitch_max - clamp_pitch(pitch_deg)) / self.cell_size))
        row = max(0, min(self.rows - 1, row))
        return col, row

    def cell_covered(self, col: int, row: int) -> bool:
        if not (0 <= col < self.cols and 0 <= row < self.rows):
            raise IndexError(f"Cell ({col}, {row}) outside {self.cols}x{self.rows} grid")
        return bool(self._cells[row, col])

    def is_covered(self, yaw_deg: float, pitch_deg: float) -> bool:
        col, row = self.locate(yaw_deg, pitch_deg)
        return bool(self._cells[row, col])

    def mark_covered(
        self,
        yaw_deg: float,
        pitch_deg: float,
        h_half_span_deg: float,
        v_half_span_deg: float,
    ) -> int:
        """Mark the cells inside an angular rectangle and return how many were new.

        A cell is marked when its centre lies within ``h_half_span_deg`` of
        ``yaw_deg`` (shortest rotation, so the rectangle wraps across 0/360)
        and within ``v_half_span_deg`` of ``pitch_deg``. The cell containing
        the centre itself is always marked. ``pitch_deg`` is clamped to
        ``[-90, 90]`` first; cells beyond the grid's pitch band are skipped.
        """
        yaw = wrap_yaw(yaw_deg)
        pitch = clamp_pitch(pitch_deg)
        h_half = abs(h_half_span_deg)
        v_half = abs(v_half_span_deg)

        row_mask = np.abs(self._row_centers - pitch) <= v_half
        col_mask = np.abs(angle_delta_array(yaw, self._col_centers)) <= h_half

        region = np.zeros_like(self._cells)
        region[np.ix_(row_mask, col_mask)] = True
        if self.in_band(pitch):
            col, row = self.locate(yaw, pitch)
            region[row, col] = True

        newly_covered = int(np.count_nonzero(region & ~self._cells))
        self._cells |= region
        return newly_covered


def render_coverage_map(
    grid: CoverageGrid,
    photos: Sequence[CapturedPhoto] = (),
    current: Optional[Orientation] = None,
    width: int = 720,
) -> np.ndarray:
    """Render the grid as an equirectangular BGR preview.

    Covered cells are tinted green, photo centres drawn as white dots and the
    current view as a blue ring. Rows outside the grid's pitch band stay
    dark.
    """
    height = width // 2
    canvas = np.full((height, width, 3), 24, dtype=np.uint8)

    cell_w = width / float(grid.cols)
    cell_h = height / 180.0 * grid.cell_size
    top_offset = (90.0 - grid.pitch_max) / 180.0 * height
    mask = grid.as_mask()
    for row, col in zip(*np.nonzero(mask)):
        x0 = int(round(col * cell_w))
        y0 = int(round(top_offset + row * cell_h))
        x1 = int(round((col + 1) * cell_w)) - 1
        y1 = min(height - 1, int(round(top_offset + (row + 1) * cell_h)) - 1)
        cv2.rectangle(canvas, (x0, y0), (x1, y1), (89, 199, 52), thickness=-1)

    radius = max(2, width // 240)
    for photo in photos:
        u, v = angles_to_pixel(photo.yaw, photo.pitch, width, height)
        cv2.circle(canvas, (u, v), radius, (255, 255, 255), thickness=-1)

    if current is not None:
        u, v = angles_to_pixel(current.yaw, current.pitch, width, height)
        cv2.circle(canvas, (u, v), radius * 3, (248, 140, 29), thickness=2)
    return canvas
