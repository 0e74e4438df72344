"""Frontier guides: where the next photo should be taken."""
from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from ..config import CaptureConfig
from ..math.geometry import angle_delta, angular_distance, clamp_pitch, project_to_screen, wrap_yaw
from ..models.capture import CapturedPhoto, DirectionHint, FrontierGuide, GuideDirection, ScreenPoint
from ..models.orientation import Orientation
from .coverage import CoverageGrid

# (horizontal factor, vertical factor, label) applied to the photo footprint
_LOCAL_PROBES: Tuple[Tuple[float, float, GuideDirection], ...] = (
    (0.75, 0.0, GuideDirection.RIGHT),
    (-0.75, 0.0, GuideDirection.LEFT),
    (0.0, 0.75, GuideDirection.UP),
    (0.0, -0.75, GuideDirection.DOWN),
    (0.6, 0.6, GuideDirection.RIGHT),
    (-0.6, 0.6, GuideDirection.LEFT),
    (0.6, -0.6, GuideDirection.RIGHT),
    (-0.6, -0.6, GuideDirection.LEFT),
)

GLOBAL_YAWS: Tuple[float, ...] = (0.0, 45.0, 90.0, 135.0, 180.0, 225.0, 270.0, 315.0)
GLOBAL_PITCHES: Tuple[float, ...] = (-60.0, -30.0, 0.0, 30.0, 60.0)
DEDUP_TOLERANCE_DEG = 30.0


class FrontierGuideEngine:
    """Compute capture guides at the edge of the covered area.

    A local pass probes eight directions around the last photo; a global pass
    scans a coarse lattice so the session does not stall once the local
    frontier is satisfied while large regions elsewhere are still empty.
    """

    def __init__(self, config: Optional[CaptureConfig] = None) -> None:
        self.config = config or CaptureConfig()

    def compute_guides(
        self,
        last_photo: Optional[CapturedPhoto],
        grid: CoverageGrid,
        current: Orientation,
    ) -> List[FrontierGuide]:
        if last_photo is None:
            return []

        guides = self._local_pass(last_photo, grid)
        guides.extend(self._global_pass(guides, grid, current))
        return guides

    def _local_pass(self, last_photo: CapturedPhoto, grid: CoverageGrid) -> List[FrontierGuide]:
        h_span = self.config.photo_h_span_deg
        v_span = self.config.photo_v_span_deg
        guides: List[FrontierGuide] = []
        for h_factor, v_factor, direction in _LOCAL_PROBES:
            yaw = wrap_yaw(last_photo.yaw + h_factor * h_span)
            pitch = clamp_pitch(last_photo.pitch + v_factor * v_span)
            if not grid.is_covered(yaw, pitch):
                guides.append(FrontierGuide(yaw=yaw, pitch=pitch, direction=direction))
        return guides

    def _global_pass(
        self,
        selected: Sequence[FrontierGuide],
        grid: CoverageGrid,
        current: Orientation,
    ) -> List[FrontierGuide]:
        found: List[FrontierGuide] = []
        for yaw in GLOBAL_YAWS:
            for pitch in GLOBAL_PITCHES:
                if grid.is_covered(yaw, pitch):
                    continue
                nearby = any(
                    abs(angle_delta(guide.yaw, yaw)) < DEDUP_TOLERANCE_DEG
                    and abs(guide.pitch - pitch) < DEDUP_TOLERANCE_DEG
                    for guide in (*selected, *found)
                )
                if nearby:
                    continue
                direction = GuideDirection.RIGHT if angle_delta(current.yaw, yaw) > 0 else GuideDirection.LEFT
                found.append(FrontierGuide(yaw=yaw, pitch=pitch, direction=direction))
        return found

    # ------------------------------------------------------------------
    def project(self, guide: FrontierGuide, current: Orientation) -> ScreenPoint:
        """Project a guide onto the screen for ring rendering."""
        width, height = self.config.screen_size
        margin = self.config.screen_margin_px
        x, y = project_to_screen(
            guide.yaw,
            guide.pitch,
            current.yaw,
            current.pitch,
            self.config.screen_size,
            self.config.h_fov_deg,
            self.config.v_fov_deg,
        )
        visible = -margin < x < width + margin and -margin < y < height + margin
        return ScreenPoint(guide=guide, x=x, y=y, visible=visible)

    def visible_guides(self, guides: Sequence[FrontierGuide], current: Orientation) -> List[ScreenPoint]:
        projected = (self.project(guide, current) for guide in guides)
        return [point for point in projected if point.visible]


def closest_guide(guides: Sequence[FrontierGuide], current: Orientation) -> Optional[DirectionHint]:
    """Reduce guides to the one nearest the current view, for off-screen hints."""
    best: Optional[DirectionHint] = None
    for guide in guides:
        distance = angular_distance(current.yaw, current.pitch, guide.yaw, guide.pitch)
        if best is None or distance < best.distance:
            best = DirectionHint(
                guide=guide,
                d_yaw=angle_delta(current.yaw, guide.yaw),
                d_pitch=guide.pitch - current.pitch,
                distance=distance,
            )
    return best
