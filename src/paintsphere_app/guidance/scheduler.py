"""Capture state machine: when to take the next photo and when to stop."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
import time
from typing import Any, Callable, List, Optional, Protocol, Sequence, Tuple

from loguru import logger

from ..config import CaptureConfig
from ..errors import CaptureError, PanoramaError, StateTransitionError, ValidationError
from ..math.geometry import clamp_pitch
from ..models.capture import CapturedPhoto, CaptureState, DirectionHint, FrontierGuide, ScreenPoint
from ..models.orientation import AngularRate, Orientation
from .coverage import CoverageGrid
from .frontier import FrontierGuideEngine, closest_guide
from .orientation_tracker import OrientationTracker
from .session import CaptureSession


class Camera(Protocol):
    """Asynchronous shutter; one call at a time."""

    async def take_picture(self, quality: float) -> str: ...


class StitchBackend(Protocol):
    """Anything that turns a finished session into a panorama."""

    def submit(self, session: CaptureSession) -> Any: ...


@dataclass(slots=True, frozen=True)
class AutoCaptureDecision:
    """Outcome of one auto-capture guard evaluation."""

    fire: bool
    reason: str
    covered: int = 0
    uncovered: int = 0


def field_of_view_offsets(config: CaptureConfig) -> Tuple[Tuple[float, float], ...]:
    """Yaw/pitch offsets sampled inside the current view: centre and four sides."""
    dx = config.h_fov_deg * config.sample_fraction
    dy = config.v_fov_deg * config.sample_fraction
    return ((0.0, 0.0), (dx, 0.0), (-dx, 0.0), (0.0, dy), (0.0, -dy))


def sample_field_of_view(grid: CoverageGrid, orientation: Orientation, config: CaptureConfig) -> List[bool]:
    """Classify the field-of-view samples against the grid (``True`` = covered)."""
    return [
        grid.is_covered(orientation.yaw + dx, clamp_pitch(orientation.pitch + dy))
        for dx, dy in field_of_view_offsets(config)
    ]


def evaluate_auto_capture(
    samples: Sequence[bool],
    rate: AngularRate,
    since_last_s: Optional[float],
    config: CaptureConfig,
    *,
    has_photos: bool = True,
    in_flight: bool = False,
    degraded: bool = False,
) -> AutoCaptureDecision:
    """Decide whether an automatic capture should fire on this tick.

    The view must straddle the frontier (at least one covered and two
    uncovered samples) so the new photo overlaps existing coverage while
    extending it; the device must be still on both rate axes, and the
    cooldown since the previous trigger must have elapsed.
    """
    covered = sum(1 for sample in samples if sample)
    uncovered = len(samples) - covered

    def decision(fire: bool, reason: str) -> AutoCaptureDecision:
        return AutoCaptureDecision(fire=fire, reason=reason, covered=covered, uncovered=uncovered)

    if not has_photos:
        return decision(False, "first-photo-is-manual")
    if in_flight:
        return decision(False, "capture-in-flight")
    if degraded:
        return decision(False, "orientation-degraded")
    if since_last_s is not None and since_last_s <= config.cooldown_s:
        return decision(False, "cooldown")
    if not rate.is_below(config.stability_threshold):
        return decision(False, "unstable")
    if covered < 1 or uncovered < 2:
        return decision(False, "not-at-frontier")
    return decision(True, "frontier")


class CaptureScheduler:
    """Drive a capture session through ``ready -> capturing -> processing -> done``.

    The first photo of a session is taken with :meth:`capture_manual`; after
    that :meth:`tick` fires captures on its own whenever the guard allows.
    Only one capture may be in flight; extra requests are dropped.
    """

    def __init__(
        self,
        camera: Camera,
        tracker: Optional[OrientationTracker] = None,
        config: Optional[CaptureConfig] = None,
        engine: Optional[FrontierGuideEngine] = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self.camera = camera
        self.config = config or CaptureConfig()
        self.tracker = tracker or OrientationTracker(clock=wall_clock)
        self.engine = engine or FrontierGuideEngine(self.config)
        self._clock = clock
        self._wall_clock = wall_clock
        self._session: Optional[CaptureSession] = None
        self._last_error: Optional[PanoramaError] = None

    # ------------------------------------------------------------------
    @property
    def state(self) -> CaptureState:
        return self._session.state if self._session is not None else CaptureState.READY

    @property
    def session(self) -> Optional[CaptureSession]:
        return self._session

    @property
    def last_error(self) -> Optional[PanoramaError]:
        return self._last_error

    @property
    def coverage(self) -> float:
        return self._session.coverage if self._session is not None else 0.0

    # ------------------------------------------------------------------
    def start(self) -> CaptureSession:
        """``ready -> capturing`` with a fresh grid and photo list."""
        if self.state is not CaptureState.READY:
            raise StateTransitionError(f"Cannot start capture while {self.state.value}")
        self.tracker.reset()
        self._last_error = None
        self._session = CaptureSession(
            grid=CoverageGrid.from_config(self.config),
            state=CaptureState.CAPTURING,
            started_at=self._wall_clock(),
        )
        logger.info("Capture session {} started", self._session.session_id)
        return self._session

    def reset(self) -> None:
        """Return to ``ready``; results of in-flight captures will be discarded.

        The tracker's orientation subscription is released too, so the host
        attaches a source again before the next ``start()``.
        """
        if self._session is not None:
            logger.info(
                "Capture session {} reset from {} with {} photos",
                self._session.session_id,
                self._session.state.value,
                self._session.photo_count,
            )
        self.tracker.detach()
        self._session = None
        self._last_error = None

    def recalibrate(self) -> None:
        self.tracker.recalibrate()

    def finish(self) -> None:
        """User-forced ``capturing -> processing`` regardless of coverage."""
        session = self._require(CaptureState.CAPTURING)
        if session.photo_count < self.config.min_photos:
            error = ValidationError(
                f"At least {self.config.min_photos} photos are required, captured {session.photo_count}"
            )
            self._last_error = error
            raise error
        self._transition(session, CaptureState.PROCESSING, "finished manually")

    # ------------------------------------------------------------------
    def evaluate(self, now: Optional[float] = None) -> AutoCaptureDecision:
        """Evaluate the auto-capture guard against the current orientation."""
        session = self._require(CaptureState.CAPTURING)
        now = self._clock() if now is None else now
        since_last = None if session.last_trigger_at is None else now - session.last_trigger_at
        samples = sample_field_of_view(session.grid, self.tracker.current, self.config)
        return evaluate_auto_capture(
            samples,
            self.tracker.angular_rate,
            since_last,
            self.config,
            has_photos=session.photo_count > 0,
            in_flight=session.in_flight,
            degraded=self.tracker.degraded,
        )

    async def tick(self, now: Optional[float] = None) -> Optional[CapturedPhoto]:
        """One fixed-interval step: fire an automatic capture if the guard allows."""
        if self.state is not CaptureState.CAPTURING:
            return None
        decision = self.evaluate(now)
        if not decision.fire:
            return None
        logger.debug(
            "Auto-capture triggered ({} covered / {} uncovered samples)",
            decision.covered,
            decision.uncovered,
        )
        return await self._capture("auto", now)

    async def capture_manual(self) -> Optional[CapturedPhoto]:
        """Shutter pressed by the user; required for the first photo."""
        return await self._capture("manual", None)

    async def run(self) -> None:
        """Tick at the configured interval until the session leaves ``capturing``."""
        session = self._require(CaptureState.CAPTURING)
        while self._session is session and session.state is CaptureState.CAPTURING:
            await self.tick()
            await asyncio.sleep(self.config.tick_interval_s)

    # ------------------------------------------------------------------
    def process(self, backend: StitchBackend) -> Any:
        """Hand the photos to ``backend``; failures return the session to ``capturing``."""
        session = self._require(CaptureState.PROCESSING)
        try:
            result = backend.submit(session)
        except PanoramaError as exc:
            self._last_error = exc
            logger.error("Stitching failed, {} photos kept for retry: {}", session.photo_count, exc)
            self._transition(session, CaptureState.CAPTURING, "stitch failed")
            raise
        session.result = result
        self._transition(session, CaptureState.DONE, "stitch succeeded")
        return result

    # ------------------------------------------------------------------
    def guides(self) -> List[FrontierGuide]:
        session = self._session
        if session is None or session.state is not CaptureState.CAPTURING:
            return []
        return self.engine.compute_guides(session.last_photo, session.grid, self.tracker.current)

    def direction_hint(self) -> Optional[DirectionHint]:
        return closest_guide(self.guides(), self.tracker.current)

    def visible_guides(self) -> List[ScreenPoint]:
        return self.engine.visible_guides(self.guides(), self.tracker.current)

    # ------------------------------------------------------------------
    async def _capture(self, trigger: str, now: Optional[float]) -> Optional[CapturedPhoto]:
        session = self._require(CaptureState.CAPTURING)
        if session.in_flight:
            logger.debug("Dropping {} capture request: a capture is already in flight", trigger)
            return None

        session.in_flight = True
        session.last_trigger_at = self._clock() if now is None else now
        orientation = self.tracker.current
        try:
            image_ref = await self._take_picture()
        finally:
            session.in_flight = False

        if image_ref is None:
            return None
        if self._session is not session or session.state is not CaptureState.CAPTURING:
            logger.warning("Discarding capture {} that resolved after the session was reset", image_ref)
            return None

        photo = session.add_photo(
            image_ref,
            orientation,
            self._wall_clock(),
            self.config.photo_h_half_span_deg,
            self.config.photo_v_half_span_deg,
        )
        logger.info(
            "Photo {} captured ({}) at yaw={:.1f} pitch={:.1f}, coverage {:.1%}",
            photo.id,
            trigger,
            photo.yaw,
            photo.pitch,
            session.coverage,
        )
        self._maybe_auto_finish(session)
        return photo

    async def _take_picture(self) -> Optional[str]:
        attempts = self.config.capture_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return await self.camera.take_picture(self.config.capture_quality)
            except CaptureError as exc:
                self._last_error = exc
                logger.warning("Capture attempt {}/{} failed: {}", attempt, attempts, exc)
        return None

    def _maybe_auto_finish(self, session: CaptureSession) -> None:
        if session.coverage >= self.config.target_coverage and session.photo_count >= self.config.min_photos:
            self._transition(session, CaptureState.PROCESSING, f"coverage {session.coverage:.1%} reached")

    def _transition(self, session: CaptureSession, target: CaptureState, why: str) -> None:
        logger.info("Session {}: {} -> {} ({})", session.session_id, session.state.value, target.value, why)
        session.state = target

    def _require(self, state: CaptureState) -> CaptureSession:
        if self._session is None or self._session.state is not state:
            raise StateTransitionError(f"Operation requires state {state.value}, current state is {self.state.value}")
        return self._session
