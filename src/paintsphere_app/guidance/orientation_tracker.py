"""Conversion of the raw device rotation stream into session-relative orientation."""
from __future__ import annotations

import math
import time
from typing import Any, Callable, Mapping, Optional, Protocol

from loguru import logger

from ..errors import OrientationUnavailable
from ..models.orientation import FALLBACK_ORIENTATION, AngularRate, Orientation, RawRotation

SampleCallback = Callable[[Mapping[str, Any]], None]


class ListenerHandle(Protocol):
    """Handle returned by an orientation source when a listener is added."""

    def remove(self) -> None: ...


class OrientationSource(Protocol):
    """Device-motion stream delivering ``{alpha, beta, gamma, rotationRate?}`` samples."""

    def subscribe(self, callback: SampleCallback, interval_s: float) -> ListenerHandle: ...


class OrientationSubscription:
    """Cancellable listener registration owned by an :class:`OrientationTracker`."""

    def __init__(self, handle: Optional[ListenerHandle]) -> None:
        self._handle = handle

    @property
    def active(self) -> bool:
        return self._handle is not None

    def cancel(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.remove()

    def __enter__(self) -> "OrientationSubscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cancel()


class OrientationTracker:
    """Track yaw/pitch/roll relative to the heading seen at session start.

    The first sample after construction, :meth:`reset` or :meth:`recalibrate`
    defines the zero heading. Yaw is the negated, wrapped delta of the raw
    heading from that reference; pitch comes from the tilt axis and roll from
    the lean axis. Angular rate is taken from the sensor as-is, without any
    smoothing.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._reference_alpha: Optional[float] = None
        self._last_raw: Optional[RawRotation] = None
        self._current: Optional[Orientation] = None
        self._rate = AngularRate()
        self._subscription: Optional[OrientationSubscription] = None
        self._degraded_reason: Optional[str] = None

    # ------------------------------------------------------------------
    @property
    def current(self) -> Orientation:
        """Latest orientation, or the fixed fallback when none is available."""
        if self._degraded_reason is not None or self._current is None:
            return FALLBACK_ORIENTATION
        return self._current

    @property
    def angular_rate(self) -> AngularRate:
        return self._rate

    @property
    def degraded(self) -> bool:
        return self._degraded_reason is not None

    @property
    def degraded_reason(self) -> Optional[str]:
        return self._degraded_reason

    @property
    def has_reference(self) -> bool:
        return self._reference_alpha is not None

    # ------------------------------------------------------------------
    def update(self, raw: RawRotation) -> Orientation:
        """Fold one raw sample into the tracked orientation."""
        if self._reference_alpha is None:
            self._reference_alpha = raw.alpha
            logger.debug("Orientation reference heading set to {:.4f} rad", raw.alpha)

        yaw = -math.degrees(raw.alpha - self._reference_alpha)
        pitch = math.degrees(math.pi / 2.0 - raw.beta)
        roll = math.degrees(raw.gamma)
        timestamp = raw.timestamp if raw.timestamp is not None else self._clock()

        self._current = Orientation(yaw=yaw, pitch=pitch, roll=roll, timestamp=timestamp)
        if raw.rotation_rate is not None:
            self._rate = AngularRate(abs(raw.rotation_rate.alpha), abs(raw.rotation_rate.beta))
        self._last_raw = raw
        if self._degraded_reason is not None:
            logger.info("Orientation stream recovered")
            self._degraded_reason = None
        return self._current

    def handle_sample(self, sample: Mapping[str, Any]) -> Optional[Orientation]:
        """Listener callback: parse a raw sample mapping and update."""
        raw = RawRotation.from_sample(sample)
        if raw is None:
            return None
        return self.update(raw)

    def recalibrate(self) -> None:
        """Make the current raw heading the zero reference; coverage state is untouched."""
        if self._last_raw is None:
            self._reference_alpha = None
            logger.info("Orientation recalibration deferred until the first sample")
            return
        self._reference_alpha = self._last_raw.alpha
        self.update(self._last_raw)
        logger.info("Orientation recalibrated, heading reference {:.4f} rad", self._reference_alpha)

    def reset(self) -> None:
        """Forget the reference and last reading, e.g. when a session starts."""
        self._reference_alpha = None
        self._last_raw = None
        self._current = None
        self._rate = AngularRate()

    def mark_unavailable(self, reason: str) -> None:
        """Enter degraded mode: report the fallback orientation from now on."""
        if self._degraded_reason is None:
            logger.warning("Orientation unavailable, using fallback orientation: {}", reason)
        self._degraded_reason = reason

    # ------------------------------------------------------------------
    def attach(self, source: OrientationSource, interval_s: float = 0.016) -> OrientationSubscription:
        """Subscribe to a device-motion source, replacing any previous subscription.

        A source that cannot deliver samples puts the tracker in degraded mode
        and yields an inactive subscription instead of raising.
        """
        self.detach()
        try:
            handle = source.subscribe(self.handle_sample, interval_s)
        except OrientationUnavailable as exc:
            self.mark_unavailable(str(exc) or "orientation stream unavailable")
            self._subscription = OrientationSubscription(None)
            return self._subscription

        self._degraded_reason = None
        self._subscription = OrientationSubscription(handle)
        logger.debug("Subscribed to orientation source at {:.0f} ms interval", interval_s * 1000.0)
        return self._subscription

    def detach(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    def close(self) -> None:
        self.detach()

    def __enter__(self) -> "OrientationTracker":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
