"""Periodic arrival checks while a journey is being monitored."""

from __future__ import annotations

import logging
import threading
from typing import Callable

from .errors import LocationError
from .location import LocationSource
from .models import Coordinate
from .proximity import ProximityOracle
from .scheduling import TimerHandle, Timers

# (epoch, position, near_home)
FixCallback = Callable[[int, Coordinate, bool], None]

LOGGER = logging.getLogger(__name__)


class ArrivalPoller:
    """Ask the location source for a fix every ``interval_seconds``.

    Each successful fix is reported to ``on_fix`` together with the proximity
    verdict. Failed fixes are dropped; the next regular poll is the only
    retry. The poller never mutates journey state itself.
    """

    def __init__(
        self,
        source: LocationSource,
        oracle: ProximityOracle,
        timers: Timers,
        on_fix: FixCallback,
        interval_seconds: float,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._source = source
        self._oracle = oracle
        self._timers = timers
        self._on_fix = on_fix
        self.interval_seconds = interval_seconds
        self._lock = threading.Lock()
        self._epoch: int | None = None
        self._handle: TimerHandle | None = None
        self.dropped = 0

    @property
    def running(self) -> bool:
        with self._lock:
            return self._epoch is not None

    def start(self, epoch: int) -> None:
        with self._lock:
            self._stop_locked()
            self._epoch = epoch
            self._schedule_locked(epoch)
        LOGGER.debug("Arrival poller started epoch=%s", epoch)

    def stop(self) -> None:
        with self._lock:
            was_running = self._epoch is not None
            self._stop_locked()
        if was_running:
            LOGGER.debug("Arrival poller stopped")

    def _stop_locked(self) -> None:
        self._epoch = None
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _schedule_locked(self, epoch: int) -> None:
        self._handle = self._timers.call_later(
            self.interval_seconds, lambda: self._poll(epoch)
        )

    def _poll(self, epoch: int) -> None:
        with self._lock:
            if self._epoch != epoch:
                return
            # Keep the cadence fixed regardless of how long the fix takes.
            self._schedule_locked(epoch)
        try:
            position = self._source.get_current_position()
        except LocationError as exc:
            self.dropped += 1
            LOGGER.debug("Arrival poll dropped (%s): %s", exc.code, exc)
            return
        near = self._oracle.is_near_home(position)
        LOGGER.debug(
            "Arrival poll epoch=%s at %.5f,%.5f near_home=%s",
            epoch,
            position.latitude,
            position.longitude,
            near,
        )
        self._on_fix(epoch, position, near)


__all__ = ["ArrivalPoller"]
