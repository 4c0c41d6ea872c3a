"""Journey state machine: idle -> traveling -> checking -> arrived / sos.

``JourneyMonitor`` owns the journey record and is the only thing that mutates
it. Timer and poll callbacks arrive on whatever thread the timer service
uses; every transition runs under one re-entrant lock, and every callback
carries the epoch it was armed under so nothing from an ended journey can
touch the current one. Observer callbacks are invoked after the lock is
released.
"""

from __future__ import annotations

import logging
import math
import threading
from datetime import datetime, timezone
from typing import Callable, List

from .errors import LocationError
from .escalation import EscalationScheduler
from .location import LocationSource
from .models import (
    UNSET,
    Coordinate,
    HomeLocation,
    JourneyPhase,
    JourneySettings,
    JourneySnapshot,
)
from .poller import ArrivalPoller
from .proximity import ProximityOracle
from .scheduling import ThreadTimers, TimerHandle, Timers

PhaseCallback = Callable[[JourneyPhase], None]
AlarmCallback = Callable[[], None]
TickCallback = Callable[[JourneySnapshot], None]
_Notification = Callable[[], None]


def _no_home() -> HomeLocation:
    return UNSET


class JourneyMonitor:
    def __init__(
        self,
        location_source: LocationSource,
        home_getter: Callable[[], HomeLocation] = _no_home,
        *,
        settings: JourneySettings | None = None,
        timers: Timers | None = None,
        on_phase_change: PhaseCallback | None = None,
        on_overdue_check: AlarmCallback | None = None,
        on_guardian_notify: AlarmCallback | None = None,
        on_tick: TickCallback | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.settings = settings or JourneySettings()
        self._log = logger or logging.getLogger(self.__class__.__name__)
        self._owns_timers = timers is None
        self._timers: Timers = timers or ThreadTimers()
        self._source = location_source
        self.on_phase_change = on_phase_change
        self.on_overdue_check = on_overdue_check
        self.on_guardian_notify = on_guardian_notify
        self.on_tick = on_tick

        self._lock = threading.RLock()
        self.oracle = ProximityOracle(
            home_getter,
            radius_km=self.settings.arrival_radius_km,
            walking_speed_kmh=self.settings.walking_speed_kmh,
        )
        self._escalation = EscalationScheduler(
            self._timers,
            grace_period_minutes=self.settings.grace_period_minutes,
            response_time_minutes=self.settings.response_time_minutes,
            tick_interval_seconds=self.settings.tick_interval_seconds,
            lock=self._lock,
        )
        self._poller = ArrivalPoller(
            location_source,
            self.oracle,
            self._timers,
            on_fix=self._on_poll_fix,
            interval_seconds=self.settings.poll_interval_seconds,
        )

        self._epoch = 0
        self._phase = JourneyPhase.IDLE
        self._started_at: float | None = None
        self._estimated_minutes = 0.0
        self._elapsed_high_water = 0.0
        self._check_pending = False
        self._last_position: Coordinate | None = None
        self._dismiss_handle: TimerHandle | None = None

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------
    @property
    def phase(self) -> JourneyPhase:
        with self._lock:
            return self._phase

    def snapshot(self) -> JourneySnapshot:
        """Current journey figures, derived from the clock at call time."""

        with self._lock:
            return self._snapshot_locked()

    def pending_timers(self) -> frozenset[str]:
        """Armed escalation timers plus ``"poll"`` while the poller runs."""

        with self._lock:
            pending = set(self._escalation.pending())
            if self._poller.running:
                pending.add("poll")
            if self._dismiss_handle is not None and self._dismiss_handle.active:
                pending.add("dismiss")
            return frozenset(pending)

    def _snapshot_locked(self) -> JourneySnapshot:
        if self._started_at is None:
            return JourneySnapshot(
                phase=self._phase, last_position=self._last_position
            )
        elapsed = (self._timers.now() - self._started_at) / 60.0
        # A wall clock stepped backwards must not make elapsed time shrink.
        elapsed = max(elapsed, self._elapsed_high_water, 0.0)
        self._elapsed_high_water = elapsed
        over = elapsed - self._estimated_minutes
        grace = self.settings.grace_period_minutes
        return JourneySnapshot(
            phase=self._phase,
            started_at=datetime.fromtimestamp(self._started_at, tz=timezone.utc),
            elapsed_minutes=elapsed,
            estimated_minutes=self._estimated_minutes,
            is_overtime=over > grace,
            overtime_minutes=max(0.0, over - grace),
            check_pending=self._check_pending,
            last_position=self._last_position,
        )

    # ------------------------------------------------------------------
    # User operations
    # ------------------------------------------------------------------
    def begin(self) -> JourneySnapshot | None:
        """Locate the walker, estimate the time home and start the journey.

        Returns None without asking for a position while a journey is
        already being monitored.

        Raises:
            LocationError: The position request failed; the monitor stays idle.
        """

        with self._lock:
            if self._phase.is_active:
                self._log.warning(
                    "begin ignored: journey already %s", self._phase.value
                )
                return None
        try:
            position = self._source.get_current_position()
        except LocationError as exc:
            self._log.warning("Journey not started, location failed: %s", exc)
            raise
        estimate = self.oracle.estimate_time_to_home(position)
        self._log.info(
            "Estimated %.0f minutes home from %.5f,%.5f",
            estimate,
            position.latitude,
            position.longitude,
        )
        if not self._start(estimate, position):
            return None
        return self.snapshot()

    def start(self, estimated_minutes: float) -> bool:
        """Start timing a journey with the given estimate (floored at
        ``settings.min_estimate_minutes``).

        Ignored while a journey is already being monitored.
        """

        return self._start(estimated_minutes, None)

    def _start(self, estimated_minutes: float, position: Coordinate | None) -> bool:
        estimated = float(estimated_minutes)
        if not math.isfinite(estimated):
            raise ValueError(
                f"estimated_minutes must be finite, got {estimated_minutes!r}"
            )
        notes: List[_Notification] = []
        with self._lock:
            if self._phase.is_active:
                self._log.warning(
                    "start ignored: journey already %s", self._phase.value
                )
                return False
            self._invalidate_locked()
            self._started_at = self._timers.now()
            self._estimated_minutes = max(
                estimated, self.settings.min_estimate_minutes
            )
            self._elapsed_high_water = 0.0
            self._check_pending = False
            self._last_position = position
            self._escalation.start(
                self._started_at,
                self._estimated_minutes,
                on_tick=self._on_tick,
                on_overdue=self._on_overdue,
            )
            self._poller.start(self._epoch)
            self._set_phase_locked(JourneyPhase.TRAVELING, notes)
            self._log.info(
                "Journey started, estimate %.1f min (check at +%.1f min)",
                self._estimated_minutes,
                self._estimated_minutes + self.settings.grace_period_minutes,
            )
        self._dispatch(notes)
        return True

    def cancel(self) -> bool:
        """Stop monitoring without notifying anyone. No-op unless active."""

        return self._finish(JourneyPhase.IDLE, "cancelled")

    def signal_arrived(self) -> bool:
        return self._finish(JourneyPhase.ARRIVED, "arrived")

    def signal_sos(self) -> bool:
        """Raise the distress signal from any phase."""

        notes: List[_Notification] = []
        with self._lock:
            self._log.warning("SOS signalled from phase %s", self._phase.value)
            self._end_locked(JourneyPhase.SOS, notes)
        self._dispatch(notes)
        return True

    def confirm_ok(self) -> bool:
        """Acknowledge the overdue check; only valid while checking."""

        notes: List[_Notification] = []
        with self._lock:
            if self._phase is not JourneyPhase.CHECKING:
                return False
            self._escalation.cancel_guardian()
            self._check_pending = False
            self._set_phase_locked(JourneyPhase.TRAVELING, notes)
            self._log.info("Overdue check acknowledged; monitoring continues")
        self._dispatch(notes)
        return True

    def dismiss(self) -> bool:
        """Leave the Arrived/Sos display state for Idle."""

        notes: List[_Notification] = []
        with self._lock:
            if self._phase not in (JourneyPhase.ARRIVED, JourneyPhase.SOS):
                return False
            self._invalidate_locked()
            self._set_phase_locked(JourneyPhase.IDLE, notes)
        self._dispatch(notes)
        return True

    def close(self) -> None:
        """Stop all timers. Owned timer threads are shut down as well."""

        with self._lock:
            self._invalidate_locked()
            self._started_at = None
            self._check_pending = False
            self._phase = JourneyPhase.IDLE
        if self._owns_timers:
            self._timers.shutdown()

    def __enter__(self) -> "JourneyMonitor":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Timer / poller callbacks
    # ------------------------------------------------------------------
    def _on_tick(self, epoch: int) -> None:
        with self._lock:
            if not self._escalation.is_current(epoch) or not self._phase.is_active:
                return
            snapshot = self._snapshot_locked()
        if self.on_tick is not None:
            self._dispatch([lambda: self.on_tick(snapshot)])

    def _on_overdue(self, epoch: int) -> None:
        notes: List[_Notification] = []
        with self._lock:
            if (
                not self._escalation.is_current(epoch)
                or self._phase is not JourneyPhase.TRAVELING
            ):
                return
            self._check_pending = True
            self._escalation.arm_guardian(self._on_guardian)
            self._log.warning(
                "Journey overdue (estimate %.1f min + grace %.1f min); asking walker",
                self._estimated_minutes,
                self.settings.grace_period_minutes,
            )
            if self.on_overdue_check is not None:
                notes.append(self.on_overdue_check)
            self._set_phase_locked(JourneyPhase.CHECKING, notes)
        self._dispatch(notes)

    def _on_guardian(self, token: int) -> None:
        notes: List[_Notification] = []
        with self._lock:
            if (
                not self._escalation.guardian_is_current(token)
                or not self._check_pending
            ):
                return
            # The alarm resolves the pending check; the phase stays Checking.
            self._check_pending = False
            self._log.warning(
                "Overdue check unanswered after %.1f min; notifying guardian",
                self.settings.response_time_minutes,
            )
            if self.on_guardian_notify is not None:
                notes.append(self.on_guardian_notify)
        self._dispatch(notes)

    def _on_poll_fix(self, epoch: int, position: Coordinate, near_home: bool) -> None:
        notes: List[_Notification] = []
        with self._lock:
            if epoch != self._epoch or not self._phase.is_active:
                return
            self._last_position = position
            if not near_home:
                return
            self._log.info(
                "Arrival detected within %.2f km of home",
                self.settings.arrival_radius_km,
            )
            self._end_locked(JourneyPhase.ARRIVED, notes)
        self._dispatch(notes)

    def _on_auto_dismiss(self, epoch: int) -> None:
        notes: List[_Notification] = []
        with self._lock:
            if epoch != self._epoch or self._phase not in (
                JourneyPhase.ARRIVED,
                JourneyPhase.SOS,
            ):
                return
            self._dismiss_handle = None
            self._set_phase_locked(JourneyPhase.IDLE, notes)
        self._dispatch(notes)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _finish(self, target: JourneyPhase, reason: str) -> bool:
        notes: List[_Notification] = []
        with self._lock:
            if not self._phase.is_active:
                return False
            elapsed = self._snapshot_locked().elapsed_minutes
            self._log.info("Journey %s after %.1f min", reason, elapsed)
            self._end_locked(target, notes)
        self._dispatch(notes)
        return True

    def _invalidate_locked(self) -> None:
        self._epoch += 1
        self._escalation.cancel()
        self._poller.stop()
        if self._dismiss_handle is not None:
            self._dismiss_handle.cancel()
            self._dismiss_handle = None

    def _end_locked(self, target: JourneyPhase, notes: List[_Notification]) -> None:
        self._invalidate_locked()
        self._started_at = None
        self._estimated_minutes = 0.0
        self._elapsed_high_water = 0.0
        self._check_pending = False
        self._set_phase_locked(target, notes)
        if target is JourneyPhase.IDLE or not self.settings.auto_dismiss:
            return
        delay = (
            self.settings.arrived_display_seconds
            if target is JourneyPhase.ARRIVED
            else self.settings.sos_display_seconds
        )
        epoch = self._epoch
        self._dismiss_handle = self._timers.call_later(
            delay, lambda: self._on_auto_dismiss(epoch)
        )

    def _set_phase_locked(
        self, phase: JourneyPhase, notes: List[_Notification]
    ) -> None:
        previous = self._phase
        self._phase = phase
        self._log.info("Phase %s -> %s", previous.value, phase.value)
        if self.on_phase_change is not None:
            callback = self.on_phase_change
            notes.append(lambda: callback(phase))

    def _dispatch(self, notes: List[_Notification]) -> None:
        for note in notes:
            try:
                note()
            except Exception:
                self._log.error("Journey observer callback failed", exc_info=True)


__all__ = ["JourneyMonitor"]
