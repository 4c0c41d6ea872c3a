"""Escalation timers for a single journey: tick, overdue check, guardian alert.

All three are measured from the journey start. Every ``start``/``cancel``
bumps an epoch; callbacks are handed the epoch they were armed under and the
owner re-checks it with ``is_current`` under its own lock before acting, so a
callback that was already in flight when the journey ended does nothing.
"""

from __future__ import annotations

import logging
import math
import threading
from typing import Callable

from .scheduling import TimerHandle, Timers

EpochCallback = Callable[[int], None]

TICK = "tick"
OVERDUE = "overdue"
GUARDIAN = "guardian"

LOGGER = logging.getLogger(__name__)


class EscalationScheduler:
    def __init__(
        self,
        timers: Timers,
        *,
        grace_period_minutes: float,
        response_time_minutes: float,
        tick_interval_seconds: float,
        lock: threading.RLock | None = None,
    ) -> None:
        self._timers = timers
        self.grace_period_minutes = grace_period_minutes
        self.response_time_minutes = response_time_minutes
        self.tick_interval_seconds = tick_interval_seconds
        self._lock = lock or threading.RLock()
        self._epoch = 0
        self._guardian_epoch = 0
        self._started_at: float | None = None
        self._handles: dict[str, TimerHandle] = {}
        self._on_tick: EpochCallback | None = None

    # ------------------------------------------------------------------
    # Arming / cancelling
    # ------------------------------------------------------------------
    def start(
        self,
        started_at: float,
        estimated_minutes: float,
        on_tick: EpochCallback,
        on_overdue: EpochCallback,
    ) -> int:
        """Cancel anything pending and arm the tick and overdue timers.

        Returns the epoch the new timers belong to.
        """

        with self._lock:
            self.cancel()
            epoch = self._epoch
            self._started_at = started_at
            self._on_tick = on_tick
            overdue_at = started_at + (
                estimated_minutes + self.grace_period_minutes
            ) * 60.0
            self._handles[OVERDUE] = self._timers.call_later(
                overdue_at - self._timers.now(),
                lambda: self._fire(OVERDUE, epoch, on_overdue),
            )
            self._schedule_tick(epoch)
            LOGGER.debug(
                "Escalation armed epoch=%s overdue_in=%.1fs",
                epoch,
                overdue_at - self._timers.now(),
            )
            return epoch

    def arm_guardian(self, on_notify: EpochCallback) -> int:
        """Arm the guardian alert ``response_time_minutes`` from now."""

        with self._lock:
            self._cancel_handle(GUARDIAN)
            self._guardian_epoch += 1
            token = self._guardian_epoch
            self._handles[GUARDIAN] = self._timers.call_later(
                self.response_time_minutes * 60.0,
                lambda: self._fire(GUARDIAN, token, on_notify, guardian=True),
            )
            return token

    def cancel_guardian(self) -> None:
        with self._lock:
            self._guardian_epoch += 1
            self._cancel_handle(GUARDIAN)

    def cancel(self) -> None:
        """Drop all three timers; stale callbacks become no-ops."""

        with self._lock:
            self._epoch += 1
            self._guardian_epoch += 1
            for kind in list(self._handles):
                self._cancel_handle(kind)
            self._started_at = None
            self._on_tick = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def is_current(self, epoch: int) -> bool:
        with self._lock:
            return epoch == self._epoch

    def guardian_is_current(self, token: int) -> bool:
        with self._lock:
            return token == self._guardian_epoch

    def pending(self) -> frozenset[str]:
        """Names of the timers that are still armed."""

        with self._lock:
            return frozenset(
                kind for kind, handle in self._handles.items() if handle.active
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _cancel_handle(self, kind: str) -> None:
        handle = self._handles.pop(kind, None)
        if handle is not None:
            handle.cancel()

    def _schedule_tick(self, epoch: int) -> None:
        # Align ticks to the start instant so they do not drift.
        assert self._started_at is not None
        interval = self.tick_interval_seconds
        since_start = max(0.0, self._timers.now() - self._started_at)
        next_at = self._started_at + (math.floor(since_start / interval) + 1) * interval
        self._handles[TICK] = self._timers.call_later(
            next_at - self._timers.now(), lambda: self._fire_tick(epoch)
        )

    def _fire_tick(self, epoch: int) -> None:
        with self._lock:
            if epoch != self._epoch or self._on_tick is None:
                return
            on_tick = self._on_tick
            self._schedule_tick(epoch)
        on_tick(epoch)

    def _fire(
        self,
        kind: str,
        token: int,
        callback: EpochCallback,
        *,
        guardian: bool = False,
    ) -> None:
        with self._lock:
            current = self._guardian_epoch if guardian else self._epoch
            if token != current:
                return
            self._handles.pop(kind, None)
        callback(token)


__all__ = ["EscalationScheduler", "TICK", "OVERDUE", "GUARDIAN"]
