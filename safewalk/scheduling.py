"""Timer services used by the escalation scheduler and the arrival poller.

``ThreadTimers`` runs callbacks on ``threading.Timer`` threads against the
wall clock. ``ManualTimers`` keeps a virtual clock that only moves when
``advance`` is called, which makes escalation timing deterministic in tests
and simulations.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from typing import Callable, Protocol

Callback = Callable[[], None]

LOGGER = logging.getLogger(__name__)

__all__ = ["TimerHandle", "Timers", "ThreadTimers", "ManualTimers"]


class TimerHandle:
    """Cancellable reference to one scheduled callback."""

    __slots__ = ("due", "callback", "_cancelled", "_fired", "_on_cancel")

    def __init__(
        self,
        due: float,
        callback: Callback,
        on_cancel: Callable[["TimerHandle"], None] | None = None,
    ) -> None:
        self.due = due
        self.callback = callback
        self._cancelled = False
        self._fired = False
        self._on_cancel = on_cancel

    @property
    def active(self) -> bool:
        return not (self._cancelled or self._fired)

    def cancel(self) -> None:
        if not self.active:
            return
        self._cancelled = True
        if self._on_cancel is not None:
            self._on_cancel(self)

    def _run(self) -> None:
        if not self.active:
            return
        self._fired = True
        try:
            self.callback()
        except Exception:  # pragma: no cover - defensive logging
            LOGGER.error("Timer callback %r failed", self.callback, exc_info=True)


class Timers(Protocol):
    def now(self) -> float:
        """Current time in epoch seconds."""
        ...

    def call_later(self, delay: float, callback: Callback) -> TimerHandle: ...

    def shutdown(self) -> None: ...


class ThreadTimers:
    """Wall-clock timers on daemon threads."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._threads: dict[TimerHandle, threading.Timer] = {}

    def now(self) -> float:
        return self._clock()

    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        delay = max(0.0, delay)
        handle = TimerHandle(self.now() + delay, callback, self._forget)

        def _fire() -> None:
            with self._lock:
                self._threads.pop(handle, None)
            handle._run()

        thread = threading.Timer(delay, _fire)
        thread.daemon = True
        with self._lock:
            self._threads[handle] = thread
        thread.start()
        return handle

    def _forget(self, handle: TimerHandle) -> None:
        with self._lock:
            thread = self._threads.pop(handle, None)
        if thread is not None:
            thread.cancel()

    def pending(self) -> int:
        with self._lock:
            return len(self._threads)

    def shutdown(self) -> None:
        with self._lock:
            handles = list(self._threads)
        for handle in handles:
            handle.cancel()


class ManualTimers:
    """Virtual-clock timers; callbacks fire only inside ``advance``."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self._now = float(start)
        self._lock = threading.RLock()
        self._queue: list[tuple[float, int, TimerHandle]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        with self._lock:
            return self._now

    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        with self._lock:
            handle = TimerHandle(self._now + max(0.0, delay), callback)
            heapq.heappush(self._queue, (handle.due, next(self._seq), handle))
        return handle

    def pending(self) -> int:
        with self._lock:
            return sum(1 for _, _, handle in self._queue if handle.active)

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing every callback that falls due.

        Callbacks run in due order with the clock set to their due time, and
        callbacks they schedule inside the window fire in the same call.
        """

        if seconds < 0:
            raise ValueError("cannot move the clock backwards")
        with self._lock:
            target = self._now + seconds
        while True:
            with self._lock:
                while self._queue and not self._queue[0][2].active:
                    heapq.heappop(self._queue)
                if not self._queue or self._queue[0][0] > target:
                    self._now = target
                    return
                due, _, handle = heapq.heappop(self._queue)
                self._now = max(self._now, due)
            handle._run()

    def shutdown(self) -> None:
        with self._lock:
            queued = [handle for _, _, handle in self._queue]
            self._queue.clear()
        for handle in queued:
            handle.cancel()
