"""Journey state machine behaviour driven by a virtual clock."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, List

import pytest

from safewalk.errors import PermissionDeniedError, PositionUnavailableError
from safewalk.location import ScriptedLocationSource, StaticLocationSource
from safewalk.models import (
    UNSET,
    Coordinate,
    JourneyPhase,
    JourneySettings,
    JourneySnapshot,
)
from safewalk.monitor import JourneyMonitor
from safewalk.scheduling import ManualTimers

if TYPE_CHECKING:
    from conftest import Recorder

MonitorFactory = Callable[..., JourneyMonitor]


def test_initial_snapshot_is_idle(make_monitor: MonitorFactory) -> None:
    snap = make_monitor().snapshot()

    assert snap.phase is JourneyPhase.IDLE
    assert snap.started_at is None
    assert snap.elapsed_minutes == 0.0
    assert snap.estimated_minutes == 0.0
    assert not snap.is_overtime
    assert not snap.check_pending


def test_elapsed_time_is_derived_from_the_clock(
    make_monitor: MonitorFactory, timers: ManualTimers
) -> None:
    """One minute after starting a 5 minute walk the snapshot shows 1 min."""
    monitor = make_monitor()
    assert monitor.start(5)
    timers.advance(60)

    snap = monitor.snapshot()
    assert snap.phase is JourneyPhase.TRAVELING
    assert snap.started_at is not None
    assert snap.elapsed_minutes == pytest.approx(1.0)
    assert snap.estimated_minutes == 5.0
    assert not snap.is_overtime
    assert snap.overtime_minutes == 0.0
    assert snap.remaining_minutes == pytest.approx(4.0)
    assert snap.progress_percent == pytest.approx(20.0)


def test_estimate_is_floored_at_one_minute(make_monitor: MonitorFactory) -> None:
    monitor = make_monitor()
    monitor.start(0.2)
    assert monitor.snapshot().estimated_minutes == 1.0


def test_start_rejects_non_finite_estimate(make_monitor: MonitorFactory) -> None:
    monitor = make_monitor()
    with pytest.raises(ValueError):
        monitor.start(float("nan"))
    assert monitor.phase is JourneyPhase.IDLE


def test_overdue_check_then_guardian_notify(
    make_monitor: MonitorFactory, timers: ManualTimers, recorder: Recorder
) -> None:
    """Check at estimate + grace, guardian alert one response window later."""
    monitor = make_monitor()
    monitor.start(1)

    timers.advance(89)
    assert recorder.count("overdue") == 0
    assert monitor.phase is JourneyPhase.TRAVELING

    timers.advance(1)  # T0 + 1.5 min
    assert recorder.count("overdue") == 1
    snap = monitor.snapshot()
    assert snap.phase is JourneyPhase.CHECKING
    assert snap.check_pending

    timers.advance(29)
    assert recorder.count("guardian") == 0

    timers.advance(1)  # T0 + 2 min
    assert recorder.count("guardian") == 1
    snap = monitor.snapshot()
    # The alarm is a side effect; the phase does not change.
    assert snap.phase is JourneyPhase.CHECKING
    assert not snap.check_pending
    assert snap.is_overtime
    assert snap.overtime_minutes == pytest.approx(0.5)

    timers.advance(3600)
    assert recorder.count("overdue") == 1
    assert recorder.count("guardian") == 1


def test_confirm_ok_prevents_guardian_notify(
    make_monitor: MonitorFactory, timers: ManualTimers, recorder: Recorder
) -> None:
    monitor = make_monitor()
    monitor.start(1)
    timers.advance(100)
    assert monitor.phase is JourneyPhase.CHECKING

    assert monitor.confirm_ok()

    snap = monitor.snapshot()
    assert snap.phase is JourneyPhase.TRAVELING
    assert not snap.check_pending
    timers.advance(600)
    assert recorder.count("guardian") == 0
    assert monitor.phase is JourneyPhase.TRAVELING
    assert "tick" in monitor.pending_timers()


def test_confirm_ok_outside_checking_is_a_noop(
    make_monitor: MonitorFactory, recorder: Recorder
) -> None:
    monitor = make_monitor()
    assert not monitor.confirm_ok()

    monitor.start(1)
    assert not monitor.confirm_ok()
    assert monitor.phase is JourneyPhase.TRAVELING
    assert recorder.phases == [JourneyPhase.TRAVELING]


def test_confirm_ok_after_guardian_returns_to_traveling(
    make_monitor: MonitorFactory, timers: ManualTimers, recorder: Recorder
) -> None:
    monitor = make_monitor()
    monitor.start(1)
    timers.advance(120)
    assert recorder.count("guardian") == 1

    assert monitor.confirm_ok()
    assert monitor.phase is JourneyPhase.TRAVELING


def test_cancel_is_idempotent_and_leaves_no_timers(
    make_monitor: MonitorFactory, timers: ManualTimers, recorder: Recorder
) -> None:
    """Repeated cancels are harmless and nothing fires a day later."""
    monitor = make_monitor()
    assert not monitor.cancel()

    monitor.start(1)
    timers.advance(95)
    assert monitor.cancel()
    assert not monitor.cancel()

    assert monitor.phase is JourneyPhase.IDLE
    assert monitor.snapshot().started_at is None
    assert monitor.pending_timers() == frozenset()
    assert timers.pending() == 0

    events_before = list(recorder.events)
    timers.advance(24 * 3600)
    assert recorder.events == events_before


@pytest.mark.parametrize("advance_to", [10, 95])
def test_sos_skips_pending_escalation(
    make_monitor: MonitorFactory,
    timers: ManualTimers,
    recorder: Recorder,
    advance_to: int,
) -> None:
    """SOS from Traveling or Checking silences every pending alarm."""
    monitor = make_monitor()
    monitor.start(1)
    timers.advance(advance_to)

    assert monitor.signal_sos()
    assert monitor.phase is JourneyPhase.SOS
    assert monitor.snapshot().started_at is None

    guardian_before = recorder.count("guardian")
    overdue_before = recorder.count("overdue")
    timers.advance(3600)
    assert recorder.count("guardian") == guardian_before == 0
    assert recorder.count("overdue") == overdue_before


def test_sos_from_idle(
    make_monitor: MonitorFactory, timers: ManualTimers, recorder: Recorder
) -> None:
    monitor = make_monitor()
    assert monitor.signal_sos()
    assert recorder.phases == [JourneyPhase.SOS]

    timers.advance(5)
    assert monitor.phase is JourneyPhase.IDLE
    assert recorder.phases == [JourneyPhase.SOS, JourneyPhase.IDLE]


def test_arrival_via_proximity_poll(
    make_monitor: MonitorFactory,
    timers: ManualTimers,
    recorder: Recorder,
    location: StaticLocationSource,
    home_point: Coordinate,
) -> None:
    """A poll inside the arrival radius ends the journey and its timers."""
    monitor = make_monitor()
    snap = monitor.begin()
    assert snap is not None
    assert snap.phase is JourneyPhase.TRAVELING
    # ~1.1 km from home at 5 km/h
    assert snap.estimated_minutes == 13.0

    timers.advance(30)
    assert monitor.phase is JourneyPhase.TRAVELING

    location.set(home_point)
    timers.advance(30)

    assert monitor.phase is JourneyPhase.ARRIVED
    assert monitor.snapshot().last_position == home_point
    assert "tick" not in monitor.pending_timers()
    assert "overdue" not in monitor.pending_timers()
    assert "poll" not in monitor.pending_timers()

    timers.advance(3600)
    assert recorder.count("overdue") == 0
    assert recorder.count("guardian") == 0


def test_arrival_before_guardian_deadline(
    make_monitor: MonitorFactory,
    timers: ManualTimers,
    recorder: Recorder,
    location: StaticLocationSource,
    home_point: Coordinate,
) -> None:
    settings = JourneySettings(grace_period_minutes=0.25, response_time_minutes=1.0)
    monitor = make_monitor(settings=settings)
    monitor.start(1)
    timers.advance(80)  # overdue at 75 s, guardian due at 135 s
    assert monitor.phase is JourneyPhase.CHECKING

    location.set(home_point)
    timers.advance(10)  # poll at 90 s

    assert monitor.phase is JourneyPhase.ARRIVED
    timers.advance(3600)
    assert recorder.count("guardian") == 0


def test_manual_arrival(
    make_monitor: MonitorFactory, timers: ManualTimers, recorder: Recorder
) -> None:
    """Arrived is shown for 3 s before falling back to Idle."""
    monitor = make_monitor()
    monitor.start(1)
    assert monitor.signal_arrived()
    assert not monitor.signal_arrived()

    assert monitor.phase is JourneyPhase.ARRIVED
    timers.advance(2)
    assert monitor.phase is JourneyPhase.ARRIVED
    timers.advance(1)
    assert monitor.phase is JourneyPhase.IDLE
    assert recorder.phases == [
        JourneyPhase.TRAVELING,
        JourneyPhase.ARRIVED,
        JourneyPhase.IDLE,
    ]


def test_poll_failures_are_dropped(
    make_monitor: MonitorFactory,
    timers: ManualTimers,
    away_point: Coordinate,
    home_point: Coordinate,
) -> None:
    """A failed poll is counted and skipped; the next poll still arrives."""
    source = ScriptedLocationSource(
        [away_point, PositionUnavailableError("no fix"), home_point]
    )
    monitor = make_monitor(source=source)
    monitor.begin()

    timers.advance(30)
    assert monitor.phase is JourneyPhase.TRAVELING
    assert monitor._poller.dropped == 1

    timers.advance(30)
    assert monitor.phase is JourneyPhase.ARRIVED
    assert source.calls == 3
    assert monitor._poller.dropped == 1


def test_begin_failure_keeps_monitor_idle(
    make_monitor: MonitorFactory, recorder: Recorder
) -> None:
    monitor = make_monitor(source=StaticLocationSource(PermissionDeniedError("denied")))

    with pytest.raises(PermissionDeniedError):
        monitor.begin()

    assert monitor.phase is JourneyPhase.IDLE
    assert monitor.pending_timers() == frozenset()
    assert recorder.events == []


def test_begin_is_ignored_while_active(
    make_monitor: MonitorFactory,
    timers: ManualTimers,
    location: StaticLocationSource,
) -> None:
    """A second begin returns None without asking for a position."""
    monitor = make_monitor()
    first = monitor.begin()
    assert first is not None
    calls = location.calls
    timers.advance(10)

    assert monitor.begin() is None
    assert location.calls == calls
    snap = monitor.snapshot()
    assert snap.started_at == first.started_at
    assert snap.estimated_minutes == first.estimated_minutes


def test_begin_without_home_uses_default_estimate(
    make_monitor: MonitorFactory, timers: ManualTimers
) -> None:
    monitor = make_monitor(home_getter=lambda: UNSET)
    snap = monitor.begin()
    assert snap is not None
    assert snap.estimated_minutes == 10.0

    timers.advance(30)
    assert monitor.phase is JourneyPhase.TRAVELING


def test_start_is_ignored_while_active(
    make_monitor: MonitorFactory, timers: ManualTimers
) -> None:
    monitor = make_monitor()
    monitor.start(1)
    timers.advance(30)

    assert not monitor.start(20)
    assert monitor.snapshot().estimated_minutes == 1.0


def test_stale_timers_from_previous_journey_do_nothing(
    make_monitor: MonitorFactory, timers: ManualTimers, recorder: Recorder
) -> None:
    """Deadlines armed by a cancelled journey never reach the new one."""
    monitor = make_monitor()
    monitor.start(1)
    timers.advance(60)
    monitor.cancel()
    monitor.start(1)  # new deadline at T0 + 150 s

    timers.advance(31)  # past the first journey's deadline
    assert recorder.count("overdue") == 0
    assert monitor.snapshot().elapsed_minutes == pytest.approx(31 / 60)

    timers.advance(59)
    assert recorder.count("overdue") == 1


def test_start_from_display_state_starts_new_journey(
    make_monitor: MonitorFactory, timers: ManualTimers
) -> None:
    monitor = make_monitor()
    monitor.start(1)
    monitor.signal_arrived()

    assert monitor.start(2)
    timers.advance(10)  # the old auto-dismiss deadline passes
    assert monitor.phase is JourneyPhase.TRAVELING


def test_dismiss_without_auto_dismiss(
    make_monitor: MonitorFactory, timers: ManualTimers
) -> None:
    monitor = make_monitor(settings=JourneySettings(auto_dismiss=False))
    monitor.signal_sos()
    timers.advance(60)
    assert monitor.phase is JourneyPhase.SOS

    assert monitor.dismiss()
    assert not monitor.dismiss()
    assert monitor.phase is JourneyPhase.IDLE


def test_tick_observer_sees_non_decreasing_elapsed(
    make_monitor: MonitorFactory, timers: ManualTimers
) -> None:
    seen: List[float] = []

    def on_tick(snap: JourneySnapshot) -> None:
        seen.append(snap.elapsed_minutes)

    monitor = make_monitor(on_tick=on_tick)
    monitor.start(5)
    timers.advance(10)

    assert len(seen) == 10
    assert seen == sorted(seen)
    assert seen[-1] == pytest.approx(10 / 60)


def test_observer_errors_do_not_break_transitions(
    make_monitor: MonitorFactory, caplog: pytest.LogCaptureFixture
) -> None:
    """A failing observer is logged; the transition still happens."""

    def explode(_phase: JourneyPhase) -> None:
        raise RuntimeError("ui crashed")

    monitor = make_monitor(on_phase_change=explode)
    with caplog.at_level(logging.ERROR, logger="JourneyMonitor"):
        assert monitor.start(1)
        assert monitor.cancel()

    assert monitor.phase is JourneyPhase.IDLE
    assert "observer callback failed" in caplog.text


def test_close_stops_everything(
    make_monitor: MonitorFactory, timers: ManualTimers, recorder: Recorder
) -> None:
    monitor = make_monitor()
    with monitor:
        monitor.start(1)
    assert monitor.phase is JourneyPhase.IDLE
    assert monitor.pending_timers() == frozenset()
    timers.advance(3600)
    assert recorder.count("overdue") == 0
