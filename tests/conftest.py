"""Global pytest fixtures & helpers.

Adds project root to path and provides a virtual clock, a home location and
a recording observer shared by the journey tests.
"""
from __future__ import annotations

import os
import sys
from typing import Any, Callable, List

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from safewalk.home import StaticHomeProvider
from safewalk.location import StaticLocationSource
from safewalk.models import Coordinate, JourneyPhase, JourneySettings
from safewalk.monitor import JourneyMonitor
from safewalk.scheduling import ManualTimers

HOME = Coordinate(40.4168, -3.7038)
# ~1.1 km north of HOME
AWAY = Coordinate(40.4268, -3.7038)


class Recorder:
    """Collects every observer callback in order."""

    def __init__(self) -> None:
        self.events: List[str] = []
        self.phases: List[JourneyPhase] = []

    def phase(self, phase: JourneyPhase) -> None:
        self.phases.append(phase)
        self.events.append(f"phase:{phase.value}")

    def overdue(self) -> None:
        self.events.append("overdue")

    def guardian(self) -> None:
        self.events.append("guardian")

    def count(self, name: str) -> int:
        return self.events.count(name)


# --- Fixtures --------------------------------------------------------
@pytest.fixture
def timers() -> ManualTimers:
    return ManualTimers()


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def home_point() -> Coordinate:
    return HOME


@pytest.fixture
def away_point() -> Coordinate:
    return AWAY


@pytest.fixture
def home_provider() -> StaticHomeProvider:
    return StaticHomeProvider(HOME)


@pytest.fixture
def location() -> StaticLocationSource:
    return StaticLocationSource(AWAY)


@pytest.fixture
def demo_settings() -> JourneySettings:
    """Short windows used by the escalation tests (30 s grace, 30 s response)."""
    return JourneySettings(grace_period_minutes=0.5, response_time_minutes=0.5)


@pytest.fixture
def make_monitor(
    timers: ManualTimers,
    recorder: Recorder,
    home_provider: StaticHomeProvider,
    location: StaticLocationSource,
    demo_settings: JourneySettings,
) -> Callable[..., JourneyMonitor]:
    """Factory building a monitor wired to the virtual clock and recorder."""

    def _make(**overrides: Any) -> JourneyMonitor:
        kwargs = dict(
            settings=demo_settings,
            timers=timers,
            on_phase_change=recorder.phase,
            on_overdue_check=recorder.overdue,
            on_guardian_notify=recorder.guardian,
        )
        kwargs.update(overrides)
        source = kwargs.pop("source", location)
        home_getter = kwargs.pop("home_getter", home_provider.get)
        return JourneyMonitor(source, home_getter, **kwargs)

    return _make
