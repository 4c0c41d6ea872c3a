"""Value types shared by the journey monitor and its collaborators."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from .config import (
    ARRIVAL_RADIUS_KM,
    ARRIVED_DISPLAY_SECONDS,
    AUTO_DISMISS,
    GRACE_PERIOD_MINUTES,
    MIN_ESTIMATE_MINUTES,
    POLL_INTERVAL_SECONDS,
    RESPONSE_TIME_MINUTES,
    SOS_DISPLAY_SECONDS,
    TICK_INTERVAL_SECONDS,
    WALKING_SPEED_KMH,
)


@dataclass(frozen=True, slots=True)
class Coordinate:
    """A geographic point in decimal degrees."""

    latitude: float
    longitude: float

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Coordinate":
        """Build from a mapping with ``latitude``/``longitude`` (or ``lat``/``lon``)."""

        lat = payload.get("latitude", payload.get("lat"))
        lon = payload.get("longitude", payload.get("lon", payload.get("lng")))
        if lat is None or lon is None:
            raise ValueError(f"payload has no coordinates: {dict(payload)!r}")
        return cls(float(lat), float(lon))

    def as_dict(self) -> dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


class Unset:
    """Marker for a home location that has not been configured yet."""

    _instance: "Unset | None" = None

    def __new__(cls) -> "Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNSET"


UNSET = Unset()

HomeLocation = Coordinate | Unset


class JourneyPhase(str, Enum):
    IDLE = "idle"
    TRAVELING = "traveling"
    CHECKING = "checking"
    ARRIVED = "arrived"
    SOS = "sos"

    @property
    def is_active(self) -> bool:
        """True while a journey is being timed."""

        return self in (JourneyPhase.TRAVELING, JourneyPhase.CHECKING)


@dataclass(frozen=True, slots=True)
class JourneySettings:
    """Timing and distance parameters, fixed for the lifetime of a monitor."""

    grace_period_minutes: float = GRACE_PERIOD_MINUTES
    response_time_minutes: float = RESPONSE_TIME_MINUTES
    arrival_radius_km: float = ARRIVAL_RADIUS_KM
    poll_interval_seconds: float = POLL_INTERVAL_SECONDS
    walking_speed_kmh: float = WALKING_SPEED_KMH
    tick_interval_seconds: float = TICK_INTERVAL_SECONDS
    auto_dismiss: bool = AUTO_DISMISS
    arrived_display_seconds: float = ARRIVED_DISPLAY_SECONDS
    sos_display_seconds: float = SOS_DISPLAY_SECONDS
    min_estimate_minutes: float = MIN_ESTIMATE_MINUTES

    def __post_init__(self) -> None:
        for name in (
            "grace_period_minutes",
            "response_time_minutes",
            "arrived_display_seconds",
            "sos_display_seconds",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        for name in (
            "arrival_radius_km",
            "poll_interval_seconds",
            "walking_speed_kmh",
            "tick_interval_seconds",
            "min_estimate_minutes",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")


@dataclass(frozen=True, slots=True)
class JourneySnapshot:
    """Read-only view of the journey handed to the presentation layer.

    Elapsed and overtime figures are computed from the clock when the
    snapshot is taken; nothing here is accumulated between ticks.
    """

    phase: JourneyPhase
    started_at: datetime | None = None
    elapsed_minutes: float = 0.0
    estimated_minutes: float = 0.0
    is_overtime: bool = False
    overtime_minutes: float = 0.0
    check_pending: bool = False
    last_position: Coordinate | None = None

    @property
    def is_active(self) -> bool:
        return self.phase.is_active

    @property
    def remaining_minutes(self) -> float:
        return max(self.estimated_minutes - self.elapsed_minutes, 0.0)

    @property
    def progress_percent(self) -> float:
        if self.estimated_minutes <= 0:
            return 0.0
        return min(self.elapsed_minutes / self.estimated_minutes * 100.0, 100.0)

    def as_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "elapsed_minutes": self.elapsed_minutes,
            "estimated_minutes": self.estimated_minutes,
            "is_overtime": self.is_overtime,
            "overtime_minutes": self.overtime_minutes,
            "check_pending": self.check_pending,
            "last_position": self.last_position.as_dict()
            if self.last_position
            else None,
        }
