"""SafeWalk walk-home journey monitor package."""

from .errors import (
    HomeNotConfiguredError,
    LocationError,
    LocationTimeoutError,
    PermissionDeniedError,
    PositionUnavailableError,
)
from .models import UNSET, Coordinate, JourneyPhase, JourneySettings, JourneySnapshot
from .monitor import JourneyMonitor

__all__ = [
    "JourneyMonitor",
    "JourneyPhase",
    "JourneySettings",
    "JourneySnapshot",
    "Coordinate",
    "UNSET",
    "LocationError",
    "PermissionDeniedError",
    "PositionUnavailableError",
    "LocationTimeoutError",
    "HomeNotConfiguredError",
]
