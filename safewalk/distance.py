"""Great-circle distance and walking-time estimates (no external dependencies)."""

from __future__ import annotations

import logging
import math

from .config import (
    DEFAULT_ESTIMATE_MINUTES,
    EARTH_RADIUS_KM,
    MIN_ESTIMATE_MINUTES,
    WALKING_SPEED_KMH,
)
from .errors import HomeNotConfiguredError
from .models import Coordinate, HomeLocation

LOGGER = logging.getLogger(__name__)


def haversine_km(a: Coordinate, b: Coordinate) -> float:
    """Compute the haversine distance in kilometres between two points.

    Args:
        a: First point (degrees).
        b: Second point (degrees).

    Returns:
        Distance in kilometres on a sphere of radius ``EARTH_RADIUS_KM``.
        Invalid input (NaN) propagates to the result.
    """

    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    d_phi = math.radians(b.latitude - a.latitude)
    d_lambda = math.radians(b.longitude - a.longitude)

    h = (
        math.sin(d_phi / 2.0) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    )
    c = 2.0 * math.atan2(math.sqrt(h), math.sqrt(1.0 - h))
    return EARTH_RADIUS_KM * c


def walking_minutes(distance_km: float, speed_kmh: float = WALKING_SPEED_KMH) -> float:
    """Whole minutes needed to walk ``distance_km``, never less than the floor."""

    if speed_kmh <= 0:
        raise ValueError("speed_kmh must be > 0")
    minutes = distance_km / speed_kmh * 60.0
    # Half-up rounding; round() would send 2.5 to 2.
    return max(float(math.floor(minutes + 0.5)), MIN_ESTIMATE_MINUTES)


def distance_to_home(point: Coordinate, home: HomeLocation) -> float:
    """Distance in km from ``point`` to ``home``.

    Raises:
        HomeNotConfiguredError: If ``home`` is unset.
    """

    if not isinstance(home, Coordinate):
        raise HomeNotConfiguredError("home location is not configured")
    return haversine_km(point, home)


def estimate_time_to_home(
    point: Coordinate,
    home: HomeLocation,
    speed_kmh: float = WALKING_SPEED_KMH,
) -> float:
    """Walking-time estimate in minutes from ``point`` to ``home``.

    Falls back to ``DEFAULT_ESTIMATE_MINUTES`` when no home is configured so a
    journey can always be started.
    """

    try:
        distance = distance_to_home(point, home)
    except HomeNotConfiguredError:
        LOGGER.info(
            "No home configured; using default estimate of %s minutes",
            DEFAULT_ESTIMATE_MINUTES,
        )
        return DEFAULT_ESTIMATE_MINUTES
    return walking_minutes(distance, speed_kmh)


__all__ = [
    "haversine_km",
    "walking_minutes",
    "distance_to_home",
    "estimate_time_to_home",
]
