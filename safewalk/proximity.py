"""Arrival detection: is a position within the arrival radius of home."""

from __future__ import annotations

from typing import Callable

from .config import ARRIVAL_RADIUS_KM, WALKING_SPEED_KMH
from .distance import distance_to_home, estimate_time_to_home
from .errors import HomeNotConfiguredError
from .models import Coordinate, HomeLocation

HomeGetter = Callable[[], HomeLocation]


def is_near_home(
    point: Coordinate,
    home: HomeLocation,
    radius_km: float = ARRIVAL_RADIUS_KM,
) -> bool:
    """True iff ``point`` is strictly closer than ``radius_km`` to ``home``.

    An unset home is never "near", so arrival is not reported by accident.
    """

    try:
        return distance_to_home(point, home) < radius_km
    except HomeNotConfiguredError:
        return False


class ProximityOracle:
    """Binds the arrival radius and walking speed to a live home lookup.

    ``home_getter`` is called on every query so a home updated mid-session is
    picked up by the next check.
    """

    def __init__(
        self,
        home_getter: HomeGetter,
        radius_km: float = ARRIVAL_RADIUS_KM,
        walking_speed_kmh: float = WALKING_SPEED_KMH,
    ) -> None:
        self._home_getter = home_getter
        self.radius_km = radius_km
        self.walking_speed_kmh = walking_speed_kmh

    def is_near_home(self, point: Coordinate) -> bool:
        return is_near_home(point, self._home_getter(), self.radius_km)

    def estimate_time_to_home(self, point: Coordinate) -> float:
        return estimate_time_to_home(
            point, self._home_getter(), self.walking_speed_kmh
        )


__all__ = ["is_near_home", "ProximityOracle"]
