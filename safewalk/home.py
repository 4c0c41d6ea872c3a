"""Home location providers and the remote profile store client.

The journey core only reads the signed-in person's home coordinates and, when
the person asks for it, writes new ones. Account management, guardian links
and everything else about profiles live in the external store.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Protocol

import requests
from cachetools import TTLCache
from requests import Session

from .config import (
    HOME_CACHE_TTL_SECONDS,
    PROFILE_STORE_KEY,
    PROFILE_STORE_URL,
    REQUEST_TIMEOUT,
)
from .errors import ProfileStoreError
from .location import LocationSource
from .models import UNSET, Coordinate, HomeLocation, JourneyPhase
from .session import get_default_session

LOGGER = logging.getLogger(__name__)

# Guardian-facing status of a protected person.
STATUS_UNCONFIGURED = "unconfigured"
STATUS_ON_THE_WAY = "on_the_way"
STATUS_AT_HOME = "at_home"


class HomeLocationProvider(Protocol):
    def get(self) -> HomeLocation: ...

    def update(self, home: Coordinate) -> None: ...


class StaticHomeProvider:
    """In-memory home location, for tests and single-user command line runs."""

    def __init__(self, home: HomeLocation = UNSET) -> None:
        self._lock = threading.Lock()
        self._home = home

    def get(self) -> HomeLocation:
        with self._lock:
            return self._home

    def update(self, home: Coordinate) -> None:
        with self._lock:
            self._home = home


class ProfileStoreClient:
    """Minimal PostgREST client for the ``profiles`` table.

    Only the ``home_latitude`` / ``home_longitude`` columns of the row owned
    by ``user_id`` are touched.
    """

    def __init__(
        self,
        base_url: str = PROFILE_STORE_URL,
        api_key: str = PROFILE_STORE_KEY,
        *,
        session: Session | None = None,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        if not base_url:
            raise ValueError(
                "a profile store URL is required (SAFEWALK_PROFILE_STORE_URL)"
            )
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._session = session or get_default_session()
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["apikey"] = self._api_key
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _request(self, method: str, user_id: str, **kwargs: Any) -> requests.Response:
        url = f"{self.base_url}/profiles"
        params = {"user_id": f"eq.{user_id}", **kwargs.pop("params", {})}
        LOGGER.debug("%s %s params=%s", method, url, params)
        try:
            response = self._session.request(
                method,
                url,
                params=params,
                headers=self._headers(),
                timeout=self.timeout,
                **kwargs,
            )
        except requests.exceptions.RequestException as exc:
            raise ProfileStoreError(f"profile store {method} failed: {exc}") from exc
        if response.status_code >= 400:
            raise ProfileStoreError(
                f"profile store {method} failed (status {response.status_code})"
            )
        return response

    def fetch_home(self, user_id: str) -> HomeLocation:
        response = self._request(
            "GET", user_id, params={"select": "home_latitude,home_longitude"}
        )
        try:
            rows = response.json()
        except ValueError as exc:
            raise ProfileStoreError("profile store returned invalid JSON") from exc
        if not rows:
            return UNSET
        row = rows[0] if isinstance(rows, list) else rows
        lat = row.get("home_latitude")
        lon = row.get("home_longitude")
        if lat is None or lon is None:
            return UNSET
        return Coordinate(float(lat), float(lon))

    def update_home(self, user_id: str, home: Coordinate) -> None:
        self._request(
            "PATCH",
            user_id,
            json={"home_latitude": home.latitude, "home_longitude": home.longitude},
        )
        LOGGER.info("Stored home location for user=%s", user_id)


class CachedHomeProvider:
    """Home provider for one user backed by the profile store.

    Reads are cached for ``ttl`` seconds. When the store cannot be reached
    the last value read is served instead (or UNSET if there is none), so an
    outage never interrupts an ongoing journey.
    """

    def __init__(
        self,
        store: ProfileStoreClient,
        user_id: str,
        ttl: float = HOME_CACHE_TTL_SECONDS,
    ) -> None:
        self._store = store
        self.user_id = user_id
        self._lock = threading.RLock()
        self._cache: TTLCache[str, HomeLocation] = TTLCache(
            maxsize=1, ttl=max(ttl, 0.001)
        )
        self._last_known: HomeLocation = UNSET

    def get(self) -> HomeLocation:
        with self._lock:
            cached = self._cache.get(self.user_id)
            if cached is not None:
                return cached
            try:
                home = self._store.fetch_home(self.user_id)
            except ProfileStoreError as exc:
                LOGGER.warning(
                    "Home lookup failed for user=%s, serving last known: %s",
                    self.user_id,
                    exc,
                )
                return self._last_known
            self._cache[self.user_id] = home
            self._last_known = home
            return home

    def update(self, home: Coordinate) -> None:
        with self._lock:
            self._store.update_home(self.user_id, home)
            self._cache[self.user_id] = home
            self._last_known = home

    def invalidate(self) -> None:
        with self._lock:
            self._cache.pop(self.user_id, None)


def set_home_from_current_position(
    source: LocationSource, provider: HomeLocationProvider
) -> Coordinate:
    """Use the current position as the new home and persist it.

    Location and store errors propagate unchanged; nothing is retried.
    """

    position = source.get_current_position()
    provider.update(position)
    LOGGER.info(
        "Home location set to %.5f,%.5f", position.latitude, position.longitude
    )
    return position


def guardian_status(home: HomeLocation, phase: JourneyPhase | None = None) -> str:
    """Summarise a protected person's state for their guardian."""

    if not isinstance(home, Coordinate):
        return STATUS_UNCONFIGURED
    if phase is not None and phase.is_active:
        return STATUS_ON_THE_WAY
    return STATUS_AT_HOME


__all__ = [
    "HomeLocationProvider",
    "StaticHomeProvider",
    "ProfileStoreClient",
    "CachedHomeProvider",
    "set_home_from_current_position",
    "guardian_status",
    "STATUS_UNCONFIGURED",
    "STATUS_ON_THE_WAY",
    "STATUS_AT_HOME",
]
