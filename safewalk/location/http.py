"""Location source backed by an HTTP endpoint reporting the device fix.

The endpoint answers ``GET`` with ``{"latitude": .., "longitude": ..}``. A
device that cannot produce a fix may instead answer with
``{"error": "permission_denied" | "position_unavailable" | "timeout"}``.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests
from requests import Session

from ..config import LOCATION_TIMEOUT_SECONDS, LOCATION_URL
from ..errors import (
    LocationError,
    LocationTimeoutError,
    PermissionDeniedError,
    PositionUnavailableError,
)
from ..models import Coordinate
from ..session import create_default_session

LOGGER = logging.getLogger(__name__)

_ERRORS_BY_CODE: dict[str, type[LocationError]] = {
    PermissionDeniedError.code: PermissionDeniedError,
    PositionUnavailableError.code: PositionUnavailableError,
    LocationTimeoutError.code: LocationTimeoutError,
}


def classify_status(status: int, url: str) -> Optional[LocationError]:
    """Map a non-success HTTP status to a classified location error."""

    if status in (401, 403):
        return PermissionDeniedError(f"location access denied by {url}")
    if status in (408, 504):
        return LocationTimeoutError(f"location request to {url} timed out")
    if status >= 400:
        return PositionUnavailableError(
            f"location request to {url} failed (status {status})"
        )
    return None


def _parse_fix(payload: Any, url: str) -> Coordinate:
    if not isinstance(payload, dict):
        raise PositionUnavailableError(f"unexpected location payload from {url}")
    code = payload.get("error")
    if code:
        error_cls = _ERRORS_BY_CODE.get(str(code).lower(), PositionUnavailableError)
        raise error_cls(f"device reported {code}")
    try:
        return Coordinate.from_payload(payload)
    except (TypeError, ValueError) as exc:
        raise PositionUnavailableError(f"no usable fix from {url}: {exc}") from exc


class HttpLocationSource:
    """Fetch one position per call; no retries, bounded by ``timeout``."""

    def __init__(
        self,
        url: str = LOCATION_URL,
        *,
        session: Session | None = None,
        timeout: float = LOCATION_TIMEOUT_SECONDS,
    ) -> None:
        if not url:
            raise ValueError("a location URL is required (SAFEWALK_LOCATION_URL)")
        self.url = url
        self.timeout = timeout
        self._session = session or create_default_session(retries=False)

    def get_current_position(self) -> Coordinate:
        LOGGER.debug("GET %s", self.url)
        try:
            response = self._session.get(self.url, timeout=self.timeout)
        except requests.exceptions.Timeout as exc:
            raise LocationTimeoutError(
                f"no position within {self.timeout:.0f}s"
            ) from exc
        except requests.exceptions.RequestException as exc:
            raise PositionUnavailableError(f"location request failed: {exc}") from exc

        error = classify_status(response.status_code, self.url)
        if error is not None:
            raise error
        try:
            payload = response.json()
        except ValueError as exc:
            raise PositionUnavailableError(
                f"invalid JSON from {self.url}"
            ) from exc
        return _parse_fix(payload, self.url)


__all__ = ["HttpLocationSource", "classify_status"]
