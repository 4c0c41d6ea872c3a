"""Central error types used across the application."""

from __future__ import annotations


class LocationError(RuntimeError):
    """Base error for a failed position request."""

    code = "location_error"


class PermissionDeniedError(LocationError):
    """Raised when the user or OS refused access to the device location."""

    code = "permission_denied"


class PositionUnavailableError(LocationError):
    """Raised when no position fix could be obtained."""

    code = "position_unavailable"


class LocationTimeoutError(LocationError):
    """Raised when the position request exceeded its timeout."""

    code = "timeout"


class HomeNotConfiguredError(LookupError):
    """Raised when a distance to home is requested but no home is set."""


class ProfileStoreError(RuntimeError):
    """Raised when the remote profile store rejects or fails a request."""


class NotificationError(RuntimeError):
    """Raised when a guardian alert could not be delivered."""


__all__ = [
    "LocationError",
    "PermissionDeniedError",
    "PositionUnavailableError",
    "LocationTimeoutError",
    "HomeNotConfiguredError",
    "ProfileStoreError",
    "NotificationError",
]
