"""Location source contract and in-process implementations."""

from __future__ import annotations

import threading
from typing import Iterable, Protocol, runtime_checkable

from ..errors import LocationError
from ..models import Coordinate

Fix = Coordinate | LocationError


@runtime_checkable
class LocationSource(Protocol):
    def get_current_position(self) -> Coordinate:
        """Return the current position or raise a ``LocationError`` subclass.

        May block the calling thread for at most the source's timeout.
        """
        ...


class StaticLocationSource:
    """Always answers with the same fix (or the same error)."""

    def __init__(self, fix: Fix) -> None:
        self._lock = threading.Lock()
        self._fix = fix
        self.calls = 0

    def set(self, fix: Fix) -> None:
        with self._lock:
            self._fix = fix

    def get_current_position(self) -> Coordinate:
        with self._lock:
            self.calls += 1
            fix = self._fix
        if isinstance(fix, LocationError):
            raise fix
        return fix


class ScriptedLocationSource:
    """Replays a sequence of fixes and errors, then repeats the last entry.

    Used by simulations and tests to model a walker approaching home.
    """

    def __init__(self, fixes: Iterable[Fix]) -> None:
        self._fixes = list(fixes)
        if not self._fixes:
            raise ValueError("ScriptedLocationSource needs at least one fix")
        self._lock = threading.Lock()
        self._index = 0
        self.calls = 0

    def get_current_position(self) -> Coordinate:
        with self._lock:
            self.calls += 1
            fix = self._fixes[min(self._index, len(self._fixes) - 1)]
            self._index += 1
        if isinstance(fix, LocationError):
            raise fix
        return fix


__all__ = ["LocationSource", "StaticLocationSource", "ScriptedLocationSource"]
