"""Location sources: single-shot "where am I now" providers.

Every source raises one of the classified ``LocationError`` subclasses on
failure and never retries on its own.
"""

from .base import LocationSource, ScriptedLocationSource, StaticLocationSource
from .http import HttpLocationSource

__all__ = [
    "LocationSource",
    "StaticLocationSource",
    "ScriptedLocationSource",
    "HttpLocationSource",
]
