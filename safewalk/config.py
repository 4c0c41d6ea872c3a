"""Central configuration for the SafeWalk journey monitor.

All values are constants imported by the rest of the package. Tunable values
are read from environment variables (optionally via a local `.env`).
"""

from __future__ import annotations

import importlib
import os


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


# Load .env variables when python-dotenv is available.
_load_dotenv = None
try:
    _dotenv_mod = importlib.import_module("dotenv")
    _load_dotenv = getattr(_dotenv_mod, "load_dotenv", None)
except Exception:
    _load_dotenv = None

if callable(_load_dotenv):
    # Load .env from the current directory or any parent folder.
    _load_dotenv()


# ---------------------------------------------------------------------------
# Escalation timing
# ---------------------------------------------------------------------------
# Extra minutes allowed past the estimate before the "are you ok?" check.
GRACE_PERIOD_MINUTES = _env_float("SAFEWALK_GRACE_PERIOD_MINUTES", 5.0)

# Minutes the walker has to acknowledge the check before the guardian is told.
RESPONSE_TIME_MINUTES = _env_float("SAFEWALK_RESPONSE_TIME_MINUTES", 3.0)

# Snapshot refresh cadence. Elapsed time is always derived from the clock.
TICK_INTERVAL_SECONDS = 1.0


# ---------------------------------------------------------------------------
# Distance / arrival
# ---------------------------------------------------------------------------
EARTH_RADIUS_KM = 6371.0

# Assumed walking pace used for the ETA.
WALKING_SPEED_KMH = 5.0

# A position closer than this to home counts as arrived (100 metres).
ARRIVAL_RADIUS_KM = 0.1

# How often the arrival poller asks for a fresh position.
POLL_INTERVAL_SECONDS = 30.0

# ETA floor and the fallback used when no home is configured.
MIN_ESTIMATE_MINUTES = 1.0
DEFAULT_ESTIMATE_MINUTES = 10.0


# ---------------------------------------------------------------------------
# Display states
# ---------------------------------------------------------------------------
# Arrived/Sos are shown for a short while and then fall back to Idle. Set
# SAFEWALK_AUTO_DISMISS=0 to leave them until dismiss() is called.
AUTO_DISMISS = _env_bool("SAFEWALK_AUTO_DISMISS", True)
ARRIVED_DISPLAY_SECONDS = 3.0
SOS_DISPLAY_SECONDS = 5.0


# ---------------------------------------------------------------------------
# External services
# ---------------------------------------------------------------------------
# Single-shot position requests are bounded by this timeout.
LOCATION_TIMEOUT_SECONDS = _env_float("SAFEWALK_LOCATION_TIMEOUT_SECONDS", 10.0)

# Endpoint returning the device's current fix as {"latitude", "longitude"}.
LOCATION_URL = os.getenv("SAFEWALK_LOCATION_URL", "")

# REST endpoint of the profile store (PostgREST style) and its API key.
PROFILE_STORE_URL = os.getenv("SAFEWALK_PROFILE_STORE_URL", "")
PROFILE_STORE_KEY = os.getenv("SAFEWALK_PROFILE_STORE_KEY", "")

# Cache home coordinates read from the profile store for this many seconds.
HOME_CACHE_TTL_SECONDS = _env_int("SAFEWALK_HOME_CACHE_TTL_SECONDS", 300)

# Guardian alerts are POSTed here when set.
GUARDIAN_WEBHOOK_URL = os.getenv("SAFEWALK_GUARDIAN_WEBHOOK_URL", "")

# HTTP session pool sizes and request timeout (seconds) for store/webhook calls.
HTTP_POOL_CONNECTIONS = 4
HTTP_POOL_MAXSIZE = 4
REQUEST_TIMEOUT = 15
