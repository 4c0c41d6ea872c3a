"""General display helpers shared by the command line and hosts."""

from __future__ import annotations

import math

from .models import JourneyPhase, JourneySnapshot


def format_clock(minutes: float) -> str:
    """Format fractional minutes as ``m:ss``."""

    if not math.isfinite(minutes) or minutes < 0:
        minutes = 0.0
    total_seconds = int(round(minutes * 60))
    mins, sec = divmod(total_seconds, 60)
    return f"{mins}:{sec:02d}"


def describe(snapshot: JourneySnapshot) -> str:
    """One-line human summary of a snapshot."""

    phase = snapshot.phase
    if phase is JourneyPhase.IDLE:
        return "idle"
    if phase is JourneyPhase.ARRIVED:
        return "arrived home"
    if phase is JourneyPhase.SOS:
        return "SOS sent"
    clock = format_clock(snapshot.elapsed_minutes)
    if snapshot.is_overtime:
        detail = f"{format_clock(snapshot.overtime_minutes)} overtime"
    else:
        detail = f"of {snapshot.estimated_minutes:.0f} min"
    suffix = " (awaiting check-in)" if snapshot.check_pending else ""
    return f"{phase.value} {clock} {detail}{suffix}"
