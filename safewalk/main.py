"""Command line entry point.

Run:
    python -m safewalk estimate 40.4168 -3.7038 --home 40.4200 -3.7000
    python -m safewalk walk --home 40.4200 -3.7000 --location-url http://phone.local/fix
    python -m safewalk set-home --user <id> --fix 40.4200 -3.7000
"""

from __future__ import annotations

import argparse
import logging
import sys
import threading
from typing import Callable, TextIO

from . import config
from .distance import distance_to_home, estimate_time_to_home
from .errors import (
    HomeNotConfiguredError,
    LocationError,
    NotificationError,
    ProfileStoreError,
)
from .home import (
    CachedHomeProvider,
    HomeLocationProvider,
    ProfileStoreClient,
    StaticHomeProvider,
    set_home_from_current_position,
)
from .location import HttpLocationSource, LocationSource, StaticLocationSource
from .models import UNSET, Coordinate, JourneyPhase, JourneySettings
from .monitor import JourneyMonitor
from .notify import EVENT_OVERDUE_UNANSWERED, EVENT_SOS, WebhookGuardianNotifier
from .utils import describe

LOGGER = logging.getLogger(__name__)

COMMANDS_HELP = "commands: ok | arrived | sos | cancel | status"


def _setup_logging(verbose: bool = False) -> None:
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.INFO,
            format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        )


def _coordinate(values: list[float] | None) -> Coordinate | None:
    if not values:
        return None
    return Coordinate(values[0], values[1])


def _location_source(args: argparse.Namespace) -> LocationSource:
    fix = _coordinate(getattr(args, "fix", None))
    if fix is not None:
        return StaticLocationSource(fix)
    if getattr(args, "location_url", None):
        return HttpLocationSource(args.location_url)
    raise SystemExit("either --location-url or --fix is required")


def _home_provider(args: argparse.Namespace) -> HomeLocationProvider:
    home = _coordinate(getattr(args, "home", None))
    if home is not None:
        return StaticHomeProvider(home)
    if getattr(args, "user", None):
        return CachedHomeProvider(ProfileStoreClient(), args.user)
    return StaticHomeProvider(UNSET)


def _cmd_estimate(args: argparse.Namespace) -> int:
    point = Coordinate(args.latitude, args.longitude)
    try:
        provider = _home_provider(args)
    except ValueError as exc:
        LOGGER.error("Cannot read home location: %s", exc)
        return 1
    home = provider.get()
    minutes = estimate_time_to_home(point, home)
    try:
        km = distance_to_home(point, home)
    except HomeNotConfiguredError:
        print(f"no home configured; default estimate {minutes:.0f} min")
        return 0
    print(f"distance {km:.3f} km, estimated {minutes:.0f} min walking")
    return 0


def _cmd_set_home(args: argparse.Namespace) -> int:
    source = _location_source(args)
    try:
        provider = _home_provider(args)
    except ValueError as exc:
        LOGGER.error("Cannot store home location: %s", exc)
        return 1
    try:
        home = set_home_from_current_position(source, provider)
    except LocationError as exc:
        LOGGER.error("Could not get a position (%s): %s", exc.code, exc)
        return 1
    except ProfileStoreError as exc:
        LOGGER.error("Could not save home location: %s", exc)
        return 1
    print(f"home set to {home.latitude:.6f}, {home.longitude:.6f}")
    return 0


def _alarm(
    monitor_ref: list[JourneyMonitor],
    notifier: WebhookGuardianNotifier | None,
    event: str,
) -> Callable[[], None]:
    def _fire() -> None:
        LOGGER.warning("ALERT %s", event)
        if notifier is None or not monitor_ref:
            return
        try:
            notifier.notify(event, monitor_ref[0].snapshot())
        except NotificationError as exc:
            LOGGER.error("Guardian alert %s not delivered: %s", event, exc)

    return _fire


def _read_commands(monitor: JourneyMonitor, stream: TextIO) -> None:
    actions = {
        "ok": monitor.confirm_ok,
        "arrived": monitor.signal_arrived,
        "sos": monitor.signal_sos,
        "cancel": monitor.cancel,
    }
    for line in stream:
        command = line.strip().lower()
        if not command:
            continue
        if command == "status":
            print(describe(monitor.snapshot()))
            continue
        action = actions.get(command)
        if action is None:
            print(COMMANDS_HELP)
            continue
        if not action():
            print(f"'{command}' ignored while {monitor.phase.value}")


def _cmd_walk(args: argparse.Namespace) -> int:
    settings_kwargs = {}
    if args.grace is not None:
        settings_kwargs["grace_period_minutes"] = args.grace
    if args.response is not None:
        settings_kwargs["response_time_minutes"] = args.response
    settings = JourneySettings(**settings_kwargs)
    notifier = (
        WebhookGuardianNotifier(args.webhook_url, person=args.user)
        if args.webhook_url
        else None
    )
    try:
        provider = _home_provider(args)
    except ValueError as exc:
        LOGGER.error("Cannot read home location: %s", exc)
        return 1
    finished = threading.Event()
    monitor_ref: list[JourneyMonitor] = []
    notify_sos = _alarm(monitor_ref, notifier, EVENT_SOS)

    def on_phase_change(phase: JourneyPhase) -> None:
        print(f"-> {phase.value}")
        if phase is JourneyPhase.SOS:
            notify_sos()
        if not phase.is_active:
            finished.set()

    monitor = JourneyMonitor(
        _location_source(args),
        provider.get,
        settings=settings,
        on_phase_change=on_phase_change,
        on_overdue_check=lambda: print("Are you OK? type 'ok' to continue or 'sos'"),
        on_guardian_notify=_alarm(monitor_ref, notifier, EVENT_OVERDUE_UNANSWERED),
    )
    monitor_ref.append(monitor)
    with monitor:
        try:
            snapshot = monitor.begin()
        except LocationError as exc:
            LOGGER.error("Could not start journey (%s): %s", exc.code, exc)
            return 1
        if snapshot is None:
            return 1
        print(f"journey started, estimated {snapshot.estimated_minutes:.0f} min")
        print(COMMANDS_HELP)
        reader = threading.Thread(
            target=_read_commands, args=(monitor, sys.stdin), daemon=True
        )
        reader.start()
        try:
            while not finished.wait(timeout=60):
                LOGGER.info("%s", describe(monitor.snapshot()))
        except KeyboardInterrupt:
            monitor.cancel()
        print(describe(monitor.snapshot()))
    return 0


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="safewalk", description="Walk-home journey monitor"
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_home(p: argparse.ArgumentParser) -> None:
        p.add_argument("--home", nargs=2, type=float, metavar=("LAT", "LON"))
        p.add_argument("--user", help="profile store user id to read home from")

    def add_location(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "--location-url",
            default=config.LOCATION_URL,
            help="HTTP endpoint returning the current fix (SAFEWALK_LOCATION_URL)",
        )
        p.add_argument("--fix", nargs=2, type=float, metavar=("LAT", "LON"))

    p_est = sub.add_parser("estimate", help="distance and walking time to home")
    p_est.add_argument("latitude", type=float)
    p_est.add_argument("longitude", type=float)
    add_home(p_est)
    p_est.set_defaults(func=_cmd_estimate)

    p_walk = sub.add_parser("walk", help="monitor a journey home")
    add_home(p_walk)
    add_location(p_walk)
    p_walk.add_argument("--grace", type=float, help="grace period in minutes")
    p_walk.add_argument(
        "--response", type=float, help="check-in response time in minutes"
    )
    p_walk.add_argument(
        "--webhook-url",
        default=config.GUARDIAN_WEBHOOK_URL,
        help="guardian alert webhook (SAFEWALK_GUARDIAN_WEBHOOK_URL)",
    )
    p_walk.set_defaults(func=_cmd_walk)

    p_home = sub.add_parser("set-home", help="store the current position as home")
    p_home.add_argument("--user", required=True)
    add_location(p_home)
    p_home.set_defaults(func=_cmd_set_home, home=None)

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    _setup_logging(args.verbose)
    return args.func(args)
