from __future__ import annotations

import argparse
import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path

from . import __version__
from .activity import ActivityMonitor
from .capture import ScreenCaptureService
from .config import ConfigStore
from .events import Signal
from .logging_setup import init_logging
from .models import CaptureKind
from .paths import ensure_directories
from .privacy import PrivacyFilter
from .scheduler import DailyScheduler
from .storage import DayStore
from .timewindow import format_time_of_day

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Collaborators shared by the scheduler and any embedding shell.

    ``power_events`` is an input channel: a shell that receives the OS
    resume notification emits it. The headless runner never does, and
    relies on the scheduler's clock-jump check to notice sleep instead.
    """

    config_store: ConfigStore
    day_store: DayStore
    capture: ScreenCaptureService
    activity: ActivityMonitor
    privacy: PrivacyFilter
    power_events: Signal


def build_services(config_path: Path | None = None, photos_dir: Path | None = None) -> Services:
    config_store = ConfigStore(config_path)
    config = config_store.config
    base = Path(photos_dir) if photos_dir is not None else config.photos_directory()
    day_store = DayStore(base)
    return Services(
        config_store=config_store,
        day_store=day_store,
        capture=ScreenCaptureService(day_store, config_store),
        activity=ActivityMonitor(config.idle_threshold),
        privacy=PrivacyFilter(config_store),
        power_events=Signal("power_resumed"),
    )


def build_scheduler(services: Services) -> DailyScheduler:
    return DailyScheduler(
        services.config_store,
        services.day_store,
        services.capture,
        services.activity,
        services.privacy,
        power_events=services.power_events,
    )


def _run_headless(services: Services) -> int:
    scheduler = build_scheduler(services)
    scheduler.photos_processed.connect(lambda: logger.info("Photos processed"))
    scheduler.scheduled_time_changed.connect(
        lambda: logger.info(f"Next capture at {format_time_of_day(scheduler.state.scheduled_time.time_of_day)}")
    )

    state = scheduler.state
    if state.day_completed:
        print(f"{state.current_date.isoformat()}: photo already taken")
    elif state.scheduled_time is not None:
        print(f"{state.current_date.isoformat()}: scheduled at {format_time_of_day(state.scheduled_time.time_of_day)}")

    scheduler.start()
    stop_event = threading.Event()
    try:
        while not stop_event.wait(1.0):
            pass
    except KeyboardInterrupt:
        print("Stopping...")
    finally:
        scheduler.stop()
    return 0


def _capture_now_cli(services: Services) -> int:
    if services.privacy.should_block():
        print("Capture blocked by privacy filter")
        return 1
    path = services.capture.capture(CaptureKind.USER)
    if path is None:
        print("Capture failed")
        return 1
    print(f"captured file={path}")
    return 0


def _process_date_cli(services: Services, day: date) -> int:
    kept = services.day_store.process_daily_selection(day)
    if kept is None:
        print(f"{day.isoformat()}: no photo selected")
        return 1
    print(f"{day.isoformat()}: main photo {kept}")
    return 0


def _cleanup_cli(services: Services) -> int:
    retention = services.config_store.config.orphan_retention_days
    removed = services.day_store.cleanup_orphaned_photos(datetime.now().date(), retention)
    print(f"removed={removed}")
    return 0


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date: {value!r} (expected YYYY-MM-DD)") from None


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="pictureday_windows")
    parser.add_argument("--capture-now", action="store_true", help="Take a manual screenshot and exit")
    parser.add_argument("--process-date", type=_parse_date, metavar="YYYY-MM-DD", help="Run photo selection for a day and exit")
    parser.add_argument("--cleanup", action="store_true", help="Delete orphaned candidate photos and exit")
    parser.add_argument("--config", type=Path, help="Path to config.json")
    parser.add_argument("--photos-dir", type=Path, help="Override the screenshot directory")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="store_true", help="Print app version and exit")
    args = parser.parse_args(argv)
    if args.version:
        print(__version__)
        return 0

    ensure_directories()
    init_logging(debug=args.debug)
    services = build_services(args.config, args.photos_dir)
    if args.capture_now:
        return _capture_now_cli(services)
    if args.process_date is not None:
        return _process_date_cli(services, args.process_date)
    if args.cleanup:
        return _cleanup_cli(services)
    return _run_headless(services)
