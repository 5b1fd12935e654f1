from __future__ import annotations

import logging
import random
import threading
from dataclasses import replace
from datetime import datetime, timedelta

from .activity import ActivityMonitor
from .capture import ScreenCaptureService
from .clock import Clock
from .config import ConfigStore
from .events import Signal
from .models import CaptureKind, DayState, ScheduleMode
from .privacy import PrivacyFilter
from .resolver import ScheduleResolver
from .storage import DayStore
from .timewindow import format_time_of_day, has_window_passed, is_in_window, time_of_day

logger = logging.getLogger(__name__)

CLOCK_JUMP_FACTOR = 2


class DailyScheduler:
    """Drives the once-per-day capture.

    A single worker thread calls :meth:`tick` every ``tick_interval_seconds``.
    Ticks, manual captures and power-resume handling share one lock so they
    never interleave.
    """

    def __init__(
        self,
        config_store: ConfigStore,
        day_store: DayStore,
        capture: ScreenCaptureService,
        activity: ActivityMonitor,
        privacy: PrivacyFilter,
        clock: Clock | None = None,
        rng: random.Random | None = None,
        power_events: Signal | None = None,
    ):
        self._config_store = config_store
        self._day_store = day_store
        self._capture = capture
        self._activity = activity
        self._privacy = privacy
        self._clock = clock or Clock()
        self._resolver = ScheduleResolver(config_store, rng)
        self._power_events = power_events

        self.photos_processed = Signal("photos_processed")
        self.scheduled_time_changed = Signal("scheduled_time_changed")

        self._tick_lock = threading.Lock()
        self._lifecycle_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

        now = self._clock.now()
        self._state = DayState(current_date=now.date(), last_tick_time=now, day_started_at=now)
        with self._tick_lock:
            self._initialize_day(now)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def state(self) -> DayState:
        # Snapshot without the tick lock; listeners read it while a tick runs.
        state = self._state
        return replace(state, captured_checkpoints=set(state.captured_checkpoints))

    def start(self) -> bool:
        with self._lifecycle_lock:
            if self.is_running:
                return False

            with self._tick_lock:
                self._state.last_tick_time = self._clock.now()
            if self._power_events is not None:
                self._power_events.connect(self.handle_power_resume)

            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run_loop,
                name="pictureday-scheduler",
                daemon=True,
            )
            self._thread.start()
            logger.info("Scheduler started")
            return True

    def stop(self, timeout_seconds: float = 5.0) -> None:
        with self._lifecycle_lock:
            thread = self._thread
            if self._power_events is not None:
                self._power_events.disconnect(self.handle_power_resume)
            if thread is None:
                return
            self._stop_event.set()

        thread.join(timeout=timeout_seconds)

        with self._lifecycle_lock:
            if self._thread is thread:
                self._thread = None
        logger.info("Scheduler stopped")

    def tick(self) -> None:
        with self._tick_lock:
            try:
                self._tick(self._clock.now())
            except Exception:  # noqa: BLE001
                logger.exception("Error in scheduler tick")

    def check_missed_schedule(self) -> None:
        with self._tick_lock:
            try:
                self._check_missed(self._clock.now())
            except Exception:  # noqa: BLE001
                logger.exception("Error checking for a missed schedule")

    def handle_power_resume(self) -> None:
        with self._tick_lock:
            try:
                now = self._clock.now()
                logger.info("System resumed, checking for a missed schedule")
                self._state.last_tick_time = now
                if now.date() != self._state.current_date:
                    self._roll_over(now)
                self._check_missed(now)
            except Exception:  # noqa: BLE001
                logger.exception("Error handling power resume")

    def capture_now(self) -> str | None:
        """Take a manual photo outside the daily selection."""
        with self._tick_lock:
            if self._privacy.should_block():
                logger.info("Manual capture blocked by privacy filter")
                return None
            path = self._capture.capture(CaptureKind.USER)
            if not path:
                logger.warning("Manual capture failed")
                return None
            self.photos_processed.emit()
            return path

    def _run_loop(self) -> None:
        next_due = self._clock.monotonic()

        while not self._stop_event.is_set():
            now = self._clock.monotonic()
            if now < next_due:
                if self._stop_event.wait(next_due - now):
                    break

            self.tick()

            interval = self._config_store.config.tick_interval_seconds
            next_due = max(next_due + interval, self._clock.monotonic() + 0.05)

    def _initialize_day(self, now: datetime) -> None:
        today = now.date()
        logger.info(f"Initializing day {today.isoformat()}")
        self._state = DayState(current_date=today, last_tick_time=now, day_started_at=now)

        yesterday = today - timedelta(days=1)
        yesterday_photos = self._day_store.get_photos_for_date(yesterday)
        if yesterday_photos and not any(photo.is_main for photo in yesterday_photos):
            logger.info(f"Recovering unprocessed photos for {yesterday.isoformat()}")
            self._day_store.process_daily_selection(yesterday)
            self.photos_processed.emit()

        removed = self._day_store.cleanup_orphaned_photos(today, self._config_store.config.orphan_retention_days)
        if removed:
            logger.info(f"Removed {removed} orphaned photo(s)")

        scheduled, fresh = self._resolver.load_or_resolve(now)
        self._state.scheduled_time = scheduled
        for checkpoint in scheduled.checkpoints:
            logger.debug(f"Quarter checkpoint {format_time_of_day(checkpoint)}")
        if fresh:
            self.scheduled_time_changed.emit()

        if self._day_store.has_main_photo(today):
            logger.info("Day already completed (main photo exists)")
            self._state.day_completed = True
        elif not fresh:
            self._check_missed(now)

    def _roll_over(self, now: datetime) -> None:
        previous = self._state.current_date
        if now.date() > previous:
            logger.info(f"Day rollover, processing photos for {previous.isoformat()}")
            self._day_store.process_daily_selection(previous)
        else:
            logger.warning(f"Date moved backwards from {previous.isoformat()} to {now.date().isoformat()}")
        self._initialize_day(now)
        self.photos_processed.emit()

    def _tick(self, now: datetime) -> None:
        state = self._state
        config = self._config_store.config
        elapsed = now - state.last_tick_time
        state.last_tick_time = now

        if elapsed > timedelta(seconds=config.tick_interval_seconds * CLOCK_JUMP_FACTOR):
            logger.info(f"Large time gap detected ({elapsed.total_seconds() / 60:.1f} minutes), possible sleep/resume")
            if now.date() == state.current_date:
                self._check_missed(now)
        elif elapsed < timedelta(0):
            logger.warning(f"Clock moved backwards by {-elapsed.total_seconds():.0f}s")

        if now.date() != state.current_date:
            self._roll_over(now)
            state = self._state

        if state.day_completed:
            return

        self._check_missed(now)
        if state.day_completed:
            return

        if not self._activity.is_user_active():
            logger.debug("User idle, skipping tick")
            return
        state.last_activity_time = now

        self._capture_if_due(now)

    def _check_missed(self, now: datetime) -> None:
        state = self._state
        scheduled = state.scheduled_time
        if state.day_completed or scheduled is None:
            return

        if self._day_store.has_main_photo(state.current_date):
            logger.info("Main photo already exists, marking day completed")
            state.day_completed = True
            return

        window = self._config_store.config.window
        if not has_window_passed(time_of_day(now), scheduled.time_of_day, window):
            return

        rescheduled = self._resolver.determine(now)
        if rescheduled.time_of_day == scheduled.time_of_day:
            state.scheduled_time = rescheduled
            return

        logger.info(
            f"Scheduled time {format_time_of_day(scheduled.time_of_day)} was missed, "
            f"rescheduled to {format_time_of_day(rescheduled.time_of_day)}"
        )
        state.scheduled_time = rescheduled
        self._resolver.commit(rescheduled)
        self.scheduled_time_changed.emit()

    def _capture_if_due(self, now: datetime) -> None:
        state = self._state
        config = self._config_store.config
        current = time_of_day(now)
        window = config.window

        if state.scheduled_time is not None and is_in_window(current, state.scheduled_time.time_of_day, window):
            logger.info(f"In scheduled window ({format_time_of_day(state.scheduled_time.time_of_day)})")
            self._try_capture(CaptureKind.MAIN)
            return

        for checkpoint in state.quarter_checkpoints:
            if checkpoint in state.captured_checkpoints or not is_in_window(current, checkpoint, window):
                continue
            logger.info(f"In checkpoint window ({format_time_of_day(checkpoint)})")
            if self._try_capture(CaptureKind.QUARTER):
                state.captured_checkpoints.add(checkpoint)
            return

        if (
            config.backup_capture_enabled
            and config.schedule_mode is not ScheduleMode.TIME_RANGE
            and not state.backup_taken
            and now - state.day_started_at >= timedelta(seconds=config.backup_delay_seconds)
        ):
            if self._try_capture(CaptureKind.BACKUP):
                state.backup_taken = True

    def _try_capture(self, kind: CaptureKind) -> bool:
        state = self._state
        if state.day_completed:
            logger.debug(f"Skipping {kind.label} capture, day already completed")
            return False
        if kind is not CaptureKind.MAIN and not self._activity.is_user_active():
            logger.debug(f"Skipping {kind.label} capture, user not active")
            return False
        if self._privacy.should_block():
            logger.info(f"Skipping {kind.label} capture, privacy filter blocking")
            return False

        path = self._capture.capture(kind)
        if not path:
            logger.warning(f"{kind.label} capture failed, will retry on the next tick")
            return False

        logger.info(f"{kind.label} photo saved: {path}")
        if kind is CaptureKind.MAIN:
            self._day_store.process_daily_selection(state.current_date)
            state.day_completed = True
            self.photos_processed.emit()
        return True
