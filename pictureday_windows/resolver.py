from __future__ import annotations

import logging
import random
from datetime import datetime, timedelta

from .config import AppConfig, ConfigStore
from .models import ScheduledTime, ScheduleMode
from .timewindow import (
    LAST_MINUTE,
    ceil_minutes,
    effective_range_end,
    format_time_of_day,
    normalize_time_of_day,
    quarter_checkpoints,
    time_of_day,
)

logger = logging.getLogger(__name__)


def quarter_checkpoints_for(config: AppConfig) -> tuple[timedelta, ...]:
    if config.schedule_mode is not ScheduleMode.TIME_RANGE:
        return ()
    start, end = config.range_start, config.range_end
    if start is None or end is None:
        return ()
    return quarter_checkpoints(normalize_time_of_day(start), normalize_time_of_day(end))


class ScheduleResolver:
    """Picks the time of today's capture from the configured policy."""

    def __init__(self, config_store: ConfigStore, rng: random.Random | None = None):
        self._config_store = config_store
        self._rng = rng or random.Random()

    def determine(self, now: datetime) -> ScheduledTime:
        config = self._config_store.config
        current = time_of_day(now)
        mode = config.schedule_mode

        if mode is ScheduleMode.FIXED_TIME and config.fixed_time is not None:
            chosen = normalize_time_of_day(config.fixed_time)
        elif mode is ScheduleMode.TIME_RANGE and config.range_start is not None and config.range_end is not None:
            chosen = self._pick_in_range(
                normalize_time_of_day(config.range_start),
                normalize_time_of_day(config.range_end),
                current,
            )
        else:
            if mode is not ScheduleMode.RANDOM:
                logger.warning(f"{mode.value} schedule is missing its times, falling back to Random")
            chosen = self._pick_random(current)

        return ScheduledTime(day=now.date(), time_of_day=chosen, checkpoints=quarter_checkpoints_for(config))

    def load_or_resolve(self, now: datetime) -> tuple[ScheduledTime, bool]:
        """Reuse today's persisted time or resolve and persist a new one.

        The boolean is true when the time was freshly resolved.
        """
        config = self._config_store.config
        persisted = config.persisted_scheduled_time
        if persisted is not None and persisted[0] == now.date():
            scheduled = ScheduledTime(
                day=persisted[0],
                time_of_day=normalize_time_of_day(persisted[1]),
                checkpoints=quarter_checkpoints_for(config),
            )
            logger.info(f"Using existing scheduled time {format_time_of_day(scheduled.time_of_day)}")
            return scheduled, False

        scheduled = self.determine(now)
        self.commit(scheduled)
        logger.info(
            f"Scheduled time for {scheduled.day.isoformat()} set to "
            f"{format_time_of_day(scheduled.time_of_day)} (mode: {config.schedule_mode.value})"
        )
        return scheduled, True

    def commit(self, scheduled: ScheduledTime) -> bool:
        saved = self._config_store.save_scheduled_time(scheduled.day, scheduled.time_of_day)
        if not saved:
            logger.error(f"Failed to persist scheduled time for {scheduled.day.isoformat()}")
        return saved

    def _pick_random(self, current: timedelta) -> timedelta:
        first_minute = ceil_minutes(current + timedelta(minutes=1))
        if first_minute > LAST_MINUTE:
            return timedelta(0)
        return timedelta(minutes=self._rng.randint(first_minute, LAST_MINUTE))

    def _pick_in_range(self, start: timedelta, end: timedelta, current: timedelta) -> timedelta:
        effective_end = effective_range_end(start, end)
        if current > effective_end:
            # Range is over for today; the time applies to tomorrow's range.
            return start

        first_minute = max(ceil_minutes(start), ceil_minutes(current + timedelta(minutes=1)))
        end_minute = int(effective_end.total_seconds() // 60)
        if first_minute >= end_minute:
            return start
        return timedelta(minutes=self._rng.randrange(first_minute, end_minute))
