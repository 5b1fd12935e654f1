from __future__ import annotations

import math
from datetime import datetime, timedelta

DAY = timedelta(days=1)
END_OF_DAY = timedelta(hours=23, minutes=59, seconds=59)
LAST_MINUTE = 24 * 60 - 1


def time_of_day(moment: datetime) -> timedelta:
    return timedelta(
        hours=moment.hour,
        minutes=moment.minute,
        seconds=moment.second,
        microseconds=moment.microsecond,
    )


def normalize_time_of_day(value: timedelta) -> timedelta:
    # timedelta % timedelta keeps the sign of the divisor, so negatives wrap forward.
    return value % DAY


def window_bounds(target: timedelta, width: timedelta) -> tuple[timedelta, timedelta, bool]:
    """Return ``(start, end, wraps)`` for the window centred on ``target``.

    ``start`` and ``end`` are normalised into ``[0h, 24h)``. ``wraps`` is true
    when the window crosses midnight in either direction, in which case a time
    matches when it is ``>= start`` or ``<= end``.
    """
    centre = normalize_time_of_day(target)
    half = width / 2
    raw_start = centre - half
    raw_end = centre + half
    wraps = raw_start < timedelta(0) or raw_end >= DAY
    return normalize_time_of_day(raw_start), normalize_time_of_day(raw_end), wraps


def is_in_window(current: timedelta, target: timedelta, width: timedelta) -> bool:
    start, end, wraps = window_bounds(target, width)
    current = normalize_time_of_day(current)
    if wraps:
        return current >= start or current <= end
    return start <= current <= end


def has_window_passed(current: timedelta, target: timedelta, width: timedelta) -> bool:
    centre = normalize_time_of_day(target)
    raw_end = centre + width / 2
    if raw_end >= DAY:
        # The tail of this window belongs to tomorrow.
        return False
    return normalize_time_of_day(current) > raw_end


def effective_range_end(start: timedelta, end: timedelta) -> timedelta:
    return end if end >= start else END_OF_DAY


def quarter_checkpoints(start: timedelta, end: timedelta) -> tuple[timedelta, ...]:
    quarter = (effective_range_end(start, end) - start) / 4
    return tuple(start + quarter * index for index in range(4))


def ceil_minutes(value: timedelta) -> int:
    return int(math.ceil(value.total_seconds() / 60.0))


def parse_time_of_day(value: object) -> timedelta | None:
    if value is None:
        return None
    if isinstance(value, timedelta):
        return value
    text = str(value).strip()
    if not text:
        return None

    parts = text.split(":")
    if len(parts) not in (2, 3):
        return None
    try:
        numbers = [int(part) for part in parts]
    except ValueError:
        return None
    if len(numbers) == 2:
        numbers.append(0)

    hours, minutes, seconds = numbers
    if not (0 <= minutes < 60 and 0 <= seconds < 60) or hours < 0:
        return None
    return timedelta(hours=hours, minutes=minutes, seconds=seconds)


def format_time_of_day(value: timedelta | None) -> str:
    if value is None:
        return "--:--:--"
    total = int(normalize_time_of_day(value).total_seconds())
    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
