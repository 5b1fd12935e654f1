from __future__ import annotations

import logging
from datetime import timedelta
from typing import Callable

from .win32_windows import idle_milliseconds

logger = logging.getLogger(__name__)

DEFAULT_IDLE_THRESHOLD = timedelta(minutes=5)


class ActivityMonitor:
    """Reports whether the user touched keyboard or mouse recently."""

    def __init__(
        self,
        threshold: timedelta = DEFAULT_IDLE_THRESHOLD,
        idle_source: Callable[[], int] = idle_milliseconds,
    ):
        self.threshold = threshold
        self._idle_source = idle_source

    def idle_duration(self) -> timedelta:
        try:
            return timedelta(milliseconds=max(0, int(self._idle_source())))
        except Exception as e:  # noqa: BLE001
            logger.debug(f"Failed to read idle time, assuming active: {e}")
            return timedelta(0)

    def is_user_active(self) -> bool:
        return self.idle_duration() < self.threshold
