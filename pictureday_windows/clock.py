from __future__ import annotations

import time
from datetime import datetime


class Clock:
    """Wall and monotonic time source."""

    def now(self) -> datetime:
        return datetime.now()

    def monotonic(self) -> float:
        return time.monotonic()
