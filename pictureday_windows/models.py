from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from pathlib import Path


class ScheduleMode(Enum):
    RANDOM = "Random"
    FIXED_TIME = "FixedTime"
    TIME_RANGE = "TimeRange"

    @classmethod
    def parse(cls, value: object) -> "ScheduleMode":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower().replace("_", "")
        for mode in cls:
            if mode.value.lower() == text:
                return mode
        raise ValueError(f"Unknown schedule mode: {value!r}")


class CaptureKind(Enum):
    MAIN = ""
    QUARTER = "quarter_"
    BACKUP = "backup_"
    USER = "u_"

    @property
    def prefix(self) -> str:
        return self.value

    @property
    def label(self) -> str:
        return self.name

    @classmethod
    def from_file_name(cls, file_name: str) -> "CaptureKind":
        lowered = file_name.lower()
        for kind in (cls.QUARTER, cls.BACKUP, cls.USER):
            if lowered.startswith(kind.prefix):
                return kind
        return cls.MAIN


@dataclass(frozen=True)
class PhotoRecord:
    file_path: Path
    file_name: str
    date_taken: datetime
    kind: CaptureKind

    @property
    def is_main(self) -> bool:
        return self.kind is CaptureKind.MAIN

    @property
    def is_candidate(self) -> bool:
        return self.kind in (CaptureKind.QUARTER, CaptureKind.BACKUP)


@dataclass(frozen=True)
class ScheduledTime:
    day: date
    time_of_day: timedelta
    checkpoints: tuple[timedelta, ...] = ()


@dataclass
class DayState:
    current_date: date
    last_tick_time: datetime
    day_started_at: datetime
    day_completed: bool = False
    scheduled_time: ScheduledTime | None = None
    last_activity_time: datetime | None = None
    captured_checkpoints: set[timedelta] = field(default_factory=set)
    backup_taken: bool = False

    @property
    def quarter_checkpoints(self) -> tuple[timedelta, ...]:
        if self.scheduled_time is None:
            return ()
        return self.scheduled_time.checkpoints
