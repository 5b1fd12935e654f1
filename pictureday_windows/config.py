"""
Configuration management for PictureDay.
Persists the schedule policy and today's resolved time as JSON.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import threading
import time
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Callable

from .models import ScheduleMode
from .paths import config_path, default_photos_directory
from .timewindow import format_time_of_day, parse_time_of_day

logger = logging.getLogger(__name__)

CONFIG_VERSION = 1
IMAGE_FORMATS = ("JPEG", "PNG")
TIME_FIELDS = (
    "fixed_scheduled_time",
    "schedule_range_start",
    "schedule_range_end",
    "today_scheduled_time",
    "scheduled_time_date",
)


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str) and value.strip().lower() in ("true", "1", "yes"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "0", "no"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


@dataclass
class AppConfig:
    version: int = CONFIG_VERSION
    blocked_applications: list[str] = field(default_factory=list)
    screenshot_directory: str = ""
    quality: int = 90
    image_format: str = "JPEG"
    capture_all_monitors: bool = False
    selected_monitor_index: int = 0
    schedule_mode: ScheduleMode = ScheduleMode.RANDOM
    fixed_scheduled_time: str | None = None
    schedule_range_start: str | None = None
    schedule_range_end: str | None = None
    today_scheduled_time: str | None = None
    scheduled_time_date: str | None = None
    tick_interval_seconds: float = 60.0
    window_minutes: float = 5.0
    idle_threshold_minutes: float = 5.0
    orphan_retention_days: int = 0
    backup_capture_enabled: bool = False
    backup_delay_seconds: float = 60.0

    def __post_init__(self):
        try:
            self.schedule_mode = ScheduleMode.parse(self.schedule_mode)
        except ValueError as e:
            logger.warning(f"{e}, using Random")
            self.schedule_mode = ScheduleMode.RANDOM

        self.image_format = str(self.image_format or "JPEG").upper()
        if self.image_format not in IMAGE_FORMATS:
            logger.warning(f"Invalid image_format: {self.image_format}, using JPEG")
            self.image_format = "JPEG"

        self._coerce("version", int, CONFIG_VERSION)
        self._coerce("quality", int, 90, lambda v: 1 <= v <= 100)
        self._coerce("selected_monitor_index", int, 0, lambda v: v >= 0)
        self._coerce("orphan_retention_days", int, 0, lambda v: v >= 0)
        self._coerce("tick_interval_seconds", float, 60.0, lambda v: v > 0)
        self._coerce("window_minutes", float, 5.0, lambda v: v > 0)
        self._coerce("idle_threshold_minutes", float, 5.0, lambda v: v > 0)
        self._coerce("backup_delay_seconds", float, 60.0, lambda v: v >= 0)
        self._coerce("capture_all_monitors", _to_bool, False)
        self._coerce("backup_capture_enabled", _to_bool, False)

        for name in TIME_FIELDS:
            value = getattr(self, name)
            if value is not None and not isinstance(value, str):
                logger.warning(f"Invalid {name}: {value!r}, ignoring")
                setattr(self, name, None)
        if not isinstance(self.screenshot_directory, str):
            logger.warning(f"Invalid screenshot_directory: {self.screenshot_directory!r}, using default")
            self.screenshot_directory = ""
        if not isinstance(self.blocked_applications, (list, tuple)):
            logger.warning(f"Invalid blocked_applications: {self.blocked_applications!r}, using none")
            self.blocked_applications = []
        self.blocked_applications = [str(app) for app in self.blocked_applications if str(app).strip()]

    def _coerce(self, name: str, convert: Callable[[Any], Any], default: Any, valid: Callable[[Any], bool] | None = None) -> None:
        value = getattr(self, name)
        try:
            coerced = convert(value)
        except (TypeError, ValueError):
            coerced = None
        if coerced is None or (valid is not None and not valid(coerced)):
            logger.warning(f"Invalid {name}: {value!r}, using {default!r}")
            coerced = default
        setattr(self, name, coerced)

    @property
    def fixed_time(self) -> timedelta | None:
        return parse_time_of_day(self.fixed_scheduled_time)

    @property
    def range_start(self) -> timedelta | None:
        return parse_time_of_day(self.schedule_range_start)

    @property
    def range_end(self) -> timedelta | None:
        return parse_time_of_day(self.schedule_range_end)

    @property
    def persisted_scheduled_time(self) -> tuple[date, timedelta] | None:
        scheduled = parse_time_of_day(self.today_scheduled_time)
        if scheduled is None or not self.scheduled_time_date:
            return None
        try:
            day = date.fromisoformat(self.scheduled_time_date)
        except ValueError:
            return None
        return day, scheduled

    @property
    def window(self) -> timedelta:
        return timedelta(minutes=self.window_minutes)

    @property
    def idle_threshold(self) -> timedelta:
        return timedelta(minutes=self.idle_threshold_minutes)

    def photos_directory(self) -> Path:
        if self.screenshot_directory:
            return Path(self.screenshot_directory)
        return default_photos_directory()

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["schedule_mode"] = self.schedule_mode.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AppConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.debug(f"Ignoring unknown config keys: {', '.join(unknown)}")
        return cls(**{key: value for key, value in data.items() if key in known})


class ConfigStore:
    """Loads and saves AppConfig with crash-safe writes."""

    def __init__(self, path: Path | None = None):
        self._path = Path(path) if path is not None else config_path()
        self._lock = threading.RLock()
        self._config = self.load()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def config(self) -> AppConfig:
        with self._lock:
            return self._config

    def load(self) -> AppConfig:
        if not self._path.exists():
            logger.info(f"Config file not found at {self._path}, using defaults")
            return AppConfig()

        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("config root must be an object")
            config = AppConfig.from_dict(data)
            logger.info(f"Config loaded from {self._path} (mode={config.schedule_mode.value})")
            return config
        except (OSError, json.JSONDecodeError, TypeError, ValueError) as e:
            logger.error(f"Failed to load config: {e}")
            self._backup_corrupted_config()
            return AppConfig()

    def save(self, config: AppConfig | None = None) -> bool:
        with self._lock:
            if config is not None:
                self._config = config
            data = self._config.to_dict()
            return self._write(data)

    def update(self, **changes: Any) -> bool:
        with self._lock:
            self._config = replace(self._config, **changes)
            return self.save()

    def save_scheduled_time(self, day: date, scheduled: timedelta) -> bool:
        return self.update(
            today_scheduled_time=format_time_of_day(scheduled),
            scheduled_time_date=day.isoformat(),
        )

    def add_blocked_application(self, process_name: str) -> bool:
        name = process_name.strip()
        with self._lock:
            existing = {app.lower() for app in self._config.blocked_applications}
            if not name or name.lower() in existing:
                return False
            return self.update(blocked_applications=[*self._config.blocked_applications, name])

    def remove_blocked_application(self, process_name: str) -> bool:
        target = process_name.strip().lower()
        with self._lock:
            remaining = [app for app in self._config.blocked_applications if app.lower() != target]
            if len(remaining) == len(self._config.blocked_applications):
                return False
            return self.update(blocked_applications=remaining)

    def _write(self, data: dict[str, Any]) -> bool:
        temp_path = self._path.with_suffix(".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self._path)
            logger.debug(f"Config saved to {self._path}")
            return True
        except OSError as e:
            logger.error(f"Failed to save config to {self._path}: {e}")
            try:
                temp_path.unlink(missing_ok=True)
            except OSError:
                pass
            return False

    def _backup_corrupted_config(self) -> None:
        timestamp = time.strftime("%Y-%m-%dT%H-%M-%S")
        backup_path = self._path.with_suffix(f".{timestamp}.backup")
        try:
            shutil.copy2(self._path, backup_path)
            logger.info(f"Backed up corrupted config to {backup_path}")
        except OSError as e:
            logger.error(f"Failed to backup corrupted config: {e}")
