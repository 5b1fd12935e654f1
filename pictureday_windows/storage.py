"""
File-backed photo store.

Photos live in ``<base>/<YYYY-MM>/`` and carry their role in the file name:
``2024-01-05_09-00-00.jpg`` is the day's main photo, ``quarter_`` and
``backup_`` prefixes mark fallback candidates and ``u_`` marks manual captures.
"""

from __future__ import annotations

import logging
import os
import random
import re
import threading
import weakref
from datetime import date, datetime, timedelta
from pathlib import Path

from .models import CaptureKind, PhotoRecord

logger = logging.getLogger(__name__)

FILE_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"
MONTH_FORMAT = "%Y-%m"
MONTH_DIR_PATTERN = re.compile(r"^\d{4}-\d{2}$")
IMAGE_EXTENSIONS = {".jpg", ".png"}
GALLERY_KINDS = (CaptureKind.MAIN, CaptureKind.USER)


def extension_for_format(image_format: str) -> str:
    return ".png" if str(image_format).upper() == "PNG" else ".jpg"


def parse_photo_name(file_name: str) -> tuple[CaptureKind, datetime] | None:
    """Split a photo file name into its kind and timestamp.

    Returns ``None`` for files that do not follow the naming convention.
    """
    path = Path(file_name)
    if path.suffix.lower() not in IMAGE_EXTENSIONS:
        return None
    kind = CaptureKind.from_file_name(path.name)
    stamp = path.stem[len(kind.prefix):]
    try:
        return kind, datetime.strptime(stamp, FILE_TIMESTAMP_FORMAT)
    except ValueError:
        pass
    try:
        return kind, datetime.strptime(stamp[:10], "%Y-%m-%d")
    except ValueError:
        return None


class DayStore:
    def __init__(self, base_directory: Path, rng: random.Random | None = None):
        self.base_directory = Path(base_directory)
        self._rng = rng or random.Random()
        self._locks: weakref.WeakValueDictionary[date, threading.Lock] = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def monthly_directory(self, day: date) -> Path:
        return self.base_directory / day.strftime(MONTH_FORMAT)

    def generate_file_name(self, when: datetime, kind: CaptureKind = CaptureKind.MAIN, image_format: str = "JPEG") -> str:
        return f"{kind.prefix}{when.strftime(FILE_TIMESTAMP_FORMAT)}{extension_for_format(image_format)}"

    def photo_path(self, when: datetime, kind: CaptureKind = CaptureKind.MAIN, image_format: str = "JPEG") -> Path:
        directory = self.monthly_directory(when.date())
        directory.mkdir(parents=True, exist_ok=True)
        return directory / self.generate_file_name(when, kind, image_format)

    def get_photos_for_date(self, day: date) -> list[PhotoRecord]:
        """Main, Quarter and Backup photos whose file name carries ``day``."""
        photos: list[PhotoRecord] = []
        for record in self._scan_month(self.monthly_directory(day)):
            if record.kind is CaptureKind.USER or record.date_taken.date() != day:
                continue
            photos.append(record)
        photos.sort(key=lambda record: record.file_name)
        return photos

    def has_main_photo(self, day: date) -> bool:
        return any(record.is_main for record in self.get_photos_for_date(day))

    def process_daily_selection(self, day: date) -> Path | None:
        """Collapse the day's photos into exactly one main photo.

        Returns the surviving main photo, or ``None`` when there was nothing to
        select or promotion failed (candidates are then left untouched).
        """
        with self._lock_for(day):
            photos = self.get_photos_for_date(day)
            mains = [p for p in photos if p.kind is CaptureKind.MAIN]
            quarters = [p for p in photos if p.kind is CaptureKind.QUARTER]
            backups = [p for p in photos if p.kind is CaptureKind.BACKUP]
            logger.info(
                f"Selecting photo for {day.isoformat()}: "
                f"{len(mains)} main, {len(quarters)} quarter, {len(backups)} backup"
            )

            if mains:
                keep = min(mains, key=lambda p: p.file_name)
                extras = [p for p in mains if p is not keep]
                self._delete_photos(extras + quarters + backups)
                return keep.file_path

            if quarters:
                chosen = self._rng.choice(quarters)
                promoted = self.promote_photo_to_main(chosen.file_path)
                if promoted is None:
                    logger.error(f"Failed to promote {chosen.file_name}, keeping all candidates for {day.isoformat()}")
                    return None
                self._delete_photos([p for p in quarters if p is not chosen] + backups)
                return promoted

            if backups:
                chosen = self._rng.choice(backups)
                promoted = self.promote_backup_to_main(chosen.file_path)
                if promoted is None:
                    logger.error(f"Failed to promote {chosen.file_name}, keeping all candidates for {day.isoformat()}")
                    return None
                self._delete_photos([p for p in backups if p is not chosen])
                return promoted

            logger.info(f"No photos to select for {day.isoformat()}")
            return None

    def promote_photo_to_main(self, path: Path) -> Path | None:
        path = Path(path)
        if not path.exists():
            logger.error(f"Cannot promote missing photo: {path}")
            return None

        kind = CaptureKind.from_file_name(path.name)
        if kind not in (CaptureKind.QUARTER, CaptureKind.BACKUP):
            return path

        target = path.with_name(path.name[len(kind.prefix):])
        try:
            if target.exists():
                if path.stat().st_size > target.stat().st_size:
                    logger.warning(f"{target.name} already exists and is smaller, replacing it")
                    target.unlink()
                    self._move(path, target)
                else:
                    logger.warning(f"{target.name} already exists and is larger, discarding {path.name}")
                    path.unlink()
                return target

            self._move(path, target)
        except OSError as e:
            logger.error(f"Failed to promote {path.name}: {e}")
            return None

        logger.info(f"Promoted {kind.label.lower()} photo to main: {target.name}")
        return target

    def promote_backup_to_main(self, path: Path) -> Path | None:
        path = Path(path)
        if CaptureKind.from_file_name(path.name) is not CaptureKind.BACKUP:
            logger.error(f"Not a backup photo: {path.name}")
            return None
        return self.promote_photo_to_main(path)

    def cleanup_orphaned_photos(self, today: date, retention_days: int = 0) -> int:
        """Delete candidates of past days that never got a main photo.

        Dates within ``retention_days`` of ``today`` (and today itself) are
        kept. Returns the number of deleted files.
        """
        keep_from = today - timedelta(days=max(0, retention_days))
        candidate_days: set[date] = set()
        for month_dir in self._month_directories():
            for record in self._scan_month(month_dir):
                if record.is_candidate:
                    candidate_days.add(record.date_taken.date())

        deleted = 0
        for day in sorted(candidate_days):
            if keep_from <= day <= today:
                continue
            with self._lock_for(day):
                photos = self.get_photos_for_date(day)
                if any(p.is_main for p in photos):
                    continue
                orphans = [p for p in photos if p.is_candidate]
                logger.info(f"Removing {len(orphans)} orphaned photo(s) for {day.isoformat()}")
                deleted += self._delete_photos(orphans)
        return deleted

    def list_screenshots(self, start: date | None = None, end: date | None = None) -> list[PhotoRecord]:
        """Main and manual photos in ``[start, end]``, newest first."""
        records: list[PhotoRecord] = []
        for month_dir in self._month_directories():
            for record in self._scan_month(month_dir):
                if record.kind not in GALLERY_KINDS:
                    continue
                taken = record.date_taken.date()
                if start is not None and taken < start:
                    continue
                if end is not None and taken > end:
                    continue
                records.append(record)
        records.sort(key=lambda record: (record.date_taken, record.file_name), reverse=True)
        return records

    def total_storage_used(self) -> int:
        total = 0
        for record in self.list_screenshots():
            try:
                total += record.file_path.stat().st_size
            except OSError:
                continue
        return total

    def longest_streak(self) -> int:
        days = self._gallery_days()
        if not days:
            return 0
        longest = current = 1
        for previous, day in zip(days, days[1:]):
            if day - previous == timedelta(days=1):
                current += 1
                longest = max(longest, current)
            else:
                current = 1
        return longest

    def current_streak(self, today: date) -> int:
        days = self._gallery_days()
        if not days or days[-1] < today - timedelta(days=1):
            return 0
        newest_first = days[::-1]
        streak = 1
        for later, earlier in zip(newest_first, newest_first[1:]):
            if later - earlier != timedelta(days=1):
                break
            streak += 1
        return streak

    def date_range(self) -> tuple[date, date] | None:
        days = self._gallery_days()
        if not days:
            return None
        return days[0], days[-1]

    def _gallery_days(self) -> list[date]:
        return sorted({record.date_taken.date() for record in self.list_screenshots()})

    def _month_directories(self) -> list[Path]:
        if not self.base_directory.is_dir():
            return []
        return sorted(
            entry
            for entry in self.base_directory.iterdir()
            if entry.is_dir() and MONTH_DIR_PATTERN.match(entry.name)
        )

    @staticmethod
    def _scan_month(month_dir: Path) -> list[PhotoRecord]:
        if not month_dir.is_dir():
            return []
        records: list[PhotoRecord] = []
        try:
            entries = list(month_dir.iterdir())
        except OSError as e:
            logger.warning(f"Failed to list {month_dir}: {e}")
            return []
        for entry in entries:
            parsed = parse_photo_name(entry.name)
            if parsed is None or not entry.is_file():
                continue
            kind, taken = parsed
            records.append(PhotoRecord(file_path=entry, file_name=entry.name, date_taken=taken, kind=kind))
        return records

    def _delete_photos(self, photos: list[PhotoRecord]) -> int:
        deleted = 0
        for photo in photos:
            try:
                photo.file_path.unlink()
                deleted += 1
                logger.debug(f"Deleted {photo.file_name}")
            except FileNotFoundError:
                logger.debug(f"{photo.file_name} already removed")
            except OSError as e:
                logger.warning(f"Failed to delete {photo.file_name}: {e}")
        return deleted

    def _lock_for(self, day: date) -> threading.Lock:
        # Entries vanish once no caller holds the lock.
        with self._locks_guard:
            lock = self._locks.get(day)
            if lock is None:
                lock = self._locks[day] = threading.Lock()
            return lock

    @staticmethod
    def _move(source: Path, target: Path) -> None:
        os.rename(source, target)
