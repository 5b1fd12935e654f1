from __future__ import annotations

import random
import tempfile
import unittest
from datetime import date, datetime
from pathlib import Path
from unittest import mock

from pictureday_windows.models import CaptureKind
from pictureday_windows.storage import DayStore, parse_photo_name

DAY = date(2024, 1, 5)


class DayStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.base = Path(self._tmp.name)
        self.store = DayStore(self.base, rng=random.Random(3))

    def _touch(self, name: str, size: int = 10, month: str = "2024-01") -> Path:
        path = self.base / month / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"x" * size)
        return path

    def _names(self, month: str = "2024-01") -> list[str]:
        return sorted(p.name for p in (self.base / month).iterdir())

    def test_naming_convention(self) -> None:
        when = datetime(2024, 1, 5, 9, 0, 0)
        self.assertEqual(self.store.generate_file_name(when), "2024-01-05_09-00-00.jpg")
        self.assertEqual(
            self.store.generate_file_name(when, CaptureKind.QUARTER, "PNG"),
            "quarter_2024-01-05_09-00-00.png",
        )
        path = self.store.photo_path(when, CaptureKind.USER)
        self.assertEqual(path, self.base / "2024-01" / "u_2024-01-05_09-00-00.jpg")
        self.assertTrue(path.parent.is_dir())

    def test_parse_photo_name(self) -> None:
        kind, taken = parse_photo_name("BACKUP_2024-01-05_09-00-00.JPG")
        self.assertIs(kind, CaptureKind.BACKUP)
        self.assertEqual(taken, datetime(2024, 1, 5, 9, 0, 0))
        self.assertIsNone(parse_photo_name("notes.txt"))
        self.assertIsNone(parse_photo_name("holiday.jpg"))

    def test_get_photos_for_date_filters_day_and_user_files(self) -> None:
        self._touch("2024-01-05_10-00-00.jpg")
        self._touch("quarter_2024-01-05_11-00-00.jpg")
        self._touch("backup_2024-01-05_12-00-00.png")
        self._touch("u_2024-01-05_13-00-00.jpg")
        self._touch("2024-01-06_10-00-00.jpg")
        self._touch("readme.txt")

        photos = self.store.get_photos_for_date(DAY)
        kinds = sorted(p.kind.name for p in photos)
        self.assertEqual(kinds, ["BACKUP", "MAIN", "QUARTER"])
        self.assertTrue(self.store.has_main_photo(DAY))
        self.assertFalse(self.store.has_main_photo(date(2024, 1, 7)))

    def test_main_wins_over_candidates(self) -> None:
        self._touch("2024-01-05_10-00-00.jpg")
        self._touch("quarter_2024-01-05_09-00-00.jpg")

        kept = self.store.process_daily_selection(DAY)

        self.assertEqual(kept.name, "2024-01-05_10-00-00.jpg")
        self.assertEqual(self._names(), ["2024-01-05_10-00-00.jpg"])

    def test_duplicate_mains_keep_smallest_name(self) -> None:
        self._touch("2024-01-05_15-00-00.jpg")
        self._touch("2024-01-05_10-00-00.jpg")
        self._touch("backup_2024-01-05_08-00-00.jpg")

        kept = self.store.process_daily_selection(DAY)

        self.assertEqual(kept.name, "2024-01-05_10-00-00.jpg")
        self.assertEqual(self._names(), ["2024-01-05_10-00-00.jpg"])

    def test_quarter_beats_backup(self) -> None:
        self._touch("quarter_2024-01-05_09-00-00.jpg")
        self._touch("quarter_2024-01-05_12-00-00.jpg")
        self._touch("backup_2024-01-05_08-00-00.jpg")

        kept = self.store.process_daily_selection(DAY)

        names = self._names()
        self.assertEqual(len(names), 1)
        self.assertEqual(names[0], kept.name)
        self.assertIn(names[0], {"2024-01-05_09-00-00.jpg", "2024-01-05_12-00-00.jpg"})

    def test_single_backup_is_promoted(self) -> None:
        self._touch("backup_2024-01-05_09-00-00.jpg")

        kept = self.store.process_daily_selection(DAY)

        self.assertEqual(kept, self.base / "2024-01" / "2024-01-05_09-00-00.jpg")
        self.assertEqual(self._names(), ["2024-01-05_09-00-00.jpg"])

    def test_user_photos_are_never_touched(self) -> None:
        self._touch("u_2024-01-05_08-00-00.jpg")
        self._touch("quarter_2024-01-05_09-00-00.jpg")

        self.store.process_daily_selection(DAY)

        self.assertEqual(self._names(), ["2024-01-05_09-00-00.jpg", "u_2024-01-05_08-00-00.jpg"])

    def test_failed_promotion_deletes_nothing(self) -> None:
        self._touch("quarter_2024-01-05_09-00-00.jpg")
        self._touch("quarter_2024-01-05_12-00-00.jpg")
        self._touch("backup_2024-01-05_08-00-00.jpg")

        with mock.patch.object(DayStore, "_move", side_effect=OSError("locked")):
            kept = self.store.process_daily_selection(DAY)

        self.assertIsNone(kept)
        self.assertEqual(
            self._names(),
            [
                "backup_2024-01-05_08-00-00.jpg",
                "quarter_2024-01-05_09-00-00.jpg",
                "quarter_2024-01-05_12-00-00.jpg",
            ],
        )

    def test_delete_failure_does_not_stop_selection(self) -> None:
        self._touch("2024-01-05_10-00-00.jpg")
        self._touch("quarter_2024-01-05_09-00-00.jpg")
        self._touch("backup_2024-01-05_08-00-00.jpg")
        real_unlink = Path.unlink

        def flaky_unlink(path: Path, *args, **kwargs) -> None:
            if path.name.startswith("quarter_"):
                raise PermissionError("in use")
            real_unlink(path, *args, **kwargs)

        with mock.patch.object(Path, "unlink", flaky_unlink):
            kept = self.store.process_daily_selection(DAY)

        self.assertEqual(kept.name, "2024-01-05_10-00-00.jpg")
        self.assertEqual(self._names(), ["2024-01-05_10-00-00.jpg", "quarter_2024-01-05_09-00-00.jpg"])

    def test_empty_day_is_noop(self) -> None:
        self.assertIsNone(self.store.process_daily_selection(DAY))

    def test_promotion_conflict_keeps_larger_file(self) -> None:
        target = self._touch("2024-01-05_09-00-00.jpg", size=5)
        source = self._touch("quarter_2024-01-05_09-00-00.jpg", size=50)

        promoted = self.store.promote_photo_to_main(source)

        self.assertEqual(promoted, target)
        self.assertEqual(target.stat().st_size, 50)
        self.assertFalse(source.exists())

    def test_promotion_conflict_keeps_existing_when_larger(self) -> None:
        target = self._touch("2024-01-05_09-00-00.jpg", size=50)
        source = self._touch("backup_2024-01-05_09-00-00.jpg", size=5)

        promoted = self.store.promote_backup_to_main(source)

        self.assertEqual(promoted, target)
        self.assertEqual(target.stat().st_size, 50)
        self.assertFalse(source.exists())

    def test_promote_edge_cases(self) -> None:
        main = self._touch("2024-01-05_09-00-00.jpg")
        quarter = self._touch("quarter_2024-01-05_10-00-00.jpg")

        self.assertEqual(self.store.promote_photo_to_main(main), main)
        self.assertIsNone(self.store.promote_photo_to_main(self.base / "2024-01" / "quarter_missing.jpg"))
        self.assertIsNone(self.store.promote_backup_to_main(quarter))
        self.assertTrue(quarter.exists())

    def test_cleanup_removes_stale_orphans_only(self) -> None:
        self._touch("quarter_2024-01-03_09-00-00.jpg")
        self._touch("backup_2024-01-03_10-00-00.jpg")
        self._touch("2024-01-04_09-00-00.jpg")
        self._touch("quarter_2024-01-04_11-00-00.jpg")
        self._touch("quarter_2024-01-05_09-00-00.jpg")
        self._touch("quarter_2023-12-30_09-00-00.jpg", month="2023-12")
        self._touch("u_2024-01-02_09-00-00.jpg")

        removed = self.store.cleanup_orphaned_photos(DAY)

        self.assertEqual(removed, 3)
        self.assertEqual(
            self._names(),
            [
                "2024-01-04_09-00-00.jpg",
                "quarter_2024-01-04_11-00-00.jpg",
                "quarter_2024-01-05_09-00-00.jpg",
                "u_2024-01-02_09-00-00.jpg",
            ],
        )
        self.assertEqual(self._names("2023-12"), [])

    def test_cleanup_honours_retention(self) -> None:
        self._touch("quarter_2024-01-03_09-00-00.jpg")
        self._touch("quarter_2024-01-04_09-00-00.jpg")

        removed = self.store.cleanup_orphaned_photos(DAY, retention_days=1)

        self.assertEqual(removed, 1)
        self.assertEqual(self._names(), ["quarter_2024-01-04_09-00-00.jpg"])

    def test_day_locks_are_released_after_use(self) -> None:
        self._touch("quarter_2024-01-03_09-00-00.jpg")
        self._touch("quarter_2024-01-05_09-00-00.jpg")

        self.store.cleanup_orphaned_photos(DAY)
        self.store.process_daily_selection(DAY)

        self.assertEqual(len(self.store._locks), 0)
        with self.store._lock_for(DAY):
            self.assertIs(self.store._lock_for(DAY), self.store._locks[DAY])

    def test_gallery_queries(self) -> None:
        self._touch("2024-01-01_09-00-00.jpg", size=100)
        self._touch("2024-01-02_09-00-00.jpg", size=100)
        self._touch("u_2024-01-03_09-00-00.jpg", size=100)
        self._touch("2024-01-05_09-00-00.jpg", size=100)
        self._touch("quarter_2024-01-06_09-00-00.jpg", size=100)

        listed = self.store.list_screenshots(date(2024, 1, 2), date(2024, 1, 5))
        self.assertEqual(
            [p.file_name for p in listed],
            ["2024-01-05_09-00-00.jpg", "u_2024-01-03_09-00-00.jpg", "2024-01-02_09-00-00.jpg"],
        )
        self.assertEqual(self.store.total_storage_used(), 400)
        self.assertEqual(self.store.longest_streak(), 3)
        self.assertEqual(self.store.current_streak(date(2024, 1, 6)), 1)
        self.assertEqual(self.store.current_streak(date(2024, 1, 7)), 0)
        self.assertEqual(self.store.date_range(), (date(2024, 1, 1), date(2024, 1, 5)))

    def test_gallery_queries_on_empty_store(self) -> None:
        self.assertEqual(self.store.list_screenshots(), [])
        self.assertEqual(self.store.longest_streak(), 0)
        self.assertEqual(self.store.current_streak(DAY), 0)
        self.assertIsNone(self.store.date_range())


if __name__ == "__main__":
    unittest.main()
