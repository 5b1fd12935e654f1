from __future__ import annotations

import io
import logging
import logging.handlers
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest import mock

from pictureday_windows import __version__
from pictureday_windows.app import main
from pictureday_windows.logging_setup import LOG_FILE_NAME, init_logging


class CliTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)
        for name in ("init_logging", "ensure_directories"):
            patcher = mock.patch(f"pictureday_windows.app.{name}")
            patcher.start()
            self.addCleanup(patcher.stop)

    def _run(self, *args: str) -> tuple[int, str]:
        out = io.StringIO()
        argv = ["--config", str(self.root / "config.json"), "--photos-dir", str(self.root / "photos"), *args]
        with redirect_stdout(out):
            code = main(argv)
        return code, out.getvalue()

    def _touch(self, name: str) -> Path:
        path = self.root / "photos" / "2024-01" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"image")
        return path

    def test_version(self) -> None:
        out = io.StringIO()
        with redirect_stdout(out):
            self.assertEqual(main(["--version"]), 0)
        self.assertEqual(out.getvalue().strip(), __version__)

    def test_process_date(self) -> None:
        self._touch("backup_2024-01-05_09-00-00.jpg")

        code, out = self._run("--process-date", "2024-01-05")

        self.assertEqual(code, 0)
        self.assertIn("2024-01-05_09-00-00.jpg", out)
        self.assertTrue((self.root / "photos" / "2024-01" / "2024-01-05_09-00-00.jpg").exists())

    def test_process_date_without_photos(self) -> None:
        code, out = self._run("--process-date", "2024-01-05")
        self.assertEqual(code, 1)
        self.assertIn("no photo selected", out)

    def test_cleanup(self) -> None:
        self._touch("quarter_2024-01-03_09-00-00.jpg")

        code, out = self._run("--cleanup")

        self.assertEqual(code, 0)
        self.assertIn("removed=1", out)

    def test_invalid_date_is_rejected(self) -> None:
        with redirect_stdout(io.StringIO()), mock.patch("sys.stderr", io.StringIO()):
            with self.assertRaises(SystemExit):
                main(["--process-date", "05/01/2024"])


class LoggingSetupTests(unittest.TestCase):
    def test_init_logging_writes_rotating_file(self) -> None:
        root_logger = logging.getLogger()
        saved_handlers = list(root_logger.handlers)
        saved_level = root_logger.level

        def restore() -> None:
            for handler in list(root_logger.handlers):
                root_logger.removeHandler(handler)
                handler.close()
            for handler in saved_handlers:
                root_logger.addHandler(handler)
            root_logger.setLevel(saved_level)

        with tempfile.TemporaryDirectory() as tmp_dir:
            try:
                path = init_logging(Path(tmp_dir) / "logs", debug=True)
                logging.getLogger("pictureday_windows.test").debug("hello")

                self.assertEqual(path.name, LOG_FILE_NAME)
                self.assertEqual(root_logger.level, logging.DEBUG)
                file_handlers = [
                    h for h in root_logger.handlers if isinstance(h, logging.handlers.RotatingFileHandler)
                ]
                self.assertEqual(len(file_handlers), 1)
                self.assertEqual(file_handlers[0].backupCount, 5)
                file_handlers[0].flush()
                self.assertIn("hello", path.read_text(encoding="utf-8"))
            finally:
                restore()


if __name__ == "__main__":
    unittest.main()
