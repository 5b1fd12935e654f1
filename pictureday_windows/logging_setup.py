from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

from .paths import log_directory

LOG_FILE_NAME = "pictureday.log"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MAX_LOG_BYTES = 1024 * 1024
BACKUP_COUNT = 5


def init_logging(log_dir: Path | None = None, debug: bool = False) -> Path | None:
    """Attach file and console handlers to the root logger.

    Returns the log file path, or ``None`` when the file handler could not be
    created (console logging still works in that case).
    """
    level = logging.DEBUG if debug else logging.INFO
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)
    root_logger.addHandler(console_handler)

    directory = Path(log_dir) if log_dir is not None else log_directory()
    log_path = directory / LOG_FILE_NAME
    try:
        directory.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=MAX_LOG_BYTES,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
    except OSError as e:
        root_logger.error(f"Failed to open log file {log_path}: {e}")
        return None

    file_handler.setFormatter(formatter)
    file_handler.setLevel(level)
    root_logger.addHandler(file_handler)
    logging.getLogger(__name__).debug(f"Logging to {log_path}")
    return log_path
