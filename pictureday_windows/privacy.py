from __future__ import annotations

import logging
from typing import Callable, Iterable

from .config import ConfigStore
from .win32_windows import WindowInfo, visible_windows

logger = logging.getLogger(__name__)

PRIVACY_PATTERNS = ("Incognito", "Private", "InPrivate")

WindowSource = Callable[[], Iterable[WindowInfo]]


def _normalize_process_name(name: str) -> str:
    name = name.strip().lower()
    if name.endswith(".exe"):
        name = name[:-4]
    return name


class PrivacyFilter:
    """Blocks captures while a private browser window or a blocked app is open."""

    def __init__(self, config_store: ConfigStore, window_source: WindowSource | None = None):
        self._config_store = config_store
        self._window_source = window_source or visible_windows

    def should_block(self) -> bool:
        blocked = {_normalize_process_name(app) for app in self._config_store.config.blocked_applications}
        blocked.discard("")
        patterns = [pattern.lower() for pattern in PRIVACY_PATTERNS]

        try:
            for window in self._window_source():
                title = window.title.lower()
                if any(pattern in title for pattern in patterns):
                    logger.info(f"Capture blocked by private window: {window.title}")
                    return True
                if blocked and _normalize_process_name(window.process_name) in blocked:
                    logger.info(f"Capture blocked by application: {window.process_name}")
                    return True
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Failed to enumerate windows, not blocking: {e}")
        return False
