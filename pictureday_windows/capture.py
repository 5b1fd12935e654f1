from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

import mss
from PIL import Image, ImageGrab

from .clock import Clock
from .config import ConfigStore
from .models import CaptureKind
from .storage import DayStore

logger = logging.getLogger(__name__)


class ScreenCaptureService:
    """Grabs the screen and writes it into the day store."""

    def __init__(self, day_store: DayStore, config_store: ConfigStore, clock: Clock | None = None):
        self._day_store = day_store
        self._config_store = config_store
        self._clock = clock or Clock()

    def capture(self, kind: CaptureKind = CaptureKind.MAIN) -> str | None:
        config = self._config_store.config
        captured_at = self._clock.now()
        try:
            image = self.grab_image()
            path = self._save(image, captured_at, kind)
        except Exception as e:  # noqa: BLE001
            logger.error(f"{kind.label} capture failed: {e}")
            return None

        logger.info(f"{kind.label} capture saved to {path} ({config.image_format})")
        return str(path)

    def grab_image(self) -> Image.Image:
        config = self._config_store.config
        if config.capture_all_monitors:
            image = ImageGrab.grab(all_screens=True)
        else:
            image = self._grab_monitor(config.selected_monitor_index)
        if image.mode != "RGB":
            image = image.convert("RGB")
        return image

    @staticmethod
    def _grab_monitor(index: int) -> Image.Image:
        with mss.mss() as sct:
            # monitors[0] is the virtual screen spanning every display.
            monitors = sct.monitors
            position = index + 1
            if position >= len(monitors):
                logger.warning(f"Monitor {index} not found, using primary monitor")
                position = 1
            shot = sct.grab(monitors[position])
            return Image.frombytes("RGB", shot.size, shot.bgra, "raw", "BGRX")

    def _save(self, image: Image.Image, captured_at: datetime, kind: CaptureKind) -> Path:
        config = self._config_store.config
        target_path = self._day_store.photo_path(captured_at, kind, config.image_format)
        if config.image_format == "PNG":
            image.save(target_path, format="PNG", optimize=True)
        else:
            image.save(target_path, format="JPEG", quality=config.quality, optimize=True)
        return target_path
