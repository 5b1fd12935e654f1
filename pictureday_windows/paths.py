from __future__ import annotations

import os
from pathlib import Path

APP_DIR_NAME = "PictureDay"


def data_directory() -> Path:
    appdata = os.environ.get("APPDATA")
    if appdata:
        base = Path(appdata)
    else:
        base = Path.home() / "AppData" / "Roaming"
    return base / APP_DIR_NAME


def config_path() -> Path:
    return data_directory() / "config.json"


def log_directory() -> Path:
    local_appdata = os.environ.get("LOCALAPPDATA")
    if local_appdata:
        return Path(local_appdata) / APP_DIR_NAME / "logs"
    return data_directory() / "logs"


def default_photos_directory() -> Path:
    return Path.home() / "Pictures" / APP_DIR_NAME


def ensure_directories() -> None:
    data_directory().mkdir(parents=True, exist_ok=True)
    log_directory().mkdir(parents=True, exist_ok=True)
