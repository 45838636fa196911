"""
Path constants for File Locker - separate from config to avoid circular imports.
"""

from __future__ import annotations

import contextlib
import os
from pathlib import Path

APP_NAME = "FileLocker"


def app_data_dir() -> Path:
    """Return the application data directory (``FILELOCKER_HOME`` wins)."""
    override = os.getenv("FILELOCKER_HOME")
    if override:
        return Path(override).expanduser()
    if os.name == "nt":
        base = Path(os.getenv("LOCALAPPDATA") or Path.home() / "AppData" / "Local")
    else:
        base = Path(os.getenv("XDG_DATA_HOME") or Path.home() / ".local" / "share")
    return base / APP_NAME


# Base directory for File Locker data
BASE_DIR = app_data_dir()

# Log file location
LOG_PATH = BASE_DIR / "logs" / "filelocker.log"

SETTINGS_PATH = BASE_DIR / "settings.json"


def ensure_base_dir() -> None:
    """Create the base directory and tighten permissions where possible."""
    with contextlib.suppress(OSError):
        LOG_PATH.parent.mkdir(parents=True, exist_ok=True)
        if os.name != "nt":
            BASE_DIR.chmod(0o700)
            LOG_PATH.parent.chmod(0o700)
            if LOG_PATH.exists():
                LOG_PATH.chmod(0o600)
