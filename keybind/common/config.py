"""
Configuration settings for the license management system.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path


class Config:
    """Central configuration class for all system settings."""

    def __init__(self) -> None:
        # Key format
        self.KEY_PREFIX: str = os.getenv("KEYBIND_KEY_PREFIX", "NTRS")
        self.KEY_ALPHABET: str = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"  # no 0/O, 1/I
        self.KEY_SEGMENTS: int = 4
        self.KEY_SEGMENT_LENGTH: int = 4

        # Licensing rules
        self.PACKAGE_TYPES: tuple[str, ...] = ("complete", "no_ai", "limited_ai")
        self.STORE_MAX_RETRIES: int = 5  # compare-and-update attempts per request

        # Piracy alerts
        self.PIRACY_WEBHOOK_URL: str | None = os.getenv("KEYBIND_PIRACY_WEBHOOK_URL")
        self.NOTIFIER_TIMEOUT: float = float(
            os.getenv("KEYBIND_NOTIFIER_TIMEOUT", "5")
        )
        # Alerts queued or in flight before new ones are dropped
        self.NOTIFIER_MAX_PENDING: int = int(
            os.getenv("KEYBIND_NOTIFIER_MAX_PENDING", "100")
        )

        # Server settings
        self.ADMIN_PASSWORD: str | None = os.getenv("KEYBIND_ADMIN_PASSWORD")
        self.SERVER_HOST: str = os.getenv("KEYBIND_SERVER_HOST", "127.0.0.1")
        self.SERVER_PORT: int = int(os.getenv("KEYBIND_SERVER_PORT", "8000"))
        self.SERVER_URL: str = f"http://{self.SERVER_HOST}:{self.SERVER_PORT}"

        # File paths
        self.BASE_DIR: Path = Path(__file__).parent.parent
        self.DATA_DIR: Path = Path(
            os.getenv("KEYBIND_DATA_DIR", str(self.BASE_DIR / "data"))
        )
        self.LICENSES_FILE_PATH: Path = self.DATA_DIR / "licenses.json"
        self.AUDIT_LOG_FILE_PATH: Path = self.DATA_DIR / "audit_log.jsonl"

        # Logging
        self.LOG_LEVEL: int = logging.getLevelName(
            os.getenv("KEYBIND_LOG_LEVEL", "INFO").upper()
        )
        log_file = os.getenv("KEYBIND_LOG_FILE")
        self.LOG_FILE: Path | None = Path(log_file) if log_file else None
