"""Application configuration — loads .env, then overrides from settings.json."""

import json
import os
from pathlib import Path

from dotenv import load_dotenv

# Find the project root (where .env lives)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# Runtime settings file for in-app configuration
_SETTINGS_FILE = _PROJECT_ROOT / "data" / "settings.json"


def _load_settings() -> dict:
    """Load saved runtime settings from JSON file."""
    if _SETTINGS_FILE.exists():
        try:
            return json.loads(_SETTINGS_FILE.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            pass
    return {}


def _save_settings(settings: dict):
    """Persist runtime settings to JSON file."""
    _SETTINGS_FILE.parent.mkdir(parents=True, exist_ok=True)
    _SETTINGS_FILE.write_text(
        json.dumps(settings, indent=2), encoding="utf-8"
    )


# Load saved settings once at import time
_runtime = _load_settings()


class Config:
    """Central configuration: .env defaults, settings.json overrides."""

    # Paths
    PROJECT_ROOT: Path = _PROJECT_ROOT
    DATABASE_PATH: Path = Path(
        os.getenv("DATABASE_PATH", str(_PROJECT_ROOT / "data" / "field_tasks.db"))
    )
    BACKUP_PATH: Path = Path(
        os.getenv("DATABASE_BACKUP_PATH", str(_PROJECT_ROOT / "data" / "backups"))
    )
    BACKUP_KEEP: int = int(_runtime.get(
        "backup_keep",
        os.getenv("BACKUP_KEEP", "10"),
    ))

    # Audit trail
    EVENT_LOG_LIMIT: int = int(_runtime.get(
        "event_log_limit",
        os.getenv("EVENT_LOG_LIMIT", "100"),
    ))

    # Today view (settings.json overrides .env)
    TODAY_LIMIT_URGENT: int = int(_runtime.get(
        "today_limit_urgent",
        os.getenv("TODAY_LIMIT_URGENT", "20"),
    ))
    TODAY_LIMIT_DUE: int = int(_runtime.get(
        "today_limit_due",
        os.getenv("TODAY_LIMIT_DUE", "20"),
    ))

    # Reminders
    DEFAULT_SNOOZE_MINUTES: int = int(_runtime.get(
        "default_snooze_minutes",
        os.getenv("DEFAULT_SNOOZE_MINUTES", "60"),
    ))
    SNOOZE_TOMORROW_HOUR: int = int(_runtime.get(
        "snooze_tomorrow_hour",
        os.getenv("SNOOZE_TOMORROW_HOUR", "8"),
    ))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def update_today_limits(cls, urgent: int, due: int):
        """Update the Today view caps at runtime and persist to disk."""
        cls.TODAY_LIMIT_URGENT = urgent
        cls.TODAY_LIMIT_DUE = due

        settings = _load_settings()
        settings["today_limit_urgent"] = urgent
        settings["today_limit_due"] = due
        _save_settings(settings)

    @classmethod
    def update_snooze_settings(cls, minutes: int, tomorrow_hour: int):
        """Update reminder snooze defaults and persist."""
        if not 0 <= tomorrow_hour <= 23:
            raise ValueError("tomorrow_hour must be between 0 and 23")
        cls.DEFAULT_SNOOZE_MINUTES = minutes
        cls.SNOOZE_TOMORROW_HOUR = tomorrow_hour

        settings = _load_settings()
        settings["default_snooze_minutes"] = minutes
        settings["snooze_tomorrow_hour"] = tomorrow_hour
        _save_settings(settings)

    @classmethod
    def update_backup_keep(cls, keep: int):
        """Update how many backup files the backup script retains."""
        if keep < 1:
            raise ValueError("keep must be at least 1")
        cls.BACKUP_KEEP = keep
        settings = _load_settings()
        settings["backup_keep"] = keep
        _save_settings(settings)
