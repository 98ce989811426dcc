"""Centralized application configuration."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional
import os
import sys


def get_default_data_dir(
    app_name: str,
    *,
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return an OS-specific user data directory for ``app_name``."""

    platform_id = (platform or sys.platform).lower()
    environ = dict(env or os.environ)
    home_dir = Path(home or Path.home())
    sanitized = app_name.strip() or "app"
    sanitized = sanitized.replace("/", "-").replace("\\", "-")

    if platform_id.startswith("win"):
        base = Path(environ.get("APPDATA") or home_dir / "AppData" / "Roaming")
    elif platform_id == "darwin":
        base = Path(environ.get("APPDATA") or home_dir / "Library" / "Application Support")
    else:
        base = Path(environ.get("XDG_DATA_HOME") or home_dir / ".local" / "share")

    return (base.expanduser() / sanitized)


APP_NAME = "TaskSync"


DATA_DIR = Path(os.environ.get("TASKSYNC_DATA_DIR") or get_default_data_dir(APP_NAME))
SECRETS_DIR = DATA_DIR / "secrets"
LOG_DIR = DATA_DIR / "logs"

DB_PATH = DATA_DIR / "tasks.db"
CONFIG_PATH = DATA_DIR / "config.json"
TOKEN_PATH = DATA_DIR / "token.json"
CLIENT_SECRET_PATH = SECRETS_DIR / "client_secret.json"
SYNC_LOG_PATH = LOG_DIR / "sync.log"


def ensure_data_dirs() -> None:
    for _dir in (DATA_DIR, SECRETS_DIR, LOG_DIR):
        _dir.mkdir(parents=True, exist_ok=True)


@dataclass(frozen=True)
class SheetNames:
    tasks: str = "Tasks"
    occurrence_done: str = "OccurrenceDone"
    occurrence_deletes: str = "OccurrenceDeletes"
    occurrence_edits: str = "OccurrenceEdits"
    splits: str = "Splits"
    priority_reminders: str = "PriorityReminders"
    category_reminders: str = "CategoryReminders"
    sync_meta: str = "SyncMeta"


@dataclass(frozen=True)
class CalendarSettings:
    calendar_id: str = "primary"
    timeout_sec: float = 20.0
    max_reminders: int = 5
    scopes: tuple[str, ...] = (
        "https://www.googleapis.com/auth/calendar",
        "https://www.googleapis.com/auth/calendar.events",
        "https://www.googleapis.com/auth/spreadsheets",
    )


@dataclass(frozen=True)
class RecurrenceSettings:
    max_window_days: int = 732
    max_occurrences: int = 1000


@dataclass(frozen=True)
class TaskSettings:
    default_timezone: str = "UTC"
    categories: tuple[str, ...] = ("Work", "Personal", "Health", "Finance", "Errands", "Other")
    strict_versions: bool = False


@dataclass(frozen=True)
class ReminderDefaults:
    priority: tuple[tuple[str, tuple[int, ...]], ...] = (
        ("Low", (60,)),
        ("Medium", (30,)),
        ("High", (60, 10)),
        ("Urgent", (1440, 60, 10)),
    )
    category: tuple[tuple[str, tuple[int, ...]], ...] = ()


@dataclass(frozen=True)
class SyncConfig:
    """Everything the engine needs, built once at process start."""

    backend: str = "sqlite"
    spreadsheet_id: Optional[str] = None
    db_path: Path = DB_PATH
    sheets: SheetNames = SheetNames()
    calendar: CalendarSettings = CalendarSettings()
    recurrence: RecurrenceSettings = RecurrenceSettings()
    tasks: TaskSettings = TaskSettings()
    reminders: ReminderDefaults = ReminderDefaults()
    sync_log_path: Optional[Path] = field(default=SYNC_LOG_PATH)


DEFAULT_CONFIG = SyncConfig()


__all__ = [
    "APP_NAME",
    "DATA_DIR",
    "SECRETS_DIR",
    "LOG_DIR",
    "DB_PATH",
    "CONFIG_PATH",
    "TOKEN_PATH",
    "CLIENT_SECRET_PATH",
    "SYNC_LOG_PATH",
    "CalendarSettings",
    "DEFAULT_CONFIG",
    "RecurrenceSettings",
    "ReminderDefaults",
    "SheetNames",
    "SyncConfig",
    "TaskSettings",
    "ensure_data_dirs",
    "get_default_data_dir",
]
