"""Per-occurrence overlay rows and the derived occurrence record."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Optional

from models.task import Task


OCCURRENCE_DONE_COLUMNS = ("recurrence_id", "local_date", "is_done", "updated_at")
OCCURRENCE_DELETE_COLUMNS = ("recurrence_id", "local_date", "updated_at")
OCCURRENCE_EDIT_COLUMNS = ("recurrence_id", "fields_json", "updated_at")
SPLIT_COLUMNS = ("original_task_id", "split_at", "new_task_id")
SYNC_META_COLUMNS = ("key", "value")
PRIORITY_REMINDER_COLUMNS = ("Priority", "ReminderOffsets")
CATEGORY_REMINDER_COLUMNS = ("Category", "ReminderOffsets")


@dataclass(frozen=True)
class OccurrenceDone:
    recurrence_id: str
    local_date: date
    is_done: bool
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class OccurrenceDelete:
    recurrence_id: str
    local_date: date
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class OccurrenceEdit:
    """Field overrides for one date, keyed by ``Tasks`` header name."""

    recurrence_id: str
    local_date: date
    fields: Dict[str, Any] = field(default_factory=dict)
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Split:
    original_task_id: str
    split_at: date
    new_task_id: str


@dataclass(frozen=True)
class Occurrence:
    recurrence_id: str
    series_id: str
    local_date: date
    task: Task
    is_completed: bool = False
    is_edited: bool = False

    def to_payload(self) -> Dict[str, Any]:
        return {
            "recurrenceId": self.recurrence_id,
            "seriesId": self.series_id,
            "localDate": self.local_date.isoformat(),
            "isCompleted": self.is_completed,
            "isEdited": self.is_edited,
        }


__all__ = [
    "CATEGORY_REMINDER_COLUMNS",
    "OCCURRENCE_DELETE_COLUMNS",
    "OCCURRENCE_DONE_COLUMNS",
    "OCCURRENCE_EDIT_COLUMNS",
    "Occurrence",
    "OccurrenceDelete",
    "OccurrenceDone",
    "OccurrenceEdit",
    "PRIORITY_REMINDER_COLUMNS",
    "SPLIT_COLUMNS",
    "SYNC_META_COLUMNS",
    "Split",
]
