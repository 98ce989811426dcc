"""Typed task record and the header names of the ``Tasks`` table."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, time
from typing import FrozenSet, Optional

from core.priorities import DEFAULT_PRIORITY, Priority


SUBJECT = "Subject"
START_DATE = "Start Date"
START_TIME = "Start Time"
END_DATE = "End Date"
END_TIME = "End Time"
IS_COMPLETED = "Is it Completed"
DELETE_THIS = "Delete this"
CATEGORY = "Category"
RECURRENCE = "Recurrence"
REPEAT_COUNT = "Repeat Count"
PRIORITY = "Priority"
TAGS = "Tags"
NOTES = "Notes"
TASK_ID = "_Task ID"
TIMEZONE = "_Timezone"
CALENDAR_EVENT_ID = "_Calendar Event ID"
LAST_CALENDAR_ETAG = "_Last Calendar ETag"
LAST_CALENDAR_SYNC_AT = "_Last Calendar Sync At"
ROW_VERSION = "_Row Version"
CREATED_AT = "_Created At"
UPDATED_AT = "_Updated At"

USER_COLUMNS = (
    SUBJECT,
    START_DATE,
    START_TIME,
    END_DATE,
    END_TIME,
    IS_COMPLETED,
    DELETE_THIS,
    CATEGORY,
    RECURRENCE,
    REPEAT_COUNT,
    PRIORITY,
    TAGS,
    NOTES,
)
SYSTEM_COLUMNS = (
    TASK_ID,
    TIMEZONE,
    CALENDAR_EVENT_ID,
    LAST_CALENDAR_ETAG,
    LAST_CALENDAR_SYNC_AT,
    ROW_VERSION,
    CREATED_AT,
    UPDATED_AT,
)
TASK_COLUMNS = USER_COLUMNS + SYSTEM_COLUMNS

# Recurrence cell values that mean "does not repeat".
NON_RECURRING = frozenset({"", "none", "never", "no", "once", "does not repeat"})


@dataclass(frozen=True)
class Task:
    subject: str = ""
    start_date: Optional[date] = None
    start_time: Optional[time] = None
    end_date: Optional[date] = None
    end_time: Optional[time] = None
    category: str = ""
    recurrence: str = ""
    repeat_count: Optional[int] = None
    priority: Priority = DEFAULT_PRIORITY
    tags: FrozenSet[str] = field(default_factory=frozenset)
    notes: str = ""
    is_completed: bool = False
    marked_for_deletion: bool = False

    task_id: str = ""
    timezone: str = ""
    external_event_id: Optional[str] = None
    last_external_sync_tag: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    row_version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    row_index: Optional[int] = None

    @property
    def is_all_day(self) -> bool:
        return self.start_time is None

    @property
    def is_recurring(self) -> bool:
        return self.recurrence.strip().lower() not in NON_RECURRING

    @property
    def is_active(self) -> bool:
        """True while the task should have a calendar event."""
        return not (self.is_completed or self.marked_for_deletion)

    def with_changes(self, **changes) -> "Task":
        return replace(self, **changes)


__all__ = [
    "NON_RECURRING",
    "SYSTEM_COLUMNS",
    "TASK_COLUMNS",
    "Task",
    "USER_COLUMNS",
]
