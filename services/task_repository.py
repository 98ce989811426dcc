from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from core.errors import MissingReference, NotFound, VersionConflict
from core.priorities import normalize_category, normalize_priority
from core.settings import DEFAULT_CONFIG, SyncConfig
from datetime_utils import (
    format_date,
    format_time,
    parse_date_cell,
    parse_rfc3339,
    parse_time_cell,
    resolve_zone,
    to_rfc3339_utc,
    utc_now,
)
from helpers.ids import IdGenerator
from models.task import (
    CALENDAR_EVENT_ID,
    CATEGORY,
    CREATED_AT,
    DELETE_THIS,
    END_DATE,
    END_TIME,
    IS_COMPLETED,
    LAST_CALENDAR_ETAG,
    LAST_CALENDAR_SYNC_AT,
    NOTES,
    PRIORITY,
    RECURRENCE,
    REPEAT_COUNT,
    ROW_VERSION,
    START_DATE,
    START_TIME,
    SUBJECT,
    TAGS,
    TASK_COLUMNS,
    TASK_ID,
    TIMEZONE,
    UPDATED_AT,
    Task,
)
from storage.row_store import FIRST_DATA_ROW, RowStore


logger = logging.getLogger("tasksync.store")

_TRUE_WORDS = {"true", "1", "yes", "y", "x", "✓", "✔", "on"}


def as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in _TRUE_WORDS


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _as_optional_text(value: Any) -> Optional[str]:
    text = _as_text(value)
    return text or None


def _as_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return default
    try:
        return int(float(text))
    except ValueError:
        return default


def parse_repeat_count(value: Any) -> Optional[int]:
    text = _as_text(value)
    if not text:
        return None
    count = _as_int(text)
    if count is None or count < 1:
        raise ValueError(f"Repeat Count must be a positive integer, got {value!r}")
    return count


def parse_tags(value: Any) -> frozenset:
    if value is None:
        return frozenset()
    if isinstance(value, (list, tuple, set, frozenset)):
        items = value
    else:
        items = str(value).split(",")
    return frozenset(t.strip() for t in items if str(t).strip())


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    return parse_rfc3339(_as_text(value))


def row_to_task(record: Mapping[str, Any], row_index: Optional[int] = None, categories: Iterable[str] = ()) -> Task:
    """Turn a ``{header: cell}`` mapping into a :class:`Task`.

    Values the user typed badly are logged and read as empty so one bad row
    never hides the rest of the sheet.
    """

    def _safe(parser, column):
        try:
            return parser(record.get(column))
        except ValueError as exc:
            logger.warning("Row %s: %s", row_index, exc)
            return None

    return Task(
        subject=_as_text(record.get(SUBJECT)),
        start_date=_safe(parse_date_cell, START_DATE),
        start_time=_safe(parse_time_cell, START_TIME),
        end_date=_safe(parse_date_cell, END_DATE),
        end_time=_safe(parse_time_cell, END_TIME),
        category=normalize_category(record.get(CATEGORY), categories) if categories else _as_text(record.get(CATEGORY)),
        recurrence=_as_text(record.get(RECURRENCE)),
        repeat_count=_safe(parse_repeat_count, REPEAT_COUNT),
        priority=normalize_priority(record.get(PRIORITY)),
        tags=parse_tags(record.get(TAGS)),
        notes=_as_text(record.get(NOTES)),
        is_completed=as_bool(record.get(IS_COMPLETED)),
        marked_for_deletion=as_bool(record.get(DELETE_THIS)),
        task_id=_as_text(record.get(TASK_ID)),
        timezone=_as_text(record.get(TIMEZONE)),
        external_event_id=_as_optional_text(record.get(CALENDAR_EVENT_ID)),
        last_external_sync_tag=_as_optional_text(record.get(LAST_CALENDAR_ETAG)),
        last_synced_at=_parse_timestamp(record.get(LAST_CALENDAR_SYNC_AT)),
        row_version=_as_int(record.get(ROW_VERSION), 0) or 0,
        created_at=_parse_timestamp(record.get(CREATED_AT)),
        updated_at=_parse_timestamp(record.get(UPDATED_AT)),
        row_index=row_index,
    )


def task_to_row(task: Task) -> Dict[str, Any]:
    """Inverse of :func:`row_to_task`; every column of the ``Tasks`` table."""
    return {
        SUBJECT: task.subject,
        START_DATE: format_date(task.start_date),
        START_TIME: format_time(task.start_time),
        END_DATE: format_date(task.end_date),
        END_TIME: format_time(task.end_time),
        IS_COMPLETED: task.is_completed,
        DELETE_THIS: task.marked_for_deletion,
        CATEGORY: task.category,
        RECURRENCE: task.recurrence,
        REPEAT_COUNT: task.repeat_count if task.repeat_count is not None else "",
        PRIORITY: task.priority.value,
        TAGS: ", ".join(sorted(task.tags)),
        NOTES: task.notes,
        TASK_ID: task.task_id,
        TIMEZONE: task.timezone,
        CALENDAR_EVENT_ID: task.external_event_id or "",
        LAST_CALENDAR_ETAG: task.last_external_sync_tag or "",
        LAST_CALENDAR_SYNC_AT: to_rfc3339_utc(task.last_synced_at) or "",
        ROW_VERSION: task.row_version or "",
        CREATED_AT: to_rfc3339_utc(task.created_at) or "",
        UPDATED_AT: to_rfc3339_utc(task.updated_at) or "",
    }


def task_to_payload(task: Task) -> Dict[str, Any]:
    payload = task_to_row(task)
    payload["rowIndex"] = task.row_index
    return payload


def apply_user_fields(base: Task, fields: Mapping[str, Any], categories: Iterable[str] = ()) -> Task:
    """Return ``base`` with every user column replaced by ``fields``.

    Omitted columns become empty: callers always resend the full record.
    Raises ``ValueError`` for values that cannot be parsed.
    """
    return base.with_changes(
        subject=_as_text(fields.get(SUBJECT)),
        start_date=parse_date_cell(fields.get(START_DATE)),
        start_time=parse_time_cell(fields.get(START_TIME)),
        end_date=parse_date_cell(fields.get(END_DATE)),
        end_time=parse_time_cell(fields.get(END_TIME)),
        category=normalize_category(fields.get(CATEGORY), categories),
        recurrence=_as_text(fields.get(RECURRENCE)),
        repeat_count=parse_repeat_count(fields.get(REPEAT_COUNT)),
        priority=normalize_priority(fields.get(PRIORITY)),
        tags=parse_tags(fields.get(TAGS)),
        notes=_as_text(fields.get(NOTES)),
        is_completed=as_bool(fields.get(IS_COMPLETED)),
        marked_for_deletion=as_bool(fields.get(DELETE_THIS)),
    )


def coerce_row_index(value: Any) -> int:
    if value is None or isinstance(value, bool) or _as_text(value) == "":
        raise MissingReference("rowIndex is required")
    index = _as_int(value)
    if index is None:
        raise MissingReference(f"rowIndex is not a number: {value!r}")
    return index


class TaskRepository:
    """Typed access to the ``Tasks`` table.

    ``row_version`` is always read from storage and incremented here; the
    read-then-write is not atomic against other writers of the same row.
    """

    def __init__(
        self,
        store: RowStore,
        config: SyncConfig = DEFAULT_CONFIG,
        *,
        ids: Optional[IdGenerator] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.config = config
        self.ids = ids or IdGenerator()
        self._clock = clock

    @property
    def categories(self) -> tuple:
        return self.config.tasks.categories

    # ----- reads -----
    def list_tasks(self) -> List[Task]:
        tasks = []
        for index, record in self.store.records():
            if not _as_text(record.get(TASK_ID)) and not _as_text(record.get(SUBJECT)):
                continue
            tasks.append(row_to_task(record, index, self.categories))
        return tasks

    def get_task(self, row_index: Any) -> Task:
        index = coerce_row_index(row_index)
        if index < FIRST_DATA_ROW:
            raise NotFound(f"Row {index} is not a task row")
        values = self.store.row(index)
        if values is None:
            raise NotFound(f"Row {index} not found")
        record = dict(zip(self.store.header(), values))
        if not _as_text(record.get(TASK_ID)) and not _as_text(record.get(SUBJECT)):
            raise NotFound(f"Row {index} is empty")
        return row_to_task(record, index, self.categories)

    def find_by_task_id(self, task_id: str) -> Optional[Task]:
        if not task_id:
            return None
        for task in self.list_tasks():
            if task.task_id == task_id:
                return task
        return None

    # ----- writes -----
    def create_task(self, fields: Mapping[str, Any]) -> int:
        now = self._clock()
        timezone = _as_text(fields.get(TIMEZONE))
        if not timezone or resolve_zone(timezone).key != timezone:
            timezone = self.config.tasks.default_timezone
        task = apply_user_fields(Task(), fields, self.categories).with_changes(
            marked_for_deletion=False,
            task_id=self.ids.next_id(),
            timezone=timezone,
            row_version=1,
            created_at=now,
            updated_at=now,
        )
        self._ensure_columns()
        index = self.store.append_record(task_to_row(task))
        logger.info("Created task %s at row %s", task.task_id, index)
        return index

    def update_task(self, row_index: Any, fields: Mapping[str, Any]) -> int:
        stored = self.get_task(row_index)
        index = stored.row_index
        expected = _as_int(fields.get(ROW_VERSION))
        if self.config.tasks.strict_versions and expected is not None and expected != stored.row_version:
            raise VersionConflict(index, expected, stored.row_version)

        task = apply_user_fields(stored, fields, self.categories).with_changes(
            task_id=stored.task_id or self.ids.next_id(),
            timezone=stored.timezone or self.config.tasks.default_timezone,
            created_at=stored.created_at or self._clock(),
            row_version=stored.row_version + 1,
            updated_at=self._clock(),
        )
        self.store.write(index, self._ordered(task, self.store.row(index)))
        logger.info("Updated task %s at row %s to version %s", task.task_id, index, task.row_version)
        return index

    def delete_task(self, row_index: Any) -> int:
        stored = self.get_task(row_index)
        self._ensure_columns()
        self.store.write_cells(
            stored.row_index,
            {
                DELETE_THIS: True,
                ROW_VERSION: stored.row_version + 1,
                UPDATED_AT: to_rfc3339_utc(self._clock()),
            },
        )
        logger.info("Marked task %s at row %s for deletion", stored.task_id, stored.row_index)
        return stored.row_index

    def record_sync(
        self,
        row_index: int,
        *,
        event_id: Optional[str],
        etag: Optional[str] = None,
        synced_at: Optional[datetime] = None,
    ) -> None:
        """Write back the calendar reference without touching the version."""
        self._ensure_columns()
        self.store.write_cells(
            row_index,
            {
                CALENDAR_EVENT_ID: event_id or "",
                LAST_CALENDAR_ETAG: etag or "",
                LAST_CALENDAR_SYNC_AT: to_rfc3339_utc(synced_at or self._clock()) or "",
            },
        )

    def _ensure_columns(self) -> List[str]:
        """Add the system columns a hand-made sheet may lack."""
        header = self.store.header()
        if any(c not in header for c in TASK_COLUMNS):
            header = self.store.ensure_header(TASK_COLUMNS)
            logger.info("Added missing task columns to %s", self.store.name)
        return header

    def _ordered(self, task: Task, existing: Optional[List[Any]] = None) -> List[Any]:
        record = task_to_row(task)
        header = self._ensure_columns()
        # columns the user added to the sheet keep their values
        previous = dict(zip(header, existing or []))
        return [record[column] if column in record else previous.get(column, "") for column in header]


__all__ = [
    "TaskRepository",
    "apply_user_fields",
    "as_bool",
    "coerce_row_index",
    "row_to_task",
    "task_to_payload",
    "task_to_row",
]
