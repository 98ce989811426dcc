"""Action router for the task API.

Requests look like ``{"action": "createTask", "payload": {...}}``; every
response is either ``{"status": "success", "data": ...}`` or
``{"status": "error", "kind": ..., "message": ...}``.
"""
from __future__ import annotations

import json
import logging
from datetime import timedelta
from typing import Any, Callable, Dict, Mapping, Optional

from core.errors import InvalidAction, MissingReference, NotFound, TaskSyncError
from core.settings import DEFAULT_CONFIG, SyncConfig
from datetime_utils import parse_date_cell
from models.task import (
    CATEGORY,
    END_TIME,
    NOTES,
    PRIORITY,
    RECURRENCE,
    REPEAT_COUNT,
    START_DATE,
    START_TIME,
    SUBJECT,
    TAGS,
    TIMEZONE,
)
from services.overlays import OverlayRepository
from services.reconciler import CalendarReconciler
from services.recurrence import DateWindow, RecurrenceExpander
from services.task_repository import TaskRepository, as_bool, coerce_row_index, task_to_payload, task_to_row


logger = logging.getLogger("tasksync.api")

# Columns a split copies from the original when the request leaves them out.
SPLIT_INHERITED = (SUBJECT, START_TIME, END_TIME, CATEGORY, PRIORITY, TAGS, NOTES, TIMEZONE)

Handler = Callable[[Mapping[str, Any]], Any]


def _required_date(payload: Mapping[str, Any], key: str):
    day = parse_date_cell(payload.get(key))
    if day is None:
        raise ValueError(f"{key} is required")
    return day


def _required_text(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    text = "" if value is None else str(value).strip()
    if not text:
        raise MissingReference(f"{key} is required")
    return text


def error_payload(kind: str, message: str) -> Dict[str, str]:
    return {"status": "error", "kind": kind, "message": message}


class RequestDispatcher:
    def __init__(
        self,
        repo: TaskRepository,
        overlays: OverlayRepository,
        reconciler: Optional[CalendarReconciler] = None,
        config: SyncConfig = DEFAULT_CONFIG,
    ):
        self.repo = repo
        self.overlays = overlays
        self.reconciler = reconciler
        self.config = config
        self._routes: Dict[str, Handler] = {
            "getTasks": self._get_tasks,
            "createTask": self._create_task,
            "updateTask": self._update_task,
            "deleteTask": self._delete_task,
            "getOccurrences": self._get_occurrences,
            "setOccurrenceDone": self._set_occurrence_done,
            "deleteOccurrence": self._delete_occurrence,
            "editOccurrence": self._edit_occurrence,
            "splitSeries": self._split_series,
            "reconcileAll": self._reconcile_all,
        }

    @property
    def actions(self):
        return sorted(self._routes)

    # ----- entry points -----
    def handle(self, request: Mapping[str, Any]) -> Dict[str, Any]:
        action = request.get("action") if isinstance(request, Mapping) else None
        try:
            handler = self._routes.get(action) if isinstance(action, str) else None
            if handler is None:
                raise InvalidAction(f"Unknown action: {action!r}")
            payload = request.get("payload")
            if payload is None:
                payload = {}
            if not isinstance(payload, Mapping):
                raise ValueError("payload must be an object")
            data = handler(payload)
        except TaskSyncError as exc:
            logger.warning("%s failed: %s", action, exc.message)
            return exc.to_payload()
        except ValueError as exc:
            logger.warning("%s rejected: %s", action, exc)
            return error_payload("InvalidField", str(exc))
        except Exception as exc:
            logger.exception("%s failed unexpectedly", action)
            return error_payload("Error", str(exc))
        return {"status": "success", "data": data}

    def handle_query(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        """GET-style entry: the action and its arguments share one mapping."""
        payload = {k: v for k, v in params.items() if k != "action"}
        return self.handle({"action": params.get("action"), "payload": payload})

    def handle_json(self, body: str) -> str:
        try:
            request = json.loads(body)
        except json.JSONDecodeError as exc:
            return json.dumps(error_payload("InvalidRequest", f"Body is not valid JSON: {exc}"))
        return json.dumps(self.handle(request), ensure_ascii=False, default=str)

    # ----- tasks -----
    def _get_tasks(self, payload):
        return [task_to_payload(task) for task in self.repo.list_tasks()]

    def _create_task(self, payload):
        row = self.repo.create_task(payload)
        return self._write_response(row, "Task created")

    def _update_task(self, payload):
        row = self.repo.update_task(coerce_row_index(payload.get("rowIndex")), payload)
        return self._write_response(row, "Task updated")

    def _delete_task(self, payload):
        row = self.repo.delete_task(coerce_row_index(payload.get("rowIndex")))
        return self._write_response(row, "Task deleted")

    def _write_response(self, row: int, message: str) -> Dict[str, Any]:
        sync = self._sync(row)
        task = self.repo.get_task(row)
        return {
            "message": message,
            "rowIndex": row,
            "taskId": task.task_id,
            "rowVersion": task.row_version,
            "sync": sync,
        }

    def _sync(self, row: int) -> Optional[Dict[str, Any]]:
        if self.reconciler is None:
            return None
        try:
            result = self.reconciler.reconcile(row)
        except Exception as exc:
            # the row is already written; calendar trouble is reported, not raised
            logger.exception("Reconcile of row %s crashed", row)
            return {"action": "failed", "eventId": None, "error": str(exc)}
        if not result.ok:
            logger.warning("Row %s saved but calendar sync failed: %s", row, result.error)
        return result.to_payload()

    # ----- occurrences -----
    def _get_occurrences(self, payload):
        window = DateWindow(_required_date(payload, "from"), _required_date(payload, "to"))
        tasks = self.repo.list_tasks()
        expander = RecurrenceExpander(self.overlays.load_index(), tasks, self.config.recurrence)
        out = []
        for occurrence in expander.expand_all(tasks, window):
            item = occurrence.to_payload()
            item["task"] = task_to_payload(occurrence.task)
            out.append(item)
        return out

    def _series(self, payload) -> str:
        recurrence_id = _required_text(payload, "recurrenceId")
        if self.repo.find_by_task_id(recurrence_id) is None:
            raise NotFound(f"No task with id {recurrence_id}")
        return recurrence_id

    def _set_occurrence_done(self, payload):
        recurrence_id = self._series(payload)
        local_date = _required_date(payload, "localDate")
        is_done = as_bool(payload.get("isDone", True))
        row = self.overlays.set_done(recurrence_id, local_date, is_done)
        return {
            "message": "Occurrence updated",
            "recurrenceId": recurrence_id,
            "localDate": local_date.isoformat(),
            "isDone": is_done,
            "overlayRow": row,
        }

    def _delete_occurrence(self, payload):
        recurrence_id = self._series(payload)
        local_date = _required_date(payload, "localDate")
        row = self.overlays.delete_occurrence(recurrence_id, local_date)
        return {
            "message": "Occurrence deleted",
            "recurrenceId": recurrence_id,
            "localDate": local_date.isoformat(),
            "overlayRow": row,
        }

    def _edit_occurrence(self, payload):
        recurrence_id = self._series(payload)
        local_date = _required_date(payload, "localDate")
        fields = payload.get("fields") or {}
        if not isinstance(fields, Mapping):
            raise ValueError("fields must be an object")
        row = self.overlays.edit_occurrence(recurrence_id, local_date, fields)
        return {
            "message": "Occurrence edited",
            "recurrenceId": recurrence_id,
            "localDate": local_date.isoformat(),
            "overlayRow": row,
        }

    def _split_series(self, payload):
        """End a series at ``splitAt`` and continue it as a new task.

        The new task starts on the split date. Columns the payload leaves out
        are copied from the original, including the recurrence and what is
        left of its repeat count. Splitting on the first date of the series
        retires the original entirely.
        """
        original = self.repo.get_task(coerce_row_index(payload.get("rowIndex")))
        if not original.is_recurring or original.start_date is None:
            raise ValueError(f"Row {original.row_index} is not a recurring task with a start date")
        if not original.task_id:
            raise MissingReference(f"Row {original.row_index} has no task id yet; update it first")
        split_at = _required_date(payload, "splitAt")
        if split_at < original.start_date:
            raise ValueError(f"splitAt {split_at} is before the series start {original.start_date}")

        fields = {k: v for k, v in payload.items() if k not in ("rowIndex", "splitAt")}
        inherited = task_to_row(original)
        for column in SPLIT_INHERITED:
            fields.setdefault(column, inherited[column])
        if not fields.get(START_DATE):
            fields[START_DATE] = split_at.isoformat()
        if not fields.get(RECURRENCE):
            fields[RECURRENCE] = original.recurrence
            if original.repeat_count is not None and REPEAT_COUNT not in fields:
                fields[REPEAT_COUNT] = self._remaining_count(original, split_at)

        new_row = self.repo.create_task(fields)
        new_task = self.repo.get_task(new_row)
        self.overlays.add_split(original.task_id, split_at, new_task.task_id)
        logger.info("Split series %s at %s into %s", original.task_id, split_at, new_task.task_id)

        if split_at == original.start_date:
            self.repo.delete_task(original.row_index)
        data = self._write_response(new_row, "Series split")
        data["originalRowIndex"] = original.row_index
        data["originalSync"] = self._sync(original.row_index)
        return data

    def _remaining_count(self, original, split_at) -> int:
        before = 0
        if split_at > original.start_date:
            window = DateWindow(original.start_date, split_at - timedelta(days=1))
            before = sum(1 for _ in RecurrenceExpander().candidate_dates(original, window))
        remaining = original.repeat_count - before
        if remaining < 1:
            raise ValueError(f"Series of row {original.row_index} ends before {split_at}")
        return remaining

    def _reconcile_all(self, payload):
        if self.reconciler is None:
            raise InvalidAction("Calendar sync is not configured")
        return self.reconciler.reconcile_all()


__all__ = ["RequestDispatcher", "error_payload"]
