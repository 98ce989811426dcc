from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, List, Optional, Union

from core.errors import CollaboratorUnavailable, StaleExternalReference
from core.settings import DEFAULT_CONFIG, SyncConfig
from datetime_utils import resolve_zone, to_rfc3339_utc, utc_now
from models.task import Task
from services.overlays import OverlayRepository
from services.recurrence import build_rule, calendar_recurrence
from services.reminders import ReminderPolicy
from services.sync_meta import SyncMetaStore
from services.task_repository import TaskRepository


CREATED = "created"
UPDATED = "updated"
DELETED = "deleted"
CLEARED = "cleared"
NOOP = "noop"
FAILED = "failed"


def _ensure_logger(log_path: Optional[Path]) -> logging.Logger:
    logger = logging.getLogger("tasksync.sync")
    if log_path is not None and not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        try:
            Path(log_path).parent.mkdir(parents=True, exist_ok=True)
            handler = RotatingFileHandler(log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        except OSError as exc:
            logger.warning("Sync log %s unavailable: %s", log_path, exc)
        else:
            handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
            logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    return logger


@dataclass(frozen=True)
class EventWindow:
    start: Union[date, datetime]
    end: Union[date, datetime]
    all_day: bool


@dataclass(frozen=True)
class ReconcileResult:
    row_index: Optional[int]
    action: str
    event_id: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_payload(self) -> Dict[str, Optional[str]]:
        payload = {"action": self.action, "eventId": self.event_id}
        if self.error is not None:
            payload["error"] = str(self.error)
        return payload


def event_window(task: Task, default_timezone: str = "UTC") -> Optional[EventWindow]:
    """Calendar time span for ``task``; ``None`` when it has no start date.

    Without a start time the event is all-day with an exclusive end (the day
    after the end date, or after the start date when no end date is set).
    With a start time the end falls back to the start date and time.
    """
    if task.start_date is None:
        return None
    if task.is_all_day:
        last_day = task.end_date if task.end_date and task.end_date > task.start_date else task.start_date
        return EventWindow(task.start_date, last_day + timedelta(days=1), True)

    zone = resolve_zone(task.timezone, default_timezone)
    start = datetime.combine(task.start_date, task.start_time, tzinfo=zone)
    end = datetime.combine(
        task.end_date or task.start_date,
        task.end_time or task.start_time,
        tzinfo=zone,
    )
    if end < start:
        end = start
    return EventWindow(start, end, False)


class CalendarReconciler:
    """Brings the calendar in line with one task row.

    The stored event id is written only after a confirmed create and cleared
    only after a confirmed delete or a confirmed not-found.
    """

    def __init__(
        self,
        repo: TaskRepository,
        calendar,
        *,
        reminders: Optional[ReminderPolicy] = None,
        meta: Optional[SyncMetaStore] = None,
        overlays: Optional[OverlayRepository] = None,
        config: SyncConfig = DEFAULT_CONFIG,
    ) -> None:
        self.repo = repo
        self.calendar = calendar
        self.reminders = reminders or ReminderPolicy.from_defaults(config.reminders)
        self.meta = meta
        self.overlays = overlays
        self.config = config
        self.logger = _ensure_logger(config.sync_log_path)

    # ------------------------------------------------------------------
    # Public API
    def reconcile(self, row_index: int) -> ReconcileResult:
        return self.reconcile_task(self.repo.get_task(row_index))

    def reconcile_task(self, task: Task) -> ReconcileResult:
        try:
            return self._reconcile(task)
        except CollaboratorUnavailable as exc:
            self.logger.error("Calendar sync failed for task %s (row %s): %s", task.task_id, task.row_index, exc)
            return ReconcileResult(task.row_index, FAILED, task.external_event_id, error=exc)

    def reconcile_all(self) -> Dict[str, int]:
        counts: Counter = Counter()
        for task in self.repo.list_tasks():
            try:
                result = self.reconcile_task(task)
            except Exception as exc:
                self.logger.exception("Reconcile of task %s (row %s) failed", task.task_id, task.row_index)
                result = ReconcileResult(task.row_index, FAILED, task.external_event_id, error=exc)
            counts[result.action] += 1
        summary = {action: counts.get(action, 0) for action in (CREATED, UPDATED, DELETED, CLEARED, NOOP, FAILED)}
        self.logger.info("Bulk reconcile finished: %s", summary)
        if self.meta is not None:
            self.meta.update(
                {
                    "lastReconcileAt": to_rfc3339_utc(utc_now()),
                    "lastReconcileSummary": json.dumps(summary, sort_keys=True),
                }
            )
        return summary

    # ------------------------------------------------------------------
    def _reconcile(self, task: Task) -> ReconcileResult:
        row = task.row_index
        event = None
        if task.external_event_id:
            event = self.calendar.find_event_by_id(task.external_event_id)
            if event is None:
                self.logger.info("Event %s of task %s no longer exists", task.external_event_id, task.task_id)

        window = event_window(task, self.config.tasks.default_timezone)

        if not task.is_active or window is None:
            if event is not None:
                self.calendar.delete_event(event)
                self.repo.record_sync(row, event_id=None)
                self.logger.info("Deleted event %s for task %s", event.get("id"), task.task_id)
                return ReconcileResult(row, DELETED, None)
            if task.external_event_id:
                self.repo.record_sync(row, event_id=None)
                return ReconcileResult(row, CLEARED, None)
            return ReconcileResult(row, NOOP, None)

        title = task.subject
        description = task.notes or ""
        offsets = self.reminders.offsets_for(task)
        recurrence = self._recurrence(task)

        if event is not None:
            try:
                updated = self.calendar.update_event(
                    event,
                    title,
                    window.start,
                    window.end,
                    description,
                    all_day=window.all_day,
                    reminders=offsets,
                    task_id=task.task_id,
                    recurrence=recurrence,
                )
            except StaleExternalReference as exc:
                self.logger.info("Task %s: %s; creating a new event", task.task_id, exc)
            else:
                etag = (updated or {}).get("etag") or event.get("etag")
                self.repo.record_sync(row, event_id=event["id"], etag=etag)
                self.logger.info("Updated event %s for task %s", event["id"], task.task_id)
                return ReconcileResult(row, UPDATED, event["id"])

        if window.all_day:
            created = self.calendar.create_all_day_event(
                title,
                window.start,
                window.end,
                description=description,
                reminders=offsets,
                task_id=task.task_id,
                recurrence=recurrence,
            )
        else:
            created = self.calendar.create_event(
                title,
                window.start,
                window.end,
                description=description,
                reminders=offsets,
                task_id=task.task_id,
                recurrence=recurrence,
            )
        self.repo.record_sync(row, event_id=created["id"], etag=created.get("etag"))
        self.logger.info("Created event %s for task %s", created["id"], task.task_id)
        return ReconcileResult(row, CREATED, created["id"])

    def _recurrence(self, task: Task) -> List[str]:
        try:
            build_rule(task)
        except ValueError as exc:
            self.logger.warning("Task %s: recurrence not sent to calendar: %s", task.task_id, exc)
            return []
        until = None
        if self.overlays is not None and task.task_id:
            splits = self.overlays.splits_for(task.task_id)
            if splits:
                until = splits[0].split_at
        return calendar_recurrence(task, until)


__all__ = [
    "CLEARED",
    "CREATED",
    "CalendarReconciler",
    "DELETED",
    "EventWindow",
    "FAILED",
    "NOOP",
    "ReconcileResult",
    "UPDATED",
    "event_window",
]
