"""Expand recurring tasks into dated occurrences for a bounded window.

A series is cut into segments at its splits; each segment takes its dates from
its own task's rule anchored at that task's start date. Every date then goes
through, in order: delete overlay, edit overlay, done overlay.
"""
from __future__ import annotations

import heapq
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from dateutil.rrule import rrulebase, rrulestr

from core.settings import RecurrenceSettings
from models.occurrence import Occurrence
from models.task import NON_RECURRING, Task
from services.overlays import OverlayIndex
from services.task_repository import row_to_task, task_to_row


logger = logging.getLogger("tasksync.recurrence")

_BOUND_RE = re.compile(r"(?i)(^|;)(COUNT|UNTIL)=[^;]*")
# occurrences are identified by date, so a rule may fire at most once a day
_SUB_DAILY_RE = re.compile(r"(?i)(^|;)FREQ=(HOURLY|MINUTELY|SECONDLY)(;|$)")

KEYWORD_RULES: Dict[str, str] = {
    "daily": "FREQ=DAILY",
    "weekdays": "FREQ=DAILY;BYDAY=MO,TU,WE,TH,FR",
    "weekly": "FREQ=WEEKLY",
    "biweekly": "FREQ=WEEKLY;INTERVAL=2",
    "monthly": "FREQ=MONTHLY",
    "yearly": "FREQ=YEARLY",
    "annually": "FREQ=YEARLY",
}


@dataclass(frozen=True)
class DateWindow:
    """Inclusive ``[start, end]`` range of local dates."""

    start: date
    end: date

    def __post_init__(self):
        if self.start is None or self.end is None:
            raise ValueError("Both window bounds are required")
        if self.end < self.start:
            raise ValueError(f"Window end {self.end} is before start {self.start}")

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def __contains__(self, day: date) -> bool:
        return self.start <= day <= self.end


def rule_text(task: Task) -> str:
    """The RRULE body (no ``RRULE:`` prefix) for ``task``, or ``""``."""
    text = task.recurrence.strip()
    key = text.lower()
    if key in NON_RECURRING:
        return ""
    if key in KEYWORD_RULES:
        return KEYWORD_RULES[key]
    if text.upper().startswith("RRULE:"):
        return text[len("RRULE:"):]
    return text


def calendar_recurrence(task: Task, until: Optional[date] = None) -> List[str]:
    """RFC 5545 lines for a recurring calendar event.

    The rule is bounded by ``repeat_count``; when ``until`` is given (a split
    date) only the occurrences before it are kept, expressed as a ``COUNT``.
    """
    body = rule_text(task)
    if not body or task.start_date is None:
        return []
    if until is not None:
        rule = build_rule(task)
        kept = 0
        for seen, moment in enumerate(rule, start=1):
            if task.repeat_count is not None and seen > task.repeat_count:
                break
            if moment.date() >= until:
                break
            kept += 1
        body = _BOUND_RE.sub("", body).strip(";")
        return [f"RRULE:{body};COUNT={kept}"] if kept else []
    upper = body.upper()
    if task.repeat_count and "COUNT=" not in upper and "UNTIL=" not in upper:
        body = f"{body};COUNT={task.repeat_count}"
    return [f"RRULE:{body}"]


def build_rule(task: Task) -> Optional[rrulebase]:
    """Return the dateutil rule for ``task`` or ``None`` when it does not repeat.

    Raises ``ValueError`` for rules dateutil cannot parse and for rules that
    repeat more often than daily.
    """
    if task.start_date is None:
        return None
    body = rule_text(task)
    if not body:
        return None
    if _SUB_DAILY_RE.search(body):
        raise ValueError(f"Unsupported recurrence {task.recurrence!r}: repeats more than once a day")
    dtstart = datetime.combine(task.start_date, time.min)
    try:
        return rrulestr(body, dtstart=dtstart, ignoretz=True)
    except (ValueError, TypeError) as exc:
        raise ValueError(f"Unsupported recurrence {task.recurrence!r}: {exc}") from exc


def apply_overrides(task: Task, fields: Mapping[str, Any]) -> Task:
    """Overlay ``{header: value}`` onto ``task``; overlay values win."""
    if not fields:
        return task
    record = task_to_row(task)
    record.update(fields)
    return row_to_task(record, task.row_index)


def _keyed(order: int, occurrences: Iterable[Occurrence]) -> Iterator[tuple]:
    for occ in occurrences:
        yield occ.local_date, order, occ


def _shift_to(task: Task, day: date) -> Task:
    end_date = task.end_date
    if end_date is not None and task.start_date is not None:
        end_date = day + (end_date - task.start_date)
    return task.with_changes(start_date=day, end_date=end_date)


class RecurrenceExpander:
    def __init__(
        self,
        overlays: Optional[OverlayIndex] = None,
        tasks: Iterable[Task] = (),
        settings: RecurrenceSettings = RecurrenceSettings(),
    ):
        self.overlays = overlays or OverlayIndex()
        self.tasks_by_id = {t.task_id: t for t in tasks if t.task_id}
        self.settings = settings

    def _check_window(self, window: DateWindow) -> None:
        if window.days > self.settings.max_window_days:
            raise ValueError(
                f"Window of {window.days} days exceeds the limit of {self.settings.max_window_days}"
            )

    def candidate_dates(self, task: Task, window: DateWindow) -> Iterator[date]:
        """Rule dates inside ``window``, honouring ``repeat_count``."""
        if task.start_date is None:
            return
        rule = build_rule(task)
        if rule is None:
            if task.start_date in window:
                yield task.start_date
            return
        limit = task.repeat_count
        last = None
        for seen, moment in enumerate(rule, start=1):
            if limit is not None and seen > limit:
                return
            day = moment.date()
            if day == last:
                # BYHOUR and friends can still fire twice on one date
                continue
            last = day
            if day > window.end:
                return
            if day >= window.start:
                yield day

    def segments(self, task: Task) -> List[Tuple[Task, Optional[date], Optional[date]]]:
        """Split the series rooted at ``task`` into ``(task, from, until)`` pieces.

        Each piece covers ``from <= day < until``; open bounds are ``None``.
        A piece ends at the first split of its task, and the split target
        continues the series with its own rule.
        """
        pieces = []
        current, start = task, None
        seen = {task.task_id}
        while True:
            split = next(
                (s for s in self.overlays.splits.get(current.task_id, []) if start is None or s.split_at > start),
                None,
            )
            pieces.append((current, start, split.split_at if split else None))
            if split is None:
                return pieces
            target = self.tasks_by_id.get(split.new_task_id)
            if target is None:
                logger.warning("Split target %s of %s is missing", split.new_task_id, current.task_id)
                return pieces
            if target.task_id in seen:
                logger.warning("Split cycle detected at %s", target.task_id)
                return pieces
            seen.add(target.task_id)
            current, start = target, split.split_at

    def expand(self, task: Task, window: DateWindow) -> Iterator[Occurrence]:
        self._check_window(window)
        series_id = task.task_id
        emitted = 0
        for parent, start, until in self.segments(task):
            if parent.marked_for_deletion:
                continue
            parent_id = parent.task_id
            for day in self.candidate_dates(parent, window):
                if start is not None and day < start:
                    continue
                if until is not None and day >= until:
                    break
                key = (parent_id, day)
                if key in self.overlays.deletes:
                    continue

                occurrence_task = _shift_to(parent, day)
                edit = self.overlays.edits.get(key)
                if edit is not None:
                    occurrence_task = apply_overrides(occurrence_task, edit.fields)

                completed = occurrence_task.is_completed
                done = self.overlays.done.get(key)
                if done is not None:
                    completed = done.is_done
                occurrence_task = occurrence_task.with_changes(is_completed=completed)

                yield Occurrence(
                    recurrence_id=parent_id,
                    series_id=series_id,
                    local_date=day,
                    task=occurrence_task,
                    is_completed=completed,
                    is_edited=edit is not None,
                )
                emitted += 1
                if emitted >= self.settings.max_occurrences:
                    logger.warning("Stopped expanding %s after %s occurrences", series_id, emitted)
                    return

    def expand_all(self, tasks: Iterable[Task], window: DateWindow) -> Iterator[Occurrence]:
        """Occurrences of every live series root, merged in date order."""
        self._check_window(window)
        targets = self.overlays.split_targets
        streams = []
        for order, task in enumerate(tasks):
            if task.task_id in targets:
                continue
            streams.append(_keyed(order, self._safe_expand(task, window)))
        for _, _, occurrence in heapq.merge(*streams, key=lambda item: (item[0], item[1])):
            yield occurrence

    def _safe_expand(self, task: Task, window: DateWindow) -> Iterator[Occurrence]:
        try:
            yield from self.expand(task, window)
        except ValueError as exc:
            logger.warning("Task %s at row %s not expanded: %s", task.task_id, task.row_index, exc)


__all__ = [
    "DateWindow",
    "KEYWORD_RULES",
    "RecurrenceExpander",
    "apply_overrides",
    "build_rule",
    "calendar_recurrence",
    "rule_text",
]
