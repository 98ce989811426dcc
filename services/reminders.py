"""Reminder offsets (minutes before start) by priority and by category."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

from core.priorities import Priority, parse_priority_key
from core.settings import ReminderDefaults
from models.task import Task
from storage.workbook import Workbook


logger = logging.getLogger("tasksync.reminders")

_SPLIT_RE = re.compile(r"[,;\s]+")


def parse_offsets(value) -> Tuple[int, ...]:
    if value is None:
        return ()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        items: Iterable = [value]
    else:
        items = [p for p in _SPLIT_RE.split(str(value)) if p]
    out = []
    for item in items:
        try:
            minutes = int(float(item))
        except (TypeError, ValueError):
            logger.warning("Ignoring reminder offset %r", item)
            continue
        if minutes >= 0:
            out.append(minutes)
    return tuple(out)


@dataclass(frozen=True)
class ReminderPolicy:
    by_priority: Dict[Priority, Tuple[int, ...]] = field(default_factory=dict)
    by_category: Dict[str, Tuple[int, ...]] = field(default_factory=dict)

    def offsets_for(self, task: Task) -> List[int]:
        """Union of the priority and category offsets, deduplicated, ascending."""
        merged = set(self.by_priority.get(task.priority, ()))
        if task.category:
            merged.update(self.by_category.get(task.category.lower(), ()))
        return sorted(merged)

    @classmethod
    def from_defaults(cls, defaults: ReminderDefaults) -> "ReminderPolicy":
        by_priority = {}
        for name, offsets in defaults.priority:
            level = parse_priority_key(name)
            if level is not None:
                by_priority[level] = tuple(offsets)
        by_category = {name.lower(): tuple(offsets) for name, offsets in defaults.category}
        return cls(by_priority=by_priority, by_category=by_category)

    @classmethod
    def from_workbook(cls, book: Workbook, defaults: ReminderDefaults = ReminderDefaults()) -> "ReminderPolicy":
        """Read both reminder tables; an empty table falls back to ``defaults``."""
        fallback = cls.from_defaults(defaults)

        by_priority: Dict[Priority, Tuple[int, ...]] = {}
        for row, rec in book.priority_reminders.records():
            level = parse_priority_key(rec.get("Priority"))
            if level is None:
                logger.warning("%s row %s: unknown priority %r", book.priority_reminders.name, row, rec.get("Priority"))
                continue
            by_priority[level] = parse_offsets(rec.get("ReminderOffsets"))

        by_category: Dict[str, Tuple[int, ...]] = {}
        for _, rec in book.category_reminders.records():
            name = str(rec.get("Category") or "").strip()
            if name:
                by_category[name.lower()] = parse_offsets(rec.get("ReminderOffsets"))

        return cls(
            by_priority=by_priority or fallback.by_priority,
            by_category=by_category or fallback.by_category,
        )


__all__ = ["ReminderPolicy", "parse_offsets"]
