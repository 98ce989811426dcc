"""Utility helpers for task priorities and categories."""
from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable, Optional


logger = logging.getLogger("tasksync.fields")


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"


DEFAULT_PRIORITY = Priority.MEDIUM

# Numeric levels accepted from older sheets (0..3).
_LEVELS = {
    "0": Priority.LOW,
    "1": Priority.MEDIUM,
    "2": Priority.HIGH,
    "3": Priority.URGENT,
}


def normalize_priority(value, default: Priority = DEFAULT_PRIORITY) -> Priority:
    """Map free-form cell values onto :class:`Priority`."""
    if value is None:
        return default
    if isinstance(value, Priority):
        return value
    text = str(value).strip()
    if not text:
        return default
    for level in Priority:
        if level.value.lower() == text.lower():
            return level
    if text in _LEVELS:
        return _LEVELS[text]
    logger.warning("Unknown priority %r, using %s", value, default.value)
    return default


def normalize_category(value, categories: Iterable[str]) -> str:
    """Return the canonical spelling of ``value`` from ``categories``.

    Unknown categories are kept as typed so user data is never dropped.
    """
    text = str(value or "").strip()
    if not text:
        return ""
    for known in categories:
        if known.lower() == text.lower():
            return known
    logger.warning("Category %r is not in the configured list", text)
    return text


def parse_priority_key(value) -> Optional[Priority]:
    text = str(value or "").strip()
    if not text:
        return None
    for level in Priority:
        if level.value.lower() == text.lower():
            return level
    return None
