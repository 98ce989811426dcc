"""Exceptions raised by the sync engine.

Every error carries a ``kind`` that ends up in the response envelope next to
the human readable message.
"""
from __future__ import annotations

from typing import Optional


class TaskSyncError(Exception):
    kind = "Error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_payload(self) -> dict:
        return {"status": "error", "kind": self.kind, "message": self.message}


class InvalidAction(TaskSyncError):
    kind = "InvalidAction"


class MissingReference(TaskSyncError):
    kind = "MissingReference"


class NotFound(TaskSyncError):
    kind = "NotFound"


class VersionConflict(TaskSyncError):
    kind = "VersionConflict"

    def __init__(self, row_index: int, expected: int, stored: int):
        super().__init__(
            f"Row {row_index} changed: expected version {expected}, stored version {stored}"
        )
        self.row_index = row_index
        self.expected = expected
        self.stored = stored


class CollaboratorUnavailable(TaskSyncError):
    """The calendar could not be reached or refused the call."""

    kind = "CollaboratorUnavailable"


class StaleExternalReference(TaskSyncError):
    kind = "StaleExternalReference"


__all__ = [
    "CollaboratorUnavailable",
    "InvalidAction",
    "MissingReference",
    "NotFound",
    "StaleExternalReference",
    "TaskSyncError",
    "VersionConflict",
]
