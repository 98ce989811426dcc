"""Records exposed by the TaskSync engine."""
from .occurrence import Occurrence, OccurrenceDelete, OccurrenceDone, OccurrenceEdit, Split
from .sheet_row import SheetHeader, SheetRow
from .task import Task

__all__ = [
    "Occurrence",
    "OccurrenceDelete",
    "OccurrenceDone",
    "OccurrenceEdit",
    "SheetHeader",
    "SheetRow",
    "Split",
    "Task",
]
