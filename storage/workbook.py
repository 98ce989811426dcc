"""All tables of one task store, created from :class:`SyncConfig`."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterator

from core.settings import SheetNames, SyncConfig
from models.occurrence import (
    CATEGORY_REMINDER_COLUMNS,
    OCCURRENCE_DELETE_COLUMNS,
    OCCURRENCE_DONE_COLUMNS,
    OCCURRENCE_EDIT_COLUMNS,
    PRIORITY_REMINDER_COLUMNS,
    SPLIT_COLUMNS,
    SYNC_META_COLUMNS,
)
from models.task import TASK_COLUMNS
from storage.row_store import InMemoryRowStore, RowStore, SqlRowStore


logger = logging.getLogger("tasksync.storage")


@dataclass
class Workbook:
    tasks: RowStore
    occurrence_done: RowStore
    occurrence_deletes: RowStore
    occurrence_edits: RowStore
    splits: RowStore
    priority_reminders: RowStore
    category_reminders: RowStore
    sync_meta: RowStore

    def tables(self) -> Iterator[tuple[RowStore, tuple[str, ...]]]:
        yield self.tasks, TASK_COLUMNS
        yield self.occurrence_done, OCCURRENCE_DONE_COLUMNS
        yield self.occurrence_deletes, OCCURRENCE_DELETE_COLUMNS
        yield self.occurrence_edits, OCCURRENCE_EDIT_COLUMNS
        yield self.splits, SPLIT_COLUMNS
        yield self.priority_reminders, PRIORITY_REMINDER_COLUMNS
        yield self.category_reminders, CATEGORY_REMINDER_COLUMNS
        yield self.sync_meta, SYNC_META_COLUMNS

    def ensure_headers(self) -> Dict[str, list]:
        """Create or extend the header row of every table."""
        result = {}
        for store, columns in self.tables():
            result[store.name] = store.ensure_header(columns)
            logger.debug("Header ready for %s", store.name)
        return result


def _build(names: SheetNames, factory: Callable[[str], RowStore]) -> Workbook:
    return Workbook(
        tasks=factory(names.tasks),
        occurrence_done=factory(names.occurrence_done),
        occurrence_deletes=factory(names.occurrence_deletes),
        occurrence_edits=factory(names.occurrence_edits),
        splits=factory(names.splits),
        priority_reminders=factory(names.priority_reminders),
        category_reminders=factory(names.category_reminders),
        sync_meta=factory(names.sync_meta),
    )


def memory_workbook(names: SheetNames = SheetNames()) -> Workbook:
    book = _build(names, InMemoryRowStore)
    book.ensure_headers()
    return book


def sqlite_workbook(session_factory, names: SheetNames = SheetNames()) -> Workbook:
    book = _build(names, lambda name: SqlRowStore(name, session_factory))
    book.ensure_headers()
    return book


def sheets_workbook(service, spreadsheet_id: str, names: SheetNames = SheetNames()) -> Workbook:
    from storage.sheets import GoogleSheetsRowStore

    return _build(names, lambda name: GoogleSheetsRowStore(name, service, spreadsheet_id))


def open_workbook(config: SyncConfig, *, credentials=None) -> Workbook:
    if config.backend == "memory":
        return memory_workbook(config.sheets)
    if config.backend == "sqlite":
        from storage.db import create_db_engine, init_db, session_factory

        engine = create_db_engine(config.db_path)
        init_db(engine)
        return sqlite_workbook(session_factory(engine), config.sheets)
    if config.backend == "sheets":
        if not config.spreadsheet_id:
            raise ValueError("spreadsheet_id is required for the sheets backend")
        from storage.sheets import build_sheets_service

        service = build_sheets_service(credentials)
        return sheets_workbook(service, config.spreadsheet_id, config.sheets)
    raise ValueError(f"Unsupported backend: {config.backend}")


__all__ = ["Workbook", "memory_workbook", "open_workbook", "sheets_workbook", "sqlite_workbook"]
