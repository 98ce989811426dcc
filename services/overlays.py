"""Per-occurrence overlays (done / delete / edit) and series splits."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Mapping, Set, Tuple

from datetime_utils import format_date, parse_date_cell, parse_rfc3339, to_rfc3339_utc, utc_now
from models.occurrence import OccurrenceDelete, OccurrenceDone, OccurrenceEdit, Split
from models.task import TASK_COLUMNS, SYSTEM_COLUMNS
from services.task_repository import as_bool
from storage.row_store import RowStore
from storage.workbook import Workbook


logger = logging.getLogger("tasksync.overlays")

EDIT_DATE_KEY = "local_date"

# Columns an occurrence edit may override; identity and sync bookkeeping stay with the parent.
EDITABLE_COLUMNS = tuple(c for c in TASK_COLUMNS if c not in SYSTEM_COLUMNS)

Key = Tuple[str, date]


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _decode_edit_payload(payload: Any) -> Dict[str, Any]:
    if isinstance(payload, dict):
        return dict(payload)
    try:
        data = json.loads(_text(payload) or "{}")
    except json.JSONDecodeError as exc:
        raise ValueError(f"fields_json is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError("fields_json must be an object")
    return data


@dataclass
class OverlayIndex:
    """Snapshot of every overlay table, keyed for constant-time lookups."""

    done: Dict[Key, OccurrenceDone] = field(default_factory=dict)
    deletes: Dict[Key, OccurrenceDelete] = field(default_factory=dict)
    edits: Dict[Key, OccurrenceEdit] = field(default_factory=dict)
    splits: Dict[str, List[Split]] = field(default_factory=dict)

    @property
    def split_targets(self) -> Set[str]:
        return {s.new_task_id for items in self.splits.values() for s in items}


class OverlayRepository:
    def __init__(self, book: Workbook, *, clock: Callable[[], datetime] = utc_now):
        self.book = book
        self._clock = clock

    # ----- reads -----
    def load_index(self) -> OverlayIndex:
        index = OverlayIndex()
        for row, rec in self.book.occurrence_done.records():
            try:
                item = OccurrenceDone(
                    recurrence_id=_text(rec.get("recurrence_id")),
                    local_date=parse_date_cell(rec.get("local_date")),
                    is_done=as_bool(rec.get("is_done")),
                    updated_at=parse_rfc3339(_text(rec.get("updated_at"))),
                )
            except ValueError as exc:
                logger.warning("%s row %s skipped: %s", self.book.occurrence_done.name, row, exc)
                continue
            if item.recurrence_id and item.local_date:
                index.done[(item.recurrence_id, item.local_date)] = item

        for row, rec in self.book.occurrence_deletes.records():
            try:
                item = OccurrenceDelete(
                    recurrence_id=_text(rec.get("recurrence_id")),
                    local_date=parse_date_cell(rec.get("local_date")),
                    updated_at=parse_rfc3339(_text(rec.get("updated_at"))),
                )
            except ValueError as exc:
                logger.warning("%s row %s skipped: %s", self.book.occurrence_deletes.name, row, exc)
                continue
            if item.recurrence_id and item.local_date:
                index.deletes[(item.recurrence_id, item.local_date)] = item

        for row, rec in self.book.occurrence_edits.records():
            try:
                payload = _decode_edit_payload(rec.get("fields_json"))
                local_date = parse_date_cell(payload.pop(EDIT_DATE_KEY, None))
            except ValueError as exc:
                logger.warning("%s row %s skipped: %s", self.book.occurrence_edits.name, row, exc)
                continue
            recurrence_id = _text(rec.get("recurrence_id"))
            if not recurrence_id or local_date is None:
                continue
            fields = {k: v for k, v in payload.items() if k in EDITABLE_COLUMNS}
            index.edits[(recurrence_id, local_date)] = OccurrenceEdit(
                recurrence_id=recurrence_id,
                local_date=local_date,
                fields=fields,
                updated_at=parse_rfc3339(_text(rec.get("updated_at"))),
            )

        for row, rec in self.book.splits.records():
            try:
                split = Split(
                    original_task_id=_text(rec.get("original_task_id")),
                    split_at=parse_date_cell(rec.get("split_at")),
                    new_task_id=_text(rec.get("new_task_id")),
                )
            except ValueError as exc:
                logger.warning("%s row %s skipped: %s", self.book.splits.name, row, exc)
                continue
            if split.original_task_id and split.new_task_id and split.split_at:
                index.splits.setdefault(split.original_task_id, []).append(split)
        for items in index.splits.values():
            items.sort(key=lambda s: s.split_at)
        return index

    def splits_for(self, task_id: str) -> List[Split]:
        """Splits recorded against ``task_id``, earliest first."""
        found = []
        for _, rec in self.book.splits.records():
            if _text(rec.get("original_task_id")) != task_id:
                continue
            try:
                split_at = parse_date_cell(rec.get("split_at"))
            except ValueError:
                continue
            new_task_id = _text(rec.get("new_task_id"))
            if split_at and new_task_id:
                found.append(Split(task_id, split_at, new_task_id))
        return sorted(found, key=lambda s: s.split_at)

    # ----- writes -----
    def set_done(self, recurrence_id: str, local_date: date, is_done: bool) -> int:
        return self._upsert(
            self.book.occurrence_done,
            recurrence_id,
            local_date,
            {"is_done": bool(is_done)},
        )

    def delete_occurrence(self, recurrence_id: str, local_date: date) -> int:
        return self._upsert(self.book.occurrence_deletes, recurrence_id, local_date, {})

    def edit_occurrence(self, recurrence_id: str, local_date: date, fields: Mapping[str, Any]) -> int:
        unknown = [k for k in fields if k not in EDITABLE_COLUMNS]
        if unknown:
            raise ValueError(f"Fields cannot be overridden per occurrence: {', '.join(unknown)}")
        store = self.book.occurrence_edits
        now = to_rfc3339_utc(self._clock())
        for row, rec in store.records():
            if _text(rec.get("recurrence_id")) != recurrence_id:
                continue
            try:
                payload = _decode_edit_payload(rec.get("fields_json"))
                row_date = parse_date_cell(payload.get(EDIT_DATE_KEY))
            except ValueError:
                continue
            if row_date != local_date:
                continue
            payload.update(fields)
            store.write_cells(row, {"fields_json": json.dumps(payload, ensure_ascii=False), "updated_at": now})
            return row
        payload = {EDIT_DATE_KEY: format_date(local_date), **dict(fields)}
        return store.append_record(
            {
                "recurrence_id": recurrence_id,
                "fields_json": json.dumps(payload, ensure_ascii=False),
                "updated_at": now,
            }
        )

    def add_split(self, original_task_id: str, split_at: date, new_task_id: str) -> int:
        return self.book.splits.append_record(
            {
                "original_task_id": original_task_id,
                "split_at": format_date(split_at),
                "new_task_id": new_task_id,
            }
        )

    def _upsert(self, store: RowStore, recurrence_id: str, local_date: date, values: Dict[str, Any]) -> int:
        now = to_rfc3339_utc(self._clock())
        for row, rec in store.records():
            if _text(rec.get("recurrence_id")) != recurrence_id:
                continue
            try:
                row_date = parse_date_cell(rec.get("local_date"))
            except ValueError:
                continue
            if row_date == local_date:
                store.write_cells(row, {**values, "updated_at": now})
                return row
        record = {
            "recurrence_id": recurrence_id,
            "local_date": format_date(local_date),
            "updated_at": now,
            **values,
        }
        return store.append_record(record)


__all__ = ["EDITABLE_COLUMNS", "OverlayIndex", "OverlayRepository"]
