"""Row/column stores addressed by sheet row number.

Row 1 holds the header; data rows start at :data:`FIRST_DATA_ROW`. Callers
look values up by header name, never by position.
"""
from __future__ import annotations

import json
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy import func
from sqlmodel import Session, select

from datetime_utils import utc_now
from models.sheet_row import SheetHeader, SheetRow


HEADER_ROW = 1
FIRST_DATA_ROW = 2


def _pad(values: Sequence[Any], width: int) -> List[Any]:
    row = list(values)
    if len(row) < width:
        row.extend([""] * (width - len(row)))
    return row


class RowStore:
    """Base class; subclasses implement the storage primitives."""

    def __init__(self, name: str):
        self.name = name

    # ----- primitives -----
    def header(self) -> List[str]:
        raise NotImplementedError

    def set_header(self, columns: Sequence[str]) -> None:
        raise NotImplementedError

    def rows(self) -> List[List[Any]]:
        raise NotImplementedError

    def row(self, index: int) -> Optional[List[Any]]:
        raise NotImplementedError

    def append(self, values: Sequence[Any]) -> int:
        raise NotImplementedError

    def write(self, index: int, values: Sequence[Any]) -> None:
        raise NotImplementedError

    # ----- derived helpers -----
    def count(self) -> int:
        return len(self.rows())

    def column_index(self) -> Dict[str, int]:
        return {name: i for i, name in enumerate(self.header()) if name}

    def ensure_header(self, columns: Iterable[str]) -> List[str]:
        """Append any missing ``columns`` to the header; existing order is kept."""
        current = [c for c in self.header()]
        missing = [c for c in columns if c not in current]
        if missing or not current:
            current.extend(missing)
            self.set_header(current)
        return current

    def write_cells(self, index: int, cells: Mapping[str, Any]) -> None:
        existing = self.row(index)
        if existing is None:
            raise IndexError(f"{self.name}: row {index} does not exist")
        positions = self.column_index()
        values = _pad(existing, len(positions))
        for column, value in cells.items():
            if column not in positions:
                raise KeyError(f"{self.name}: column {column!r} not found")
            values[positions[column]] = value
        self.write(index, values)

    def records(self) -> List[tuple[int, Dict[str, Any]]]:
        """Return ``(row_number, {header: value})`` for every data row."""
        header = self.header()
        out = []
        for offset, values in enumerate(self.rows()):
            padded = _pad(values, len(header))
            out.append((FIRST_DATA_ROW + offset, dict(zip(header, padded))))
        return out

    def append_record(self, record: Mapping[str, Any]) -> int:
        header = self.header()
        return self.append([record.get(column, "") for column in header])


class InMemoryRowStore(RowStore):
    def __init__(self, name: str, header: Optional[Sequence[str]] = None):
        super().__init__(name)
        self._header: List[str] = list(header or [])
        self._rows: List[List[Any]] = []

    def header(self) -> List[str]:
        return list(self._header)

    def set_header(self, columns: Sequence[str]) -> None:
        self._header = list(columns)

    def rows(self) -> List[List[Any]]:
        return [list(r) for r in self._rows]

    def row(self, index: int) -> Optional[List[Any]]:
        offset = index - FIRST_DATA_ROW
        if offset < 0 or offset >= len(self._rows):
            return None
        return list(self._rows[offset])

    def append(self, values: Sequence[Any]) -> int:
        self._rows.append(_pad(values, len(self._header)))
        return FIRST_DATA_ROW + len(self._rows) - 1

    def write(self, index: int, values: Sequence[Any]) -> None:
        offset = index - FIRST_DATA_ROW
        if offset < 0 or offset >= len(self._rows):
            raise IndexError(f"{self.name}: row {index} does not exist")
        self._rows[offset] = _pad(values, len(self._header))


def _dump(values: Sequence[Any]) -> str:
    return json.dumps(list(values), ensure_ascii=False, default=str)


def _load(payload: Optional[str]) -> List[Any]:
    if not payload:
        return []
    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        return []
    return data if isinstance(data, list) else []


class SqlRowStore(RowStore):
    """SQLite-backed sheet: one ``SheetRow`` per data row."""

    def __init__(self, name: str, session_factory: Callable[[], Session]):
        super().__init__(name)
        self._session_factory = session_factory

    def header(self) -> List[str]:
        with self._session_factory() as session:
            row = session.get(SheetHeader, self.name)
            return [str(c) for c in _load(row.columns_json)] if row else []

    def set_header(self, columns: Sequence[str]) -> None:
        with self._session_factory() as session:
            row = session.get(SheetHeader, self.name)
            if row is None:
                row = SheetHeader(sheet=self.name)
            row.columns_json = _dump(columns)
            session.add(row)
            session.commit()

    def rows(self) -> List[List[Any]]:
        with self._session_factory() as session:
            stmt = (
                select(SheetRow)
                .where(SheetRow.sheet == self.name)
                .order_by(SheetRow.row_index.asc())
            )
            return [_load(r.cells_json) for r in session.exec(stmt)]

    def row(self, index: int) -> Optional[List[Any]]:
        with self._session_factory() as session:
            obj = session.get(SheetRow, (self.name, index))
            return _load(obj.cells_json) if obj else None

    def count(self) -> int:
        with self._session_factory() as session:
            stmt = select(func.count()).select_from(SheetRow).where(SheetRow.sheet == self.name)
            return int(session.exec(stmt).one())

    def append(self, values: Sequence[Any]) -> int:
        with self._session_factory() as session:
            stmt = select(func.max(SheetRow.row_index)).where(SheetRow.sheet == self.name)
            last = session.exec(stmt).one()
            index = (last or HEADER_ROW) + 1
            session.add(SheetRow(sheet=self.name, row_index=index, cells_json=_dump(values)))
            session.commit()
            return index

    def write(self, index: int, values: Sequence[Any]) -> None:
        with self._session_factory() as session:
            obj = session.get(SheetRow, (self.name, index))
            if obj is None:
                raise IndexError(f"{self.name}: row {index} does not exist")
            obj.cells_json = _dump(values)
            obj.updated_at = utc_now()
            session.add(obj)
            session.commit()


__all__ = [
    "FIRST_DATA_ROW",
    "HEADER_ROW",
    "InMemoryRowStore",
    "RowStore",
    "SqlRowStore",
]
