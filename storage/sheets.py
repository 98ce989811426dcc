"""Google Sheets backed row store (Sheets API v4, values collection)."""
from __future__ import annotations

import logging
import re
from typing import Any, List, Optional, Sequence

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from storage.row_store import FIRST_DATA_ROW, HEADER_ROW, RowStore


logger = logging.getLogger("tasksync.sheets")

_UPDATED_RANGE_RE = re.compile(r"![A-Z]+(\d+)")


def column_letter(position: int) -> str:
    """1 -> A, 27 -> AA."""
    if position < 1:
        raise ValueError("column position is 1-based")
    letters = ""
    while position:
        position, rem = divmod(position - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


def build_sheets_service(creds) -> Any:
    return build("sheets", "v4", credentials=creds, cache_discovery=False)


class GoogleSheetsRowStore(RowStore):
    def __init__(self, name: str, service, spreadsheet_id: str):
        super().__init__(name)
        self.service = service
        self.spreadsheet_id = spreadsheet_id
        self._header_cache: Optional[List[str]] = None

    def _range(self, a1: str) -> str:
        return f"'{self.name}'!{a1}"

    def _values(self):
        return self.service.spreadsheets().values()

    def _get(self, a1: str) -> List[List[Any]]:
        try:
            res = self._values().get(spreadsheetId=self.spreadsheet_id, range=self._range(a1)).execute()
        except HttpError as exc:
            status = getattr(exc, "resp", None) and getattr(exc.resp, "status", None)
            if status and int(status) == 400:
                # missing tab
                logger.warning("Sheet %s not readable: %s", self.name, exc)
                return []
            raise
        return res.get("values", [])

    def header(self) -> List[str]:
        if self._header_cache is None:
            values = self._get(f"{HEADER_ROW}:{HEADER_ROW}")
            self._header_cache = [str(c) for c in values[0]] if values else []
        return list(self._header_cache)

    def set_header(self, columns: Sequence[str]) -> None:
        self._values().update(
            spreadsheetId=self.spreadsheet_id,
            range=self._range(f"A{HEADER_ROW}"),
            valueInputOption="RAW",
            body={"values": [list(columns)]},
        ).execute()
        self._header_cache = list(columns)

    def _last_column(self) -> str:
        return column_letter(max(len(self.header()), 1))

    def rows(self) -> List[List[Any]]:
        return self._get(f"A{FIRST_DATA_ROW}:{self._last_column()}")

    def row(self, index: int) -> Optional[List[Any]]:
        if index < FIRST_DATA_ROW:
            return None
        values = self._get(f"A{index}:{self._last_column()}{index}")
        if not values:
            # Sheets omits trailing empty rows; distinguish blank from missing
            return [] if index < FIRST_DATA_ROW + self.count() else None
        return values[0]

    def append(self, values: Sequence[Any]) -> int:
        res = self._values().append(
            spreadsheetId=self.spreadsheet_id,
            range=self._range(f"A{HEADER_ROW}"),
            valueInputOption="RAW",
            insertDataOption="INSERT_ROWS",
            body={"values": [[_cell(v) for v in values]]},
        ).execute()
        updated = (res.get("updates") or {}).get("updatedRange", "")
        match = _UPDATED_RANGE_RE.search(updated)
        if match:
            return int(match.group(1))
        return FIRST_DATA_ROW + self.count() - 1

    def write(self, index: int, values: Sequence[Any]) -> None:
        self._values().update(
            spreadsheetId=self.spreadsheet_id,
            range=self._range(f"A{index}"),
            valueInputOption="RAW",
            body={"values": [[_cell(v) for v in values]]},
        ).execute()

    def write_cells(self, index, cells) -> None:
        positions = self.column_index()
        data = []
        for column, value in cells.items():
            if column not in positions:
                raise KeyError(f"{self.name}: column {column!r} not found")
            a1 = f"{column_letter(positions[column] + 1)}{index}"
            data.append({"range": self._range(a1), "values": [[_cell(value)]]})
        if not data:
            return
        self._values().batchUpdate(
            spreadsheetId=self.spreadsheet_id,
            body={"valueInputOption": "RAW", "data": data},
        ).execute()


def _cell(value: Any) -> Any:
    # RAW input: ids starting with "-" or "+" must not be read as formulas
    if value is None:
        return ""
    if isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


__all__ = ["GoogleSheetsRowStore", "build_sheets_service", "column_letter"]
