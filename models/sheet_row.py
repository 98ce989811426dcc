"""SQLModel tables backing the local SQLite row store."""

from __future__ import annotations

from datetime import datetime

from sqlmodel import Field, SQLModel

from datetime_utils import utc_now


class SheetHeader(SQLModel, table=True):
    """Header row of one logical sheet, stored as a JSON list of names."""

    sheet: str = Field(primary_key=True)
    columns_json: str = "[]"


class SheetRow(SQLModel, table=True):
    """One data row; ``row_index`` is 1-based like the sheet it mirrors."""

    sheet: str = Field(primary_key=True)
    row_index: int = Field(primary_key=True)
    cells_json: str = "[]"
    updated_at: datetime = Field(default_factory=utc_now)


__all__ = ["SheetHeader", "SheetRow"]
