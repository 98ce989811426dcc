from __future__ import annotations

from typing import Dict, Optional

from storage.row_store import RowStore


class SyncMetaStore:
    """Key/value rows of the ``SyncMeta`` table."""

    def __init__(self, store: RowStore):
        self.store = store

    def all(self) -> Dict[str, str]:
        out = {}
        for _, rec in self.store.records():
            key = str(rec.get("key") or "").strip()
            if key:
                out[key] = "" if rec.get("value") is None else str(rec.get("value"))
        return out

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.all().get(key, default)

    def set(self, key: str, value) -> None:
        text = "" if value is None else str(value)
        for row, rec in self.store.records():
            if str(rec.get("key") or "").strip() == key:
                self.store.write_cells(row, {"value": text})
                return
        self.store.append_record({"key": key, "value": text})

    def update(self, values: Dict[str, object]) -> None:
        for key, value in values.items():
            self.set(key, value)


__all__ = ["SyncMetaStore"]
