import pytest

from core.settings import SheetNames
from models.task import TASK_COLUMNS
from storage.db import create_db_engine, init_db, session_factory
from storage.row_store import FIRST_DATA_ROW, InMemoryRowStore, SqlRowStore
from storage.workbook import memory_workbook, sqlite_workbook


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryRowStore("Sheet1")
    engine = create_db_engine(tmp_path / "rows.db")
    init_db(engine)
    return SqlRowStore("Sheet1", session_factory(engine))


def test_rows_are_numbered_like_a_sheet(store):
    store.ensure_header(["a", "b"])

    assert store.append(["1", "2"]) == FIRST_DATA_ROW
    assert store.append_record({"b": "y", "a": "x"}) == FIRST_DATA_ROW + 1
    assert store.count() == 2
    assert store.row(3) == ["x", "y"]
    assert store.row(1) is None
    assert store.row(10) is None
    assert store.records() == [(2, {"a": "1", "b": "2"}), (3, {"a": "x", "b": "y"})]


def test_ensure_header_appends_missing_columns_only(store):
    store.set_header(["b", "a"])

    header = store.ensure_header(["a", "c", "b"])

    assert header == ["b", "a", "c"]
    assert store.header() == ["b", "a", "c"]


def test_write_cells_by_header_name(store):
    store.ensure_header(["a", "b"])
    row = store.append(["1", "2"])

    store.write_cells(row, {"b": "changed"})

    assert store.row(row) == ["1", "changed"]
    with pytest.raises(KeyError):
        store.write_cells(row, {"zzz": 1})
    with pytest.raises(IndexError):
        store.write_cells(99, {"a": 1})
    with pytest.raises(IndexError):
        store.write(99, ["x"])


def test_sqlite_rows_survive_a_new_engine(tmp_path):
    path = tmp_path / "tasks.db"
    engine = create_db_engine(path)
    init_db(engine)
    sqlite_workbook(session_factory(engine)).tasks.append(["Persisted"])

    reopened = create_db_engine(path)
    book = sqlite_workbook(session_factory(reopened))

    assert book.tasks.header() == list(TASK_COLUMNS)
    assert book.tasks.row(FIRST_DATA_ROW)[0] == "Persisted"


def test_workbook_creates_every_table_header():
    book = memory_workbook(SheetNames(tasks="Aufgaben"))

    names = [store.name for store, _ in book.tables()]

    assert names[0] == "Aufgaben"
    assert len(names) == 8
    assert all(store.header() == list(columns) for store, columns in book.tables())
