import httplib2
import pytest
from googleapiclient.errors import HttpError

from storage.sheets import GoogleSheetsRowStore, column_letter


class _Request:
    def __init__(self, result=None, error=None):
        self._result = result
        self._error = error

    def execute(self):
        if self._error is not None:
            raise self._error
        return self._result


class FakeValues:
    """Just enough of ``spreadsheets().values()`` to drive the row store."""

    def __init__(self, grid):
        self.grid = grid
        self.calls = []
        self.missing_tab = False

    def get(self, spreadsheetId, range):
        self.calls.append(("get", range))
        if self.missing_tab:
            return _Request(error=HttpError(httplib2.Response({"status": "400"}), b"{}"))
        a1 = range.split("!", 1)[1]
        start, _, end = a1.partition(":")
        first = int("".join(ch for ch in start if ch.isdigit()) or 1)
        last_digits = "".join(ch for ch in end if ch.isdigit())
        last = int(last_digits) if last_digits else len(self.grid)
        return _Request({"values": self.grid[first - 1:last]} if self.grid[first - 1:last] else {})

    def update(self, spreadsheetId, range, valueInputOption, body):
        self.calls.append(("update", range, valueInputOption, body["values"]))
        row = int("".join(ch for ch in range.split("!", 1)[1] if ch.isdigit()))
        while len(self.grid) < row:
            self.grid.append([])
        self.grid[row - 1] = list(body["values"][0])
        return _Request({})

    def append(self, spreadsheetId, range, valueInputOption, insertDataOption, body):
        self.calls.append(("append", valueInputOption, body["values"]))
        self.grid.append(list(body["values"][0]))
        row = len(self.grid)
        return _Request({"updates": {"updatedRange": f"'Tasks'!A{row}:C{row}"}})

    def batchUpdate(self, spreadsheetId, body):
        self.calls.append(("batchUpdate", body))
        return _Request({})


class FakeSheetsService:
    def __init__(self, grid):
        self.values_api = FakeValues(grid)

    def spreadsheets(self):
        return self

    def values(self):
        return self.values_api


@pytest.fixture()
def service():
    return FakeSheetsService([["Subject", "Start Date", "_Task ID"], ["Rent", "2024-04-01", "-Nabc"]])


def test_column_letter():
    assert column_letter(1) == "A"
    assert column_letter(26) == "Z"
    assert column_letter(27) == "AA"
    with pytest.raises(ValueError):
        column_letter(0)


def test_reads_header_and_rows(service):
    store = GoogleSheetsRowStore("Tasks", service, "sheet-id")

    assert store.header() == ["Subject", "Start Date", "_Task ID"]
    assert store.records() == [(2, {"Subject": "Rent", "Start Date": "2024-04-01", "_Task ID": "-Nabc"})]
    assert store.row(2) == ["Rent", "2024-04-01", "-Nabc"]
    assert store.row(7) is None
    # header is fetched once
    assert [c for c in service.values_api.calls if c[1] == "'Tasks'!1:1"] == [("get", "'Tasks'!1:1")]


def test_append_returns_sheet_row_and_writes_raw(service):
    store = GoogleSheetsRowStore("Tasks", service, "sheet-id")

    row = store.append_record({"Subject": "Gym", "_Task ID": "-Nxyz", "Start Date": None})

    assert row == 3
    kind, option, values = service.values_api.calls[-1]
    assert (kind, option) == ("append", "RAW")
    assert values == [["Gym", "", "-Nxyz"]]


def test_write_cells_batches_a1_ranges(service):
    store = GoogleSheetsRowStore("Tasks", service, "sheet-id")

    store.write_cells(2, {"_Task ID": "-Nnew", "Subject": True})

    _, body = service.values_api.calls[-1]
    assert body["valueInputOption"] == "RAW"
    assert body["data"] == [
        {"range": "'Tasks'!C2", "values": [["-Nnew"]]},
        {"range": "'Tasks'!A2", "values": [[True]]},
    ]
    with pytest.raises(KeyError):
        store.write_cells(2, {"Nope": 1})


def test_missing_tab_reads_as_empty(service):
    service.values_api.missing_tab = True
    store = GoogleSheetsRowStore("Ghost", service, "sheet-id")

    assert store.header() == []
    assert store.rows() == []
