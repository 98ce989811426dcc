from datetime import date, datetime, time, timezone

import pytest

from datetime_utils import (
    format_date,
    format_time,
    parse_date_cell,
    parse_rfc3339,
    parse_time_cell,
    resolve_zone,
    to_rfc3339_utc,
)


def test_parse_date_cell_formats():
    assert parse_date_cell("2023-12-01") == date(2023, 12, 1)
    assert parse_date_cell("01.12.2023") == date(2023, 12, 1)
    assert parse_date_cell("2023-12-01T00:00:00.000Z") == date(2023, 12, 1)
    assert parse_date_cell(datetime(2023, 12, 1, 8, 30)) == date(2023, 12, 1)
    assert parse_date_cell("  ") is None
    with pytest.raises(ValueError):
        parse_date_cell("tomorrow")


def test_parse_time_cell_formats():
    assert parse_time_cell("9:05") == time(9, 5)
    assert parse_time_cell("09.05") == time(9, 5)
    assert parse_time_cell("09:05:59") == time(9, 5)
    assert parse_time_cell(None) is None
    with pytest.raises(ValueError):
        parse_time_cell("25:00")


def test_formatting_is_empty_for_missing_values():
    assert format_date(None) == ""
    assert format_time(time(7, 0)) == "07:00"


def test_rfc3339_round_trip_in_utc():
    parsed = parse_rfc3339("2024-03-01T14:00:00.5+02:00")
    assert parsed == datetime(2024, 3, 1, 12, 0, 0, 500000, tzinfo=timezone.utc)
    assert to_rfc3339_utc(parsed) == "2024-03-01T12:00:00Z"
    assert parse_rfc3339("garbage") is None


def test_resolve_zone_falls_back():
    assert resolve_zone("Europe/Berlin").key == "Europe/Berlin"
    assert resolve_zone("Nowhere/City", "Asia/Tokyo").key == "Asia/Tokyo"
    assert resolve_zone(None, "").key == "UTC"
