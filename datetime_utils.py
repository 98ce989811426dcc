from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


UTC = timezone.utc


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _normalize_fraction(s: str) -> str:
    """Pad or trim fractional seconds to 6 digits."""

    digits = s[:6]
    if len(digits) < 6:
        digits = digits + "0" * (6 - len(digits))
    return digits


def parse_rfc3339(s: Optional[str]) -> Optional[datetime]:
    """Parse a RFC3339 string and return a timezone-aware UTC datetime."""

    if not s:
        return None

    value = s.strip()
    if not value:
        return None

    if value.endswith("Z"):
        value = value[:-1] + "+00:00"

    if "." in value:
        head, tail = value.split(".", 1)
        tz_sign = "+"
        tz_suffix = "00:00"
        if "+" in tail:
            frac, tz_suffix = tail.split("+", 1)
            tz_sign = "+"
        elif "-" in tail:
            frac, tz_suffix = tail.split("-", 1)
            tz_sign = "-"
        else:
            frac = tail
        frac = _normalize_fraction(frac)
        value = f"{head}.{frac}{tz_sign}{tz_suffix}"
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    else:
        dt = dt.astimezone(UTC)
    return dt


def to_rfc3339_utc(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime to RFC3339 in UTC."""

    if dt is None:
        return None
    value = ensure_utc(dt)
    if value is None:
        return None
    return value.replace(microsecond=0).isoformat().replace("+00:00", "Z")


# ---------- sheet cells ----------
def parse_date_cell(value) -> Optional[date]:
    """Parse a date cell: ISO ``YYYY-MM-DD``, ``DD.MM.YYYY`` or a date object.

    Raises ``ValueError`` for non-empty text that is not a date.
    """

    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    # Sheets hands back "2024-04-01T00:00:00.000Z" for date-typed cells
    if "T" in text:
        text = text.split("T", 1)[0]
    for fmt in ("%Y-%m-%d", "%d.%m.%Y", "%Y/%m/%d"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unrecognised date: {value!r}")


def parse_time_cell(value) -> Optional[time]:
    """Parse ``HH:MM`` (also ``H:MM``, ``HH.MM`` and ``HH:MM:SS``)."""

    if value is None:
        return None
    if isinstance(value, datetime):
        return time(value.hour, value.minute)
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    text = str(value).strip()
    if not text:
        return None
    for fmt in ("%H:%M", "%H.%M", "%H:%M:%S"):
        try:
            parsed = datetime.strptime(text, fmt)
            return time(parsed.hour, parsed.minute)
        except ValueError:
            continue
    raise ValueError(f"Unrecognised time: {value!r}")


def format_date(value: Optional[date]) -> str:
    return value.isoformat() if value else ""


def format_time(value: Optional[time]) -> str:
    return value.strftime("%H:%M") if value else ""


def resolve_zone(name: Optional[str], fallback: str = "UTC") -> ZoneInfo:
    for candidate in (name, fallback, "UTC"):
        if not candidate:
            continue
        try:
            return ZoneInfo(candidate)
        except (ZoneInfoNotFoundError, ValueError):
            continue
    return ZoneInfo("UTC")


__all__ = [
    "UTC",
    "ensure_utc",
    "format_date",
    "format_time",
    "parse_date_cell",
    "parse_rfc3339",
    "parse_time_cell",
    "resolve_zone",
    "to_rfc3339_utc",
    "utc_now",
]
