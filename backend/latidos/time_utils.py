from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    # Normalize to UTC-naive
    if dt.tzinfo is None:
        # interpret naive as UTC
        return dt.replace(tzinfo=None)

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def _is_bare_date(value: str) -> bool:
    return len(value.strip()) == 10


def parse_range_start(value: Optional[str]) -> Optional[datetime]:
    """Start of a reporting range; a bare date means midnight of that day."""
    return parse_iso_datetime(value)


def parse_range_end(value: Optional[str]) -> Optional[datetime]:
    """
    End of a reporting range.

    A bare date ("2026-03-31") is inclusive through the last microsecond
    of that day; a full datetime is used as given.
    """
    if value is None or not value.strip():
        return None
    if _is_bare_date(value):
        day = date.fromisoformat(value.strip())
        return datetime.combine(day + timedelta(days=1), time.min) - timedelta(microseconds=1)
    return parse_iso_datetime(value)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")
