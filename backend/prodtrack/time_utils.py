from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with millisecond precision and trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc)
    return dt_utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso_day(value: Optional[str]) -> Optional[date]:
    """'YYYY-MM-DD' -> date. None / "" -> None. Raises ValueError on bad input."""
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None
    # Tolerate a full timestamp and keep only the day part
    return date.fromisoformat(s[:10])


def today_iso() -> str:
    return utcnow().date().isoformat()


def epoch_millis(dt: Optional[datetime] = None) -> int:
    dt = dt or utcnow()
    return int(dt.replace(tzinfo=timezone.utc).timestamp() * 1000)
