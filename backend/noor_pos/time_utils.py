from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def days_ago(days: int) -> datetime:
    """UTC-naive cutoff ``days`` before now, used by report windows."""
    return utcnow() - timedelta(days=days)


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """
    Parse a ``YYYY-MM-DD`` string (purchase dates, alteration due dates).

    - None / "" -> None
    - A full ISO datetime is accepted and truncated to its date part.
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None
    if "T" in s:
        s = s.split("T", 1)[0]
    return date.fromisoformat(s)


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
