from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side clock: current UTC time, tz-naive (the canonical storage form)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 string into a UTC-naive datetime.

    - None / "" -> None
    - naive input is taken as UTC
    - "...Z" or "...+/-HH:MM" is shifted to UTC and tzinfo stripped
    - a bare date ("2026-10-19") is midnight UTC
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def normalize_datetime(value) -> Optional[datetime]:
    """Accept datetime or ISO string filters; return UTC-naive or None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, str):
        return parse_iso_datetime(value)
    raise ValueError(f"invalid datetime: {value!r}")


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Serialize as ISO-8601 with trailing 'Z'; naive values are UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def epoch_millis(dt: Optional[datetime] = None) -> int:
    """Milliseconds since the epoch for a UTC-naive datetime (default: now)."""
    dt = dt or utcnow()
    return int(dt.replace(tzinfo=timezone.utc).timestamp() * 1000)
