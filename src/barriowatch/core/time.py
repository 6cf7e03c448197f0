"""
Time parsing and timezone normalization.

Store rows carry ISO-8601 timestamps (often with a trailing `Z`). BarrioWatch treats all
timestamps as timezone-aware datetimes so newest-first ordering never mixes naive and
aware values.
"""

from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_tz(dt: datetime, tz: str = "UTC") -> datetime:
    """Ensure `dt` has tzinfo; attach `tz` if naive."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=ZoneInfo(tz))
    return dt


def parse_datetime(value: str, tz: str = "UTC") -> datetime:
    """Parse ISO-8601 datetime string and ensure tzinfo is present.

    Accepts a trailing `Z` (UTC) and converts it to `+00:00` for `fromisoformat`.
    """
    value = value.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return ensure_tz(datetime.fromisoformat(value), tz)


def isoformat_z(dt: datetime) -> str:
    """Render an aware datetime as UTC ISO-8601 with millisecond precision and `Z`."""
    return ensure_tz(dt).astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
