"""
Timezone helpers.

The project uses:
- UTC for everything stored in the database
- Asia/Tokyo for operator-facing dates (as-of snapshots, roster keys)

Conventions:
- `now_utc()`: for storage and window math
- `now_tokyo()`: for business dates
- `to_utc(dt)`: normalize any datetime before querying
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo


TZ_TOKYO = ZoneInfo("Asia/Tokyo")
TZ_UTC = timezone.utc


def now_utc() -> datetime:
    """
    Returns the current datetime in UTC (timezone-aware).

    Returns:
        datetime in UTC with tzinfo
    """
    return datetime.now(TZ_UTC)


def now_tokyo() -> datetime:
    """Returns the current datetime in Asia/Tokyo (timezone-aware)."""
    return datetime.now(TZ_TOKYO)


def to_utc(dt: datetime) -> datetime:
    """
    Converts a datetime to UTC.

    Args:
        dt: datetime to convert (naive values are assumed to be UTC)

    Returns:
        datetime in UTC
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=TZ_UTC)
    return dt.astimezone(TZ_UTC)


def to_tokyo(dt: datetime) -> datetime:
    """Converts a datetime to Asia/Tokyo (naive values are assumed to be UTC)."""
    return to_utc(dt).astimezone(TZ_TOKYO)


def days_before(anchor: datetime, days: float) -> datetime:
    """Returns `anchor - days` normalized to UTC."""
    return to_utc(anchor) - timedelta(days=days)


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """
    Parses an ISO-8601 timestamp as returned by PostgREST.

    Args:
        value: ISO string (may end in 'Z') or None

    Returns:
        timezone-aware datetime in UTC, or None
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return to_utc(value)
    return to_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
