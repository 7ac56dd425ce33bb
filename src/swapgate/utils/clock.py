"""Time helpers.

All timestamps are timezone-aware UTC. SQLite hands back naive datetimes for
DateTime(timezone=True) columns, so values read from the database go through
as_utc() before being compared with chain timestamps.
"""

from datetime import datetime, timezone
from typing import Callable, Optional, Union

# A clock is any zero-argument callable returning the current UTC time.
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def from_timestamp(seconds: Union[int, float, str]) -> datetime:
    """Convert a unix timestamp (as reported by indexers) to aware UTC."""
    return datetime.fromtimestamp(float(seconds), tz=timezone.utc)
