"""Time helpers.

All timestamps are stored as naive UTC datetimes so SQLite and PostgreSQL
round-trip them identically.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def isoformat_z(value: datetime) -> str:
    """Format a naive UTC datetime as ISO 8601 with a trailing Z."""
    return value.isoformat() + "Z"
