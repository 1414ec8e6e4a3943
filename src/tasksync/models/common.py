"""Timestamp helpers shared by the models and the sync engine."""
from datetime import datetime, timezone

# Stand-in for a missing sync point: anything remote is newer than this.
EPOCH = datetime(1970, 1, 1)


def utcnow() -> datetime:
    """Naive UTC now, matching how SQLite hands datetimes back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
