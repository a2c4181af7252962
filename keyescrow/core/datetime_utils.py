"""Timezone-aware datetime utilities.

Database columns store naive datetimes that represent UTC, matching the
``DateTime()`` columns used across the models. Wire timestamps are epoch
seconds.
"""

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


def utc_now_naive() -> datetime:
    """Return current UTC time as naive datetime (for DB compatibility)."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_utc_naive(dt: datetime | None) -> datetime | None:
    """Convert a datetime to naive UTC datetime.

    Args:
        dt: Datetime to convert (can be aware or naive)

    Returns:
        Naive datetime in UTC, or None if input is None
    """
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC).replace(tzinfo=None)
    return dt


def epoch_after(seconds: int, now: datetime | None = None) -> int:
    """Unix timestamp ``seconds`` after ``now`` (defaults to the current time)."""
    base = now or utc_now()
    if base.tzinfo is None:
        base = base.replace(tzinfo=UTC)
    return int((base + timedelta(seconds=seconds)).timestamp())
