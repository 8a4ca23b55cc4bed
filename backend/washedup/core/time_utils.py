"""Timezone-aware clock helpers.

SQLite hands back naive datetimes even for ``DateTime(timezone=True)`` columns,
so every comparison against "now" goes through ``ensure_utc``.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def from_epoch_seconds(epoch: int | float) -> datetime:
    return datetime.fromtimestamp(epoch, tz=timezone.utc)
