from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current UTC time.

    Wrapped so services can take it as an injectable clock.
    """
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo); convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_millis(value: datetime) -> int:
    """Epoch milliseconds for a datetime (naive values are taken as UTC)."""
    return int(as_utc(value).timestamp() * 1000)
