"""Timezone helpers shared by the quota and trial logic."""
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_different_month(last: Optional[datetime], now: datetime) -> bool:
    """True when ``last`` falls in another calendar month or year than ``now``."""
    if last is None:
        return True
    last = ensure_utc(last)
    now = ensure_utc(now)
    return (last.year, last.month) != (now.year, now.month)
