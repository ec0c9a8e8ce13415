"""
Time helpers.

All timestamps are handled in UTC. Some drivers (SQLite in tests) hand back
naive datetimes for timezone-aware columns, so values read from the database
go through `ensure_utc` before being compared with `utcnow()`.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def month_start(moment: datetime) -> datetime:
    """First instant of the month containing `moment`."""
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def previous_month_start(moment: datetime) -> datetime:
    first = month_start(moment)
    if first.month == 1:
        return first.replace(year=first.year - 1, month=12)
    return first.replace(month=first.month - 1)
