"""
Monthly cycle keys.

A cycle key names a calendar month ("2024-03"). Comparing an obligation's
last settlement key with the key for today tells whether it was already
handled this month. Keys sort in the same order as the dates they come from.
"""

import calendar
from datetime import date, datetime, time
from typing import Callable, Optional, Union


Clock = Callable[[], datetime]
DateLike = Union[date, datetime]


def key_for(value: DateLike) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def is_current(key: Optional[str], now: Optional[datetime] = None) -> bool:
    """True iff key names the month of now. None or empty is never current."""
    if not key:
        return False
    return key == key_for(now or datetime.now())


def previous_key(value: DateLike) -> str:
    """Cycle key of the month before value."""
    if value.month == 1:
        return f"{value.year - 1:04d}-12"
    return f"{value.year:04d}-{value.month - 1:02d}"


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def clamp_due_day(day: int, reference: DateLike) -> int:
    """
    Fit a due day into the month of reference.

    Only used to suggest a date. The stored due day is never changed.
    """
    return min(max(day, 1), days_in_month(reference.year, reference.month))


def suggested_occurrence_date(due_day: int, reference: DateLike) -> date:
    """Default date offered when registering a settlement in reference's month."""
    return date(reference.year, reference.month, clamp_due_day(due_day, reference))


def start_of_day(value: DateLike) -> datetime:
    return datetime.combine(_as_date(value), time.min, tzinfo=_tz(value))


def end_of_day(value: DateLike) -> datetime:
    """23:59:59.999 of the same calendar day."""
    return datetime.combine(_as_date(value), time(23, 59, 59, 999000), tzinfo=_tz(value))


def month_bounds(year: int, month: int) -> tuple[datetime, datetime]:
    """First and last instant of a calendar month."""
    return (
        start_of_day(date(year, month, 1)),
        end_of_day(date(year, month, days_in_month(year, month))),
    )


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def _tz(value: DateLike):
    return value.tzinfo if isinstance(value, datetime) else None
