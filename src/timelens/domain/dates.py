"""Week and day boundary arithmetic in local time.

A WeekAnchor is a naive local ``datetime`` at Monday 00:00 of the week
containing some moment. Timestamps crossing the remote boundary are
integer Unix seconds (UTC); conversion happens only through
:func:`to_unix` / :func:`from_unix`.

INVARIANT: ``week_start(week_start(d)) == week_start(d)``.
"""

from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta

DAYS_PER_WEEK = 7


def _as_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time())


def start_of_day(value: date | datetime) -> datetime:
    """Midnight of the local day containing *value*."""
    return _as_datetime(value).replace(hour=0, minute=0, second=0, microsecond=0)


def week_start(value: date | datetime) -> datetime:
    """Normalize *value* to the Monday 00:00 of its week (Monday rule).

    Sunday belongs to the week that started six days earlier.

    Examples:
        >>> week_start(datetime(2024, 5, 15, 13, 30))  # a Wednesday
        datetime.datetime(2024, 5, 13, 0, 0)
        >>> week_start(datetime(2024, 5, 19, 23, 59))  # a Sunday
        datetime.datetime(2024, 5, 13, 0, 0)
    """
    day = start_of_day(value)
    return day - timedelta(days=day.weekday())


def is_week_anchor(value: datetime) -> bool:
    """Whether *value* is already normalized."""
    return week_start(value) == value


def shift_weeks(anchor: datetime, weeks: int) -> datetime:
    """Move *anchor* by a whole number of weeks, re-normalizing the result."""
    return week_start(anchor + timedelta(days=DAYS_PER_WEEK * weeks))


def same_week(a: date | datetime, b: date | datetime) -> bool:
    return week_start(a) == week_start(b)


def is_current_week(value: date | datetime, *, now: datetime | None = None) -> bool:
    """Whether *value* falls in the week containing *now* (default: the wall clock)."""
    return same_week(value, now or datetime.now())


def to_unix(value: datetime) -> int:
    """Local (naive) or aware datetime → integer Unix seconds, floored."""
    return math.floor(value.timestamp())


def from_unix(seconds: int) -> datetime:
    """Integer Unix seconds → naive local datetime."""
    return datetime.fromtimestamp(seconds)


def week_range(value: date | datetime) -> tuple[int, int]:
    """Unix bounds ``(monday 00:00:00, sunday 23:59:59)`` of the week of *value*."""
    monday = week_start(value)
    sunday_end = monday + timedelta(days=DAYS_PER_WEEK - 1, hours=23, minutes=59, seconds=59)
    return to_unix(monday), to_unix(sunday_end)


def day_range(value: date | datetime) -> tuple[int, int]:
    """Unix bounds ``(00:00:00, 23:59:59)`` of the local day of *value*."""
    start = start_of_day(value)
    end = start + timedelta(hours=23, minutes=59, seconds=59)
    return to_unix(start), to_unix(end)
