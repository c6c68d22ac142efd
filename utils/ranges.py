import calendar
from datetime import date, datetime, time, timedelta, tzinfo
from enum import Enum
from typing import Optional, Tuple

from main import end_of_day

Bounds = Tuple[Optional[datetime], Optional[datetime]]


class Period(str, Enum):
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    ALL = "all"


def day_bounds(day: date, tz: Optional[tzinfo] = None) -> Tuple[datetime, datetime]:
    start = datetime.combine(day, time(0, 0), tzinfo=tz)
    return start, end_of_day(start)


def week_bounds(day: date, tz: Optional[tzinfo] = None) -> Tuple[datetime, datetime]:
    monday = day - timedelta(days=day.weekday())
    sunday = monday + timedelta(days=6)
    return day_bounds(monday, tz)[0], day_bounds(sunday, tz)[1]


def month_bounds(year: int, month: int, tz: Optional[tzinfo] = None) -> Tuple[datetime, datetime]:
    last_day = calendar.monthrange(year, month)[1]
    return day_bounds(date(year, month, 1), tz)[0], day_bounds(date(year, month, last_day), tz)[1]


def year_bounds(year: int, tz: Optional[tzinfo] = None) -> Tuple[datetime, datetime]:
    return day_bounds(date(year, 1, 1), tz)[0], day_bounds(date(year, 12, 31), tz)[1]


def period_bounds(period, reference: datetime) -> Bounds:
    """Range of ``period`` containing ``reference``, in reference's zone.

    ``all`` is unbounded on both sides.
    """
    try:
        period = Period(period)
    except ValueError:
        raise ValueError(f"Unknown period: {period!r}") from None

    tz = reference.tzinfo
    today = reference.date()
    if period == Period.TODAY:
        return day_bounds(today, tz)
    if period == Period.WEEK:
        return week_bounds(today, tz)
    if period == Period.MONTH:
        return month_bounds(today.year, today.month, tz)
    if period == Period.YEAR:
        return year_bounds(today.year, tz)
    return None, None
