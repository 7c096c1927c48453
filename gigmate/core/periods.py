"""Calendar arithmetic used by the bucketing, insight and digest code.

Local dates are always taken in the timezone of the reference instant passed
in as ``now``, so callers decide the user's calendar by choosing that tz.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta, tzinfo

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def as_aware(moment: datetime) -> datetime:
    """Treat a naive reference instant as UTC, the same way stored timestamps are read."""
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=UTC)


def local_date(moment: datetime, tz: tzinfo | None) -> date:
    return moment.astimezone(tz).date() if tz is not None else moment.date()


def start_of_day(day: date, tz: tzinfo | None) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def end_of_day(day: date, tz: tzinfo | None) -> datetime:
    return datetime.combine(day, time.max, tzinfo=tz)


def start_of_week(day: date, week_starts_on: int = 0) -> date:
    """First day of the week containing ``day``; 0 = Monday ... 6 = Sunday."""
    offset = (day.weekday() - week_starts_on) % 7
    return day - timedelta(days=offset)


def start_of_month(day: date) -> date:
    return day.replace(day=1)


def add_months(day: date, months: int) -> date:
    """Shift a first-of-month date by whole months."""
    index = day.year * 12 + (day.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def day_range(start: date, end: date, tz: tzinfo | None) -> tuple[datetime, datetime]:
    """Half-open instant range covering local days ``start`` up to (not including) ``end``."""
    return start_of_day(start, tz), start_of_day(end, tz)


def in_range(moment: datetime, bounds: tuple[datetime, datetime]) -> bool:
    lower, upper = bounds
    return lower <= moment < upper
