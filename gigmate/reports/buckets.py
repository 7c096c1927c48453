"""Net profit over time: day, week and month buckets for charts."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime, timedelta

from gigmate.core.money import shift_metrics
from gigmate.core.periods import add_months, as_aware, local_date, start_of_month, start_of_week
from gigmate.core.types import ChartMode, RateSettings, ShiftRecord, TimeBucket

logger = logging.getLogger(__name__)

DEFAULT_WEEKS = 8
DEFAULT_MONTHS = 12


def day_label(day: date) -> str:
    return f"{day:%a} {day.day}"


def week_label(week_start: date) -> str:
    week_end = week_start + timedelta(days=6)
    return f"{week_start:%b} {week_start.day}–{week_end:%b} {week_end.day}"


def month_label(month_start: date) -> str:
    return f"{month_start:%b %Y}"


def bucket_shifts(
    records: Iterable[ShiftRecord],
    settings: RateSettings | None,
    *,
    mode: ChartMode | str,
    now: datetime,
    week_starts_on: int = 0,
    weeks: int = DEFAULT_WEEKS,
    months: int = DEFAULT_MONTHS,
) -> list[TimeBucket]:
    """Accumulate net profit and hours per period.

    Day mode always returns the seven days of the current week, empty or not.
    Week and month modes only create a bucket once a record lands in it.
    Records without a start time are ignored.
    """
    mode = ChartMode(mode)
    if settings is None:
        logger.debug("bucketing without rate settings; using zero rates")

    now = as_aware(now)
    tz = now.tzinfo
    today = local_date(now, tz)
    buckets: dict[date, TimeBucket] = {}

    if mode is ChartMode.DAY:
        first = start_of_week(today, week_starts_on)
        for offset in range(7):
            day = first + timedelta(days=offset)
            buckets[day] = TimeBucket(period_start=day, label=day_label(day))
        lower, upper = first, first + timedelta(days=7)
    elif mode is ChartMode.WEEK:
        current = start_of_week(today, 0)
        lower, upper = current - timedelta(weeks=weeks - 1), current + timedelta(weeks=1)
    else:
        current = start_of_month(today)
        lower, upper = add_months(current, -(months - 1)), add_months(current, 1)

    for record in records:
        if record.started_at is None:
            continue
        started = local_date(record.started_at, tz)
        if not lower <= started < upper:
            continue

        key = _bucket_key(started, mode)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = TimeBucket(period_start=key, label=_label(key, mode))
            buckets[key] = bucket

        metrics = shift_metrics(record, settings)
        bucket.net_cents += metrics.net_cents
        bucket.hours = round(bucket.hours + metrics.hours, 2)

    return sorted(buckets.values(), key=lambda b: b.period_start)


def _bucket_key(day: date, mode: ChartMode) -> date:
    if mode is ChartMode.DAY:
        return day
    if mode is ChartMode.WEEK:
        return start_of_week(day, 0)
    return start_of_month(day)


def _label(key: date, mode: ChartMode) -> str:
    if mode is ChartMode.DAY:
        return day_label(key)
    if mode is ChartMode.WEEK:
        return week_label(key)
    return month_label(key)
