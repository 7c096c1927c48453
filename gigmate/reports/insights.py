"""Comparative statistics over a user's shifts.

Each reducer is independent and returns ``None`` when nothing qualifies, so
callers can treat "no insight yet" as a normal outcome. Ties always go to the
first candidate encountered.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date, datetime, timedelta, tzinfo
from enum import Enum

from pydantic import BaseModel

from gigmate.core.money import effective_hourly_rate_cents, round_half_up, shift_metrics
from gigmate.core.periods import (
    WEEKDAY_NAMES,
    add_months,
    as_aware,
    day_range,
    in_range,
    local_date,
    start_of_month,
    start_of_week,
)
from gigmate.core.types import Platform, RateSettings, Scope, ShiftMetrics, ShiftRecord

TRAILING_DAYS = 30


class Totals(BaseModel):
    count: int
    net_cents: int
    hours: float
    average_hourly_cents: int


class BestShift(BaseModel):
    record: ShiftRecord
    net_cents: int
    day: date | None


class WeekOverWeek(BaseModel):
    current_net_cents: int
    previous_net_cents: int
    diff_cents: int
    percent: float | None


class PlatformNet(BaseModel):
    platform: Platform
    net_cents: int


class WeekdayPattern(BaseModel):
    weekday: int
    label: str
    hourly_cents: int
    hours: float


class TimeWindow(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    LATE_NIGHT = "late_night"

    @property
    def label(self) -> str:
        return TIME_WINDOW_LABELS[self]


TIME_WINDOW_LABELS = {
    TimeWindow.MORNING: "Morning (5–11 AM)",
    TimeWindow.AFTERNOON: "Afternoon (11 AM–5 PM)",
    TimeWindow.EVENING: "Evening (5–10 PM)",
    TimeWindow.LATE_NIGHT: "Late night (10 PM–5 AM)",
}


class TimeWindowSlot(BaseModel):
    window: TimeWindow
    day: date


class TimeWindowPattern(BaseModel):
    window: TimeWindow
    label: str
    hourly_cents: int
    hours: float


class PlatformHourly(BaseModel):
    platform: Platform
    hourly_cents: int
    hours: float


class Insights(BaseModel):
    scope: Scope
    totals: Totals | None
    best_shift: BestShift | None
    week_over_week: WeekOverWeek | None
    top_platform_this_month: PlatformNet | None


class Patterns(BaseModel):
    days: int
    best_weekday: WeekdayPattern | None
    best_time_window: TimeWindowPattern | None
    best_weekend_platform: PlatformHourly | None


# -- record selection ---------------------------------------------------------


def _with_metrics(
    records: Iterable[ShiftRecord], settings: RateSettings | None
) -> list[tuple[ShiftRecord, ShiftMetrics]]:
    return [(record, shift_metrics(record, settings)) for record in records]


def current_week_bounds(now: datetime, week_starts_on: int = 0) -> tuple[datetime, datetime]:
    now = as_aware(now)
    first = start_of_week(local_date(now, now.tzinfo), week_starts_on)
    return day_range(first, first + timedelta(days=7), now.tzinfo)


def _started_within(records: Iterable[ShiftRecord], bounds: tuple[datetime, datetime]) -> list[ShiftRecord]:
    return [r for r in records if r.started_at is not None and in_range(r.started_at, bounds)]


def scope_records(
    records: Iterable[ShiftRecord],
    scope: Scope | str,
    *,
    now: datetime,
    week_starts_on: int = 0,
) -> list[ShiftRecord]:
    if Scope(scope) is Scope.ALL:
        return list(records)
    return _started_within(records, current_week_bounds(now, week_starts_on))


def trailing_records(
    records: Iterable[ShiftRecord], *, now: datetime, days: int = TRAILING_DAYS
) -> list[ShiftRecord]:
    """Records started in ``(now - days, now]``."""
    now = as_aware(now)
    cutoff = now - timedelta(days=days)
    return [r for r in records if r.started_at is not None and cutoff < r.started_at <= now]


def _best_ratio(groups: dict, *, key_order: Sequence | None = None) -> tuple[object, float, float] | None:
    """Pick the group with the highest net/hours among groups with hours > 0.

    ``groups`` maps key -> [net_cents, hours]. Returns (key, ratio, hours).
    """
    best: tuple[object, float, float] | None = None
    for key in key_order if key_order is not None else groups:
        if key not in groups:
            continue
        net, hours = groups[key]
        if hours <= 0:
            continue
        ratio = net / hours
        if best is None or ratio > best[1]:
            best = (key, ratio, hours)
    return best


# -- reducers -----------------------------------------------------------------


def totals_and_average(records: Iterable[ShiftRecord], settings: RateSettings | None) -> Totals | None:
    rows = _with_metrics(records, settings)
    if not rows:
        return None
    net = sum(m.net_cents for _, m in rows)
    hours = round(sum(m.hours for _, m in rows), 2)
    return Totals(
        count=len(rows),
        net_cents=net,
        hours=hours,
        average_hourly_cents=effective_hourly_rate_cents(net, hours),
    )


def best_single_shift(
    records: Iterable[ShiftRecord],
    settings: RateSettings | None,
    *,
    tz: tzinfo | None = None,
) -> BestShift | None:
    """Highest-net shift; ``day`` is its start date on the calendar of ``tz``."""
    best: tuple[ShiftRecord, ShiftMetrics] | None = None
    for record, metrics in _with_metrics(records, settings):
        if best is None or metrics.net_cents > best[1].net_cents:
            best = (record, metrics)
    if best is None:
        return None
    record, metrics = best
    day = local_date(record.started_at, tz) if record.started_at is not None else None
    return BestShift(record=record, net_cents=metrics.net_cents, day=day)


def week_over_week(
    records: Sequence[ShiftRecord],
    settings: RateSettings | None,
    *,
    now: datetime,
    week_starts_on: int = 0,
) -> WeekOverWeek | None:
    """Net of the current calendar week against the week before.

    The percentage is only reported when last week's net was positive;
    otherwise only the absolute difference is meaningful.
    """
    this_week = current_week_bounds(now, week_starts_on)
    last_week = (this_week[0] - timedelta(days=7), this_week[0])

    current = _started_within(records, this_week)
    previous = _started_within(records, last_week)
    if not current and not previous:
        return None

    current_net = sum(m.net_cents for _, m in _with_metrics(current, settings))
    previous_net = sum(m.net_cents for _, m in _with_metrics(previous, settings))
    diff = current_net - previous_net
    percent = round(diff / previous_net * 100, 1) if previous_net > 0 else None

    return WeekOverWeek(
        current_net_cents=current_net,
        previous_net_cents=previous_net,
        diff_cents=diff,
        percent=percent,
    )


def top_platform_this_month(
    records: Iterable[ShiftRecord],
    settings: RateSettings | None,
    *,
    now: datetime,
) -> PlatformNet | None:
    now = as_aware(now)
    first = start_of_month(local_date(now, now.tzinfo))
    month = day_range(first, add_months(first, 1), now.tzinfo)

    net_by_platform: dict[Platform, int] = {}
    for record, metrics in _with_metrics(_started_within(records, month), settings):
        net_by_platform[record.platform] = net_by_platform.get(record.platform, 0) + metrics.net_cents

    top: PlatformNet | None = None
    for platform, net in net_by_platform.items():
        if top is None or net > top.net_cents:
            top = PlatformNet(platform=platform, net_cents=net)
    return top


def best_weekday_hourly(
    records: Iterable[ShiftRecord],
    settings: RateSettings | None,
    *,
    now: datetime,
    days: int = TRAILING_DAYS,
) -> WeekdayPattern | None:
    now = as_aware(now)
    groups: dict[int, list[float]] = {}
    for record, metrics in _with_metrics(trailing_records(records, now=now, days=days), settings):
        weekday = record.started_at.astimezone(now.tzinfo).weekday()
        bucket = groups.setdefault(weekday, [0, 0.0])
        bucket[0] += metrics.net_cents
        bucket[1] += metrics.hours

    best = _best_ratio(groups, key_order=range(7))
    if best is None:
        return None
    weekday, ratio, hours = best
    return WeekdayPattern(
        weekday=weekday,
        label=WEEKDAY_NAMES[weekday],
        hourly_cents=round_half_up(ratio),
        hours=round(hours, 2),
    )


def classify_time_window(moment: datetime) -> TimeWindowSlot:
    """Place a local start time into one of the four daily windows.

    Late night spans midnight: a 2 AM start belongs to the previous
    calendar day's late-night window.

    :func:`best_time_window` only groups by window; the attributed ``day``
    is there for callers that group by night.
    """
    hour = moment.hour
    day = moment.date()
    if 5 <= hour < 11:
        window = TimeWindow.MORNING
    elif 11 <= hour < 17:
        window = TimeWindow.AFTERNOON
    elif 17 <= hour < 22:
        window = TimeWindow.EVENING
    else:
        window = TimeWindow.LATE_NIGHT
        if hour < 5:
            day = day - timedelta(days=1)
    return TimeWindowSlot(window=window, day=day)


def best_time_window(
    records: Iterable[ShiftRecord],
    settings: RateSettings | None,
    *,
    now: datetime,
    days: int = TRAILING_DAYS,
) -> TimeWindowPattern | None:
    now = as_aware(now)
    groups: dict[TimeWindow, list[float]] = {}
    for record, metrics in _with_metrics(trailing_records(records, now=now, days=days), settings):
        slot = classify_time_window(record.started_at.astimezone(now.tzinfo))
        bucket = groups.setdefault(slot.window, [0, 0.0])
        bucket[0] += metrics.net_cents
        bucket[1] += metrics.hours

    best = _best_ratio(groups, key_order=list(TimeWindow))
    if best is None:
        return None
    window, ratio, hours = best
    return TimeWindowPattern(
        window=window,
        label=window.label,
        hourly_cents=round_half_up(ratio),
        hours=round(hours, 2),
    )


def best_weekend_platform(
    records: Iterable[ShiftRecord],
    settings: RateSettings | None,
    *,
    now: datetime,
    days: int = TRAILING_DAYS,
) -> PlatformHourly | None:
    now = as_aware(now)
    groups: dict[Platform, list[float]] = {}
    for record, metrics in _with_metrics(trailing_records(records, now=now, days=days), settings):
        if record.started_at.astimezone(now.tzinfo).weekday() < 5:
            continue
        bucket = groups.setdefault(record.platform, [0, 0.0])
        bucket[0] += metrics.net_cents
        bucket[1] += metrics.hours

    best = _best_ratio(groups)
    if best is None:
        return None
    platform, ratio, hours = best
    return PlatformHourly(platform=platform, hourly_cents=round_half_up(ratio), hours=round(hours, 2))


# -- bundles served by the dashboard ------------------------------------------


def build_insights(
    records: Sequence[ShiftRecord],
    settings: RateSettings | None,
    *,
    now: datetime,
    scope: Scope | str = Scope.WEEK,
    week_starts_on: int = 0,
) -> Insights:
    scope = Scope(scope)
    now = as_aware(now)
    scoped = scope_records(records, scope, now=now, week_starts_on=week_starts_on)
    return Insights(
        scope=scope,
        totals=totals_and_average(scoped, settings),
        best_shift=best_single_shift(scoped, settings, tz=now.tzinfo),
        week_over_week=(
            week_over_week(records, settings, now=now, week_starts_on=week_starts_on)
            if scope is Scope.WEEK
            else None
        ),
        top_platform_this_month=top_platform_this_month(records, settings, now=now),
    )


def build_patterns(
    records: Sequence[ShiftRecord],
    settings: RateSettings | None,
    *,
    now: datetime,
    days: int = TRAILING_DAYS,
) -> Patterns:
    return Patterns(
        days=days,
        best_weekday=best_weekday_hourly(records, settings, now=now, days=days),
        best_time_window=best_time_window(records, settings, now=now, days=days),
        best_weekend_platform=best_weekend_platform(records, settings, now=now, days=days),
    )
