"""Tests for comparative insight reducers."""

from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo

from conftest import NOW, make_shift

from gigmate.core.types import ChartMode, Platform, RateSettings, Scope
from gigmate.reports.buckets import bucket_shifts
from gigmate.reports.insights import (
    TimeWindow,
    best_single_shift,
    best_time_window,
    best_weekday_hourly,
    best_weekend_platform,
    build_insights,
    build_patterns,
    classify_time_window,
    scope_records,
    top_platform_this_month,
    totals_and_average,
    trailing_records,
    week_over_week,
)

ZERO_RATES = RateSettings(mileage_rate_cents=0, tax_rate_bps=0)


def test_reducers_return_none_without_records() -> None:
    assert totals_and_average([], ZERO_RATES) is None
    assert best_single_shift([], ZERO_RATES) is None
    assert week_over_week([], ZERO_RATES, now=NOW) is None
    assert top_platform_this_month([], ZERO_RATES, now=NOW) is None
    assert best_weekday_hourly([], ZERO_RATES, now=NOW) is None
    assert best_time_window([], ZERO_RATES, now=NOW) is None
    assert best_weekend_platform([], ZERO_RATES, now=NOW) is None


def test_totals_and_average() -> None:
    records = [
        make_shift("2026-10-12T10:00:00Z", hours=2, gross=6000),
        make_shift("2026-10-13T10:00:00Z", hours=1, gross=3000),
    ]
    totals = totals_and_average(records, ZERO_RATES)

    assert totals is not None
    assert totals.count == 2
    assert totals.net_cents == 9000
    assert totals.hours == 3.0
    assert totals.average_hourly_cents == 3000


def test_top_platform_and_best_shift_scenario() -> None:
    records = [
        make_shift("2026-10-12T10:00:00Z", hours=2, gross=5000, platform=Platform.UBER),
        make_shift("2026-10-13T10:00:00Z", hours=2, gross=8000, platform=Platform.LYFT),
    ]

    top = top_platform_this_month(records, ZERO_RATES, now=NOW)
    best = best_single_shift(records, ZERO_RATES)

    assert top is not None and top.platform is Platform.LYFT and top.net_cents == 8000
    assert best is not None and best.net_cents == 8000
    assert best.day == date(2026, 10, 13)
    assert best.record.platform is Platform.LYFT


def test_ties_go_to_first_encountered() -> None:
    records = [
        make_shift("2026-10-12T10:00:00Z", hours=1, gross=5000, platform=Platform.DOORDASH, id="first"),
        make_shift("2026-10-13T10:00:00Z", hours=1, gross=5000, platform=Platform.INSTACART, id="second"),
    ]

    assert best_single_shift(records, ZERO_RATES).record.id == "first"
    assert top_platform_this_month(records, ZERO_RATES, now=NOW).platform is Platform.DOORDASH
    assert best_weekday_hourly(records, ZERO_RATES, now=NOW).label == "Monday"


def test_top_platform_only_counts_current_month() -> None:
    records = [
        make_shift("2026-09-30T10:00:00Z", hours=1, gross=90000, platform=Platform.UBER),
        make_shift("2026-10-01T10:00:00Z", hours=1, gross=1000, platform=Platform.LYFT),
    ]

    top = top_platform_this_month(records, ZERO_RATES, now=NOW)

    assert top.platform is Platform.LYFT


def test_week_over_week_percent() -> None:
    records = [
        make_shift("2026-10-06T10:00:00Z", hours=1, gross=8000),
        make_shift("2026-10-13T10:00:00Z", hours=1, gross=10000),
    ]
    result = week_over_week(records, ZERO_RATES, now=NOW)

    assert result.current_net_cents == 10000
    assert result.previous_net_cents == 8000
    assert result.diff_cents == 2000
    assert result.percent == 25.0


def test_week_over_week_without_previous_net_reports_absolute_only() -> None:
    records = [make_shift("2026-10-13T10:00:00Z", hours=1, gross=4000)]
    result = week_over_week(records, ZERO_RATES, now=NOW)

    assert result.previous_net_cents == 0
    assert result.diff_cents == 4000
    assert result.percent is None


def test_week_over_week_with_losing_previous_week() -> None:
    records = [
        make_shift("2026-10-06T10:00:00Z", hours=1, gross=0, fuel=500),
        make_shift("2026-10-13T10:00:00Z", hours=1, gross=1000),
    ]
    result = week_over_week(records, ZERO_RATES, now=NOW)

    assert result.previous_net_cents == -500
    assert result.diff_cents == 1500
    assert result.percent is None


def test_scope_records() -> None:
    records = [
        make_shift("2026-10-11T10:00:00Z", hours=1, gross=1000),
        make_shift("2026-10-12T00:00:00Z", hours=1, gross=2000),
        make_shift("2026-10-18T23:59:00Z", hours=1, gross=3000),
    ]

    assert [r.gross_cents for r in scope_records(records, Scope.WEEK, now=NOW)] == [2000, 3000]
    assert len(scope_records(records, "all", now=NOW)) == 3


def test_trailing_window_is_open_at_cutoff_and_closed_at_now() -> None:
    records = [
        make_shift("2026-09-14T12:00:00Z", hours=1, gross=1),
        make_shift("2026-09-14T12:00:01Z", hours=1, gross=2),
        make_shift(NOW, hours=1, gross=3),
        make_shift("2026-10-14T12:00:01Z", hours=1, gross=4),
    ]

    assert [r.gross_cents for r in trailing_records(records, now=NOW)] == [2, 3]


def test_best_weekday_hourly() -> None:
    records = [
        make_shift("2026-10-12T10:00:00Z", hours=2, gross=10000),
        make_shift("2026-10-13T10:00:00Z", hours=1, gross=9000),
        make_shift("2026-09-01T10:00:00Z", hours=1, gross=99999),
    ]
    result = best_weekday_hourly(records, ZERO_RATES, now=NOW)

    assert result.weekday == 1
    assert result.label == "Tuesday"
    assert result.hourly_cents == 9000


def test_zero_hour_groups_do_not_compete() -> None:
    records = [make_shift("2026-10-13T10:00:00Z", "2026-10-13T10:00:00Z", gross=9000)]

    assert best_weekday_hourly(records, ZERO_RATES, now=NOW) is None
    assert best_time_window(records, ZERO_RATES, now=NOW) is None


def test_classify_time_window_boundaries() -> None:
    def window(hour: int, minute: int = 0) -> TimeWindow:
        return classify_time_window(datetime(2026, 10, 14, hour, minute)).window

    assert window(4, 59) is TimeWindow.LATE_NIGHT
    assert window(5) is TimeWindow.MORNING
    assert window(10, 59) is TimeWindow.MORNING
    assert window(11) is TimeWindow.AFTERNOON
    assert window(17) is TimeWindow.EVENING
    assert window(21, 59) is TimeWindow.EVENING
    assert window(22) is TimeWindow.LATE_NIGHT


def test_early_morning_belongs_to_previous_days_late_night() -> None:
    slot = classify_time_window(datetime(2026, 10, 10, 2, 0))  # Saturday 2 AM

    assert slot.window is TimeWindow.LATE_NIGHT
    assert slot.day == date(2026, 10, 9)
    assert slot.day.weekday() == 4

    late = classify_time_window(datetime(2026, 10, 9, 23, 0))
    assert late.day == date(2026, 10, 9)


def test_best_time_window() -> None:
    records = [
        make_shift("2026-10-12T07:00:00Z", hours=2, gross=4000),
        make_shift("2026-10-12T18:00:00Z", hours=2, gross=9000),
        make_shift("2026-10-13T01:00:00Z", hours=1, gross=3000),
    ]
    result = best_time_window(records, ZERO_RATES, now=NOW)

    assert result.window is TimeWindow.EVENING
    assert result.label == "Evening (5–10 PM)"
    assert result.hourly_cents == 4500


def test_best_weekend_platform_ignores_weekdays() -> None:
    records = [
        make_shift("2026-10-10T10:00:00Z", hours=1, gross=3000, platform=Platform.UBER),
        make_shift("2026-10-11T10:00:00Z", hours=1, gross=5000, platform=Platform.DOORDASH),
        make_shift("2026-10-12T10:00:00Z", hours=1, gross=50000, platform=Platform.LYFT),
    ]
    result = best_weekend_platform(records, ZERO_RATES, now=NOW)

    assert result.platform is Platform.DOORDASH
    assert result.hourly_cents == 5000

    weekdays_only = [records[2]]
    assert best_weekend_platform(weekdays_only, ZERO_RATES, now=NOW) is None


def test_build_insights_scopes() -> None:
    records = [
        make_shift("2026-10-06T10:00:00Z", hours=1, gross=8000),
        make_shift("2026-10-13T10:00:00Z", hours=1, gross=10000),
    ]

    week = build_insights(records, ZERO_RATES, now=NOW, scope=Scope.WEEK)
    everything = build_insights(records, ZERO_RATES, now=NOW, scope="all")

    assert week.totals.net_cents == 10000
    assert week.week_over_week.percent == 25.0
    assert everything.totals.net_cents == 18000
    assert everything.week_over_week is None
    assert everything.top_platform_this_month.net_cents == 18000


def test_build_patterns_bundles_reducers() -> None:
    records = [make_shift("2026-10-11T18:00:00Z", hours=2, gross=6000, platform=Platform.AMAZON_FLEX)]
    patterns = build_patterns(records, ZERO_RATES, now=NOW)

    assert patterns.days == 30
    assert patterns.best_weekday.label == "Sunday"
    assert patterns.best_time_window.window is TimeWindow.EVENING
    assert patterns.best_weekend_platform.platform is Platform.AMAZON_FLEX


def test_best_shift_day_uses_reference_calendar() -> None:
    new_york = ZoneInfo("America/New_York")
    now = datetime(2026, 10, 14, 12, 0, tzinfo=new_york)
    records = [make_shift("2026-10-13T02:00:00Z", hours=2, gross=9000)]  # Monday 10 PM in New York

    insights = build_insights(records, ZERO_RATES, now=now, scope="all")
    [bucket] = [b for b in bucket_shifts(records, ZERO_RATES, mode=ChartMode.DAY, now=now) if b.net_cents]

    assert insights.best_shift.day == date(2026, 10, 12)
    assert insights.best_shift.day == bucket.period_start
    assert best_single_shift(records, ZERO_RATES).day == date(2026, 10, 13)


def test_naive_reference_time_is_treated_as_utc() -> None:
    naive_now = NOW.replace(tzinfo=None)
    records = [
        make_shift("2026-10-06T10:00:00Z", hours=1, gross=8000),
        make_shift("2026-10-13T10:00:00Z", hours=1, gross=10000),
    ]

    assert week_over_week(records, ZERO_RATES, now=naive_now) == week_over_week(records, ZERO_RATES, now=NOW)
    assert scope_records(records, Scope.WEEK, now=naive_now) == [records[1]]
    assert trailing_records(records, now=naive_now, days=7) == [records[1]]
    assert top_platform_this_month(records, ZERO_RATES, now=naive_now).net_cents == 18000
    assert build_patterns(records, ZERO_RATES, now=naive_now) == build_patterns(records, ZERO_RATES, now=NOW)
    assert build_insights(records, ZERO_RATES, now=naive_now) == build_insights(records, ZERO_RATES, now=NOW)
