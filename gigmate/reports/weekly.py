"""Weekly summary: period totals, week comparison and the digest email.

Period figures here follow the digest's own policy: mileage is counted as an
expense and tax is estimated on total gross only. Per-shift figures elsewhere
use :func:`gigmate.core.money.tax_estimate_cents` instead.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta, tzinfo
from enum import Enum

from jinja2 import Environment, StrictUndefined
from pydantic import BaseModel

from gigmate.core.money import (
    format_currency,
    mileage_deduction_cents,
    period_tax_estimate_cents,
    round_half_up,
)
from gigmate.core.periods import as_aware, end_of_day, local_date, start_of_day
from gigmate.core.types import RateSettings, ShiftRecord, WeeklyStats

logger = logging.getLogger(__name__)

FALLBACK_MILEAGE_RATE_CENTS = 65
FALLBACK_TAX_RATE_BPS = 2500
SAME_THRESHOLD_PERCENT = 5.0


class ComparisonKind(str, Enum):
    INSUFFICIENT_HISTORY = "insufficient_history"
    ABOUT_SAME = "about_same"
    MORE = "more"
    LESS = "less"


class Comparison(BaseModel):
    kind: ComparisonKind
    diff_cents: int = 0
    percent: float | None = None
    line: str


class WeeklyWindows(BaseModel):
    this_week_start: datetime
    this_week_end: datetime
    previous_week_start: datetime
    previous_week_end: datetime
    label: str

    def classify(self, moment: datetime) -> str | None:
        if self.this_week_start <= moment <= self.this_week_end:
            return "this_week"
        if self.previous_week_start <= moment <= self.previous_week_end:
            return "previous_week"
        return None


class WeeklySummaryEmail(BaseModel):
    subject: str
    html: str
    text: str


def calculate_weekly_stats(
    records: Iterable[ShiftRecord],
    settings: RateSettings | None,
    *,
    fallback: RateSettings | None = None,
    tz: tzinfo | None = None,
) -> WeeklyStats:
    """Totals for one reporting period.

    Every record contributes money. Only records with both timestamps
    contribute minutes and take part in the best-day vote; the rest are
    skipped for those two figures and processing continues.
    """
    if settings is None:
        settings = fallback or RateSettings(
            mileage_rate_cents=FALLBACK_MILEAGE_RATE_CENTS,
            tax_rate_bps=FALLBACK_TAX_RATE_BPS,
        )

    gross = tips = fuel = mileage = minutes = 0
    net_by_day: dict[str, int] = {}

    for record in records:
        gross += record.gross_cents
        tips += record.tips_cents
        fuel += record.fuel_cost_cents
        mileage_expense = mileage_deduction_cents(record.miles, settings.mileage_rate_cents)
        mileage += mileage_expense

        if record.started_at is None or record.ended_at is None:
            logger.debug("skipping timing for entry %s: missing timestamps", record.id)
            continue

        elapsed = int((record.ended_at - record.started_at).total_seconds() // 60)
        minutes += max(elapsed, 0)

        started = record.started_at.astimezone(tz) if tz is not None else record.started_at
        day_label = f"{started:%A}"
        net_before_tax = record.gross_cents + record.tips_cents - record.fuel_cost_cents - mileage_expense
        net_by_day[day_label] = net_by_day.get(day_label, 0) + net_before_tax

    tax = period_tax_estimate_cents(gross, settings.tax_rate_bps)
    net = gross + tips - fuel - mileage - tax
    hourly = round_half_up(net * 60 / minutes) if minutes > 0 else 0

    best_label: str | None = None
    best_net: int | None = None
    for label, day_net in net_by_day.items():
        if best_net is None or day_net > best_net:
            best_label, best_net = label, day_net

    return WeeklyStats(
        total_gross_cents=gross,
        total_tips_cents=tips,
        total_fuel_cents=fuel,
        total_mileage_cents=mileage,
        estimated_tax_cents=tax,
        net_cents=net,
        total_minutes=minutes,
        effective_hourly_cents=hourly,
        best_day_label=best_label,
        best_day_net_cents=best_net,
    )


def compare_weeks(current: WeeklyStats, previous: WeeklyStats | None) -> Comparison:
    if previous is None or previous.total_gross_cents <= 0:
        return Comparison(
            kind=ComparisonKind.INSUFFICIENT_HISTORY,
            line="No prior week data to compare yet.",
        )

    diff = current.net_cents - previous.net_cents

    if previous.net_cents <= 0:
        # No positive base to divide by: report the absolute change.
        if diff == 0:
            return Comparison(
                kind=ComparisonKind.ABOUT_SAME,
                line="You earned about the same net as last week.",
            )
        kind = ComparisonKind.MORE if diff > 0 else ComparisonKind.LESS
        return Comparison(
            kind=kind,
            diff_cents=diff,
            line=f"You earned {format_currency(abs(diff))} {kind.value} net than last week.",
        )

    percent = diff / previous.net_cents * 100
    if abs(percent) < SAME_THRESHOLD_PERCENT:
        return Comparison(
            kind=ComparisonKind.ABOUT_SAME,
            diff_cents=diff,
            percent=percent,
            line="You earned about the same net as last week.",
        )
    if percent > 0:
        return Comparison(
            kind=ComparisonKind.MORE,
            diff_cents=diff,
            percent=percent,
            line=f"You earned {percent:.1f}% more net than last week. Nice work.",
        )
    return Comparison(
        kind=ComparisonKind.LESS,
        diff_cents=diff,
        percent=percent,
        line=(
            f"You earned {abs(percent):.1f}% less net than last week. "
            "That might just be normal variability."
        ),
    )


def weekly_windows(now: datetime) -> WeeklyWindows:
    """The trailing 7 days (today inclusive) and the 7 days before them."""
    now = as_aware(now)
    tz = now.tzinfo
    today = local_date(now, tz)
    this_start_day = today - timedelta(days=6)
    previous_end_day = this_start_day - timedelta(days=1)
    previous_start_day = previous_end_day - timedelta(days=6)

    return WeeklyWindows(
        this_week_start=start_of_day(this_start_day, tz),
        this_week_end=end_of_day(today, tz),
        previous_week_start=start_of_day(previous_start_day, tz),
        previous_week_end=end_of_day(previous_end_day, tz),
        label=f"{this_start_day:%b} {this_start_day.day} – {today:%b} {today.day}",
    )


_env = Environment(autoescape=True, undefined=StrictUndefined, trim_blocks=True, lstrip_blocks=True)

_HTML_TEMPLATE = _env.from_string(
    """\
<div style="font-family: system-ui, -apple-system, 'Segoe UI', sans-serif; line-height: 1.5; color: #111827;">
  <h1 style="font-size: 20px; margin-bottom: 12px;">Hi {{ name }}, here’s your {{ brand }} weekly summary.</h1>
  <p style="margin-bottom: 16px; color: #4B5563;">Period: <strong>{{ week_label }}</strong></p>
  <table style="border-collapse: collapse; margin-bottom: 16px;">
    <tbody>
{% for label, value in rows %}
      <tr>
        <td style="padding: 4px 12px 4px 0; color: #6B7280;">{{ label }}</td>
        <td style="padding: 4px 0;">{{ value }}</td>
      </tr>
{% endfor %}
    </tbody>
  </table>
  <p style="margin-bottom: 8px;">{{ best_day_line }}</p>
  <p style="margin-bottom: 16px;">{{ comparison_line }}</p>
  <p style="margin-top: 24px; font-size: 12px; color: #9CA3AF;">
    You’re receiving this because you have a {{ brand }} account.
  </p>
</div>
"""
)

_text_env = Environment(autoescape=False, undefined=StrictUndefined, trim_blocks=True, lstrip_blocks=True)

_TEXT_TEMPLATE = _text_env.from_string(
    """\
Hi {{ name }}, here’s your {{ brand }} weekly summary.
Period: {{ week_label }}

{% for label, value in rows %}
{{ label }}: {{ value }}
{% endfor %}

{{ best_day_line }}
{{ comparison_line }}

You’re receiving this because you have a {{ brand }} account."""
)


def summary_rows(stats: WeeklyStats) -> list[tuple[str, str]]:
    return [
        ("Total gross", format_currency(stats.total_gross_cents)),
        ("Estimated fuel", format_currency(stats.total_fuel_cents)),
        ("Mileage expense", format_currency(stats.total_mileage_cents)),
        ("Estimated tax", format_currency(stats.estimated_tax_cents)),
        ("Net profit", format_currency(stats.net_cents)),
        ("Hours worked", f"{stats.total_minutes / 60:.1f}h"),
        ("Effective hourly", f"{format_currency(stats.effective_hourly_cents)}/hr"),
    ]


def best_day_line(stats: WeeklyStats) -> str:
    if stats.best_day_label and stats.best_day_net_cents is not None:
        return (
            f"Your best day was {stats.best_day_label} with "
            f"{format_currency(stats.best_day_net_cents)} net."
        )
    return "No completed shifts this week."


def build_weekly_summary_email(
    *,
    first_name: str | None,
    week_label: str,
    this_week: WeeklyStats,
    previous_week: WeeklyStats | None,
    brand: str = "GigMate",
) -> WeeklySummaryEmail:
    context = {
        "name": (first_name or "").strip() or "there",
        "brand": brand,
        "week_label": week_label,
        "rows": summary_rows(this_week),
        "best_day_line": best_day_line(this_week),
        "comparison_line": compare_weeks(this_week, previous_week).line,
    }
    return WeeklySummaryEmail(
        subject=f"Your {brand} weekly summary ({week_label})",
        html=_HTML_TEMPLATE.render(**context),
        text=_TEXT_TEMPLATE.render(**context).strip(),
    )
