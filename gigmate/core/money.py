"""Per-shift money and time conversions.

Every displayed figure is derived from these functions, so they share one
rounding rule: half away from zero on the exact decimal value.
"""

from __future__ import annotations

import math
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from gigmate.core.types import RateSettings, ShiftMetrics, ShiftRecord

_ONE = Decimal(1)
_HUNDREDTH = Decimal("0.01")
_SECONDS_PER_HOUR = Decimal(3600)
_BPS_SCALE = Decimal(10000)


def _decimal(value: int | float | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    return Decimal(repr(float(value)))


def round_half_up(value: int | float | Decimal) -> int:
    """Round to the nearest integer, halves away from zero (2.5 -> 3, -2.5 -> -3)."""
    return int(_decimal(value).quantize(_ONE, rounding=ROUND_HALF_UP))


def duration_hours(start: datetime, end: datetime) -> float:
    seconds = _decimal((end - start).total_seconds())
    hours = (seconds / _SECONDS_PER_HOUR).quantize(_HUNDREDTH, rounding=ROUND_HALF_UP)
    return max(0.0, float(hours))


def mileage_deduction_cents(miles: float, rate_cents_per_mile: int) -> int:
    return round_half_up(_decimal(miles) * _decimal(rate_cents_per_mile))


def tax_estimate_cents(
    gross_cents: int,
    mileage_deduction_cents: int,
    fuel_cost_cents: int,
    tax_rate_bps: int,
) -> int:
    """Estimated tax on one shift.

    The taxable base is gross less the mileage deduction and fuel, floored at
    zero: a shift that loses money owes no tax and earns no refund.
    """
    taxable = max(0, gross_cents - mileage_deduction_cents - fuel_cost_cents)
    return round_half_up(Decimal(taxable) * Decimal(tax_rate_bps) / _BPS_SCALE)


def period_tax_estimate_cents(total_gross_cents: int, tax_rate_bps: int) -> int:
    """Estimated tax for a whole reporting period, on gross only.

    This is the weekly digest's policy; it differs from
    :func:`tax_estimate_cents`, which deducts mileage and fuel first.
    """
    return round_half_up(Decimal(total_gross_cents) * Decimal(tax_rate_bps) / _BPS_SCALE)


def net_profit_cents(gross_cents: int, fuel_cost_cents: int, tax_estimate_cents: int) -> int:
    # Mileage is a tax shield, not a cash cost; it already lowered the tax.
    return gross_cents - fuel_cost_cents - tax_estimate_cents


def effective_hourly_rate_cents(net_cents: int, hours: float) -> int:
    if not hours or hours <= 0 or math.isnan(hours):
        return 0
    return round_half_up(Decimal(net_cents) / _decimal(hours))


def shift_metrics(record: ShiftRecord, settings: RateSettings | None) -> ShiftMetrics:
    """Derived money and time figures for one shift.

    Missing settings mean zero rates. Missing timestamps mean zero hours.
    """
    mileage_rate = settings.mileage_rate_cents if settings is not None else 0
    tax_rate = settings.tax_rate_bps if settings is not None else 0

    deduction = mileage_deduction_cents(record.miles, mileage_rate)
    tax = tax_estimate_cents(record.gross_cents, deduction, record.fuel_cost_cents, tax_rate)
    net = net_profit_cents(record.gross_cents, record.fuel_cost_cents, tax)
    if record.started_at is not None and record.ended_at is not None:
        hours = duration_hours(record.started_at, record.ended_at)
    else:
        hours = 0.0

    return ShiftMetrics(
        mileage_deduction_cents=deduction,
        tax_cents=tax,
        net_cents=net,
        hours=hours,
    )


def to_cents(value: Any) -> int:
    """Convert a dollar amount (number or string) to cents; unparseable means 0."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, str):
        value = value.strip().replace("$", "").replace(",", "")
        if not value:
            return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number) or math.isinf(number):
        return 0
    return round_half_up(_decimal(number) * 100)


def cents_to_dollars(cents: int | None) -> str:
    amount = Decimal(cents or 0) / 100
    return f"{amount:.2f}"


def format_currency(cents: int | None) -> str:
    amount = Decimal(cents or 0) / 100
    if amount < 0:
        return f"-${-amount:,.2f}"
    return f"${amount:,.2f}"
