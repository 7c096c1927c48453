from __future__ import annotations

import math
from datetime import UTC, date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Platform(str, Enum):
    UBER = "Uber"
    LYFT = "Lyft"
    DOORDASH = "DoorDash"
    INSTACART = "Instacart"
    AMAZON_FLEX = "AmazonFlex"
    OTHER = "Other"


class ChartMode(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class Scope(str, Enum):
    WEEK = "week"
    ALL = "all"


def _coerce_int(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number) or math.isinf(number):
        return 0
    return int(Decimal(repr(number)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _coerce_float(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO string or datetime into an aware datetime; naive means UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class ShiftRecord(BaseModel):
    """One logged work session as read from storage.

    Money is in cents. Missing or non-numeric amounts become 0 here so the
    calculation layer only ever sees numbers.
    """

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    user_id: str | None = None
    platform: Platform = Platform.OTHER
    started_at: datetime | None = None
    ended_at: datetime | None = None
    gross_cents: int = 0
    tips_cents: int = 0
    fuel_cost_cents: int = 0
    miles: float = 0.0
    notes: str | None = None

    @field_validator("platform", mode="before")
    @classmethod
    def _platform(cls, value: Any) -> Any:
        if isinstance(value, Platform):
            return value
        try:
            return Platform(value)
        except ValueError:
            return Platform.OTHER

    @field_validator("started_at", "ended_at", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> datetime | None:
        return parse_timestamp(value)

    @field_validator("gross_cents", "tips_cents", "fuel_cost_cents", mode="before")
    @classmethod
    def _cents(cls, value: Any) -> int:
        return _coerce_int(value)

    @field_validator("miles", mode="before")
    @classmethod
    def _miles(cls, value: Any) -> float:
        return _coerce_float(value)


class RateSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    mileage_rate_cents: int = 0
    tax_rate_bps: int = 0


class ShiftMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    mileage_deduction_cents: int
    tax_cents: int
    net_cents: int
    hours: float


class TimeBucket(BaseModel):
    period_start: date
    label: str
    net_cents: int = 0
    hours: float = 0.0


class WeeklyStats(BaseModel):
    total_gross_cents: int = 0
    total_tips_cents: int = 0
    total_fuel_cents: int = 0
    total_mileage_cents: int = 0
    estimated_tax_cents: int = 0
    net_cents: int = 0
    total_minutes: int = 0
    effective_hourly_cents: int = 0
    best_day_label: str | None = None
    best_day_net_cents: int | None = None


class EntryIn(BaseModel):
    """Payload for creating or replacing an entry, in form units (dollars)."""

    model_config = ConfigDict(extra="forbid")

    platform: Platform = Platform.UBER
    started_at: datetime
    ended_at: datetime
    gross: float = Field(ge=0)
    tips: float = Field(0, ge=0)
    miles: float = Field(0, ge=0)
    fuel_cost: float = Field(0, ge=0)
    notes: str | None = None


class SettingsIn(BaseModel):
    """Rate settings in form units: dollars per mile and percent."""

    model_config = ConfigDict(extra="forbid")

    mileage_rate: float = Field(ge=0)
    tax_rate: float = Field(ge=0, le=100)


class EntryUpdate(BaseModel):
    """Partial entry update in form units; only fields that are set are applied."""

    model_config = ConfigDict(extra="forbid")

    platform: Platform | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    gross: float | None = Field(None, ge=0)
    tips: float | None = Field(None, ge=0)
    miles: float | None = Field(None, ge=0)
    fuel_cost: float | None = Field(None, ge=0)
    notes: str | None = None
