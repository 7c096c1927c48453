from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from gigmate.core.store import SQLiteStore
from gigmate.core.types import Platform, ShiftRecord

# Wednesday; the Monday-start week is Oct 12-18 and the month is October 2026.
NOW = datetime(2026, 10, 14, 12, 0, tzinfo=UTC)


def make_shift(
    started_at: str | datetime | None,
    ended_at: str | datetime | None = None,
    *,
    hours: float | None = None,
    gross: int = 0,
    tips: int = 0,
    fuel: int = 0,
    miles: float = 0.0,
    platform: Platform | str = Platform.UBER,
    **extra,
) -> ShiftRecord:
    """Build a record; ``hours`` derives ``ended_at`` from ``started_at``."""
    record = ShiftRecord(
        started_at=started_at,
        ended_at=ended_at,
        gross_cents=gross,
        tips_cents=tips,
        fuel_cost_cents=fuel,
        miles=miles,
        platform=platform,
        **extra,
    )
    if hours is not None and record.started_at is not None:
        record = record.model_copy(update={"ended_at": record.started_at + timedelta(hours=hours)})
    return record


@pytest.fixture()
def now() -> datetime:
    return NOW


@pytest.fixture()
def store(tmp_path: Path) -> SQLiteStore:
    return SQLiteStore(tmp_path / "gigmate-home" / "gigmate.db")


@pytest.fixture(autouse=True)
def _clean_mail_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("MAIL_FROM", "WEEKLY_SUMMARY_FROM_EMAIL", "RESEND_API_KEY", "CRON_SECRET", "GIGMATE_CRON_SECRET"):
        monkeypatch.delenv(name, raising=False)
