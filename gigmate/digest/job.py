"""Weekly digest batch job.

Every user with entries in the last 14 days gets one email comparing the
trailing 7 days with the 7 days before. Users are processed concurrently and
independently: a failure for one user becomes a skipped result with a reason
and never stops the others.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from pydantic import BaseModel, Field

from gigmate.accounts.settings import SettingsManager
from gigmate.accounts.users import UserManager, first_name
from gigmate.core.store import SQLiteStore
from gigmate.core.types import RateSettings, ShiftRecord
from gigmate.digest.errors import MailerError
from gigmate.digest.mailer import Mailer, OutgoingEmail
from gigmate.entries.manager import EntryManager
from gigmate.reports.weekly import (
    WeeklySummaryEmail,
    WeeklyWindows,
    build_weekly_summary_email,
    calculate_weekly_stats,
    weekly_windows,
)

logger = logging.getLogger(__name__)

NOTHING_TO_SEND = "No entries in the last 14 days. Nothing to send."
PROCESSED = "Weekly summaries processed."
NO_EMAIL_REASON = "No email or auth error."
SEND_ERROR_REASON = "Mail provider error."
BUILD_ERROR_REASON = "Could not build summary."


class UserWeek(BaseModel):
    this_week: list[ShiftRecord] = Field(default_factory=list)
    previous_week: list[ShiftRecord] = Field(default_factory=list)


class DigestResult(BaseModel):
    user_id: str
    skipped: bool
    reason: str | None = None
    message_id: str | None = None
    this_week_entry_count: int
    previous_week_entry_count: int


class DigestReport(BaseModel):
    message: str
    week_label: str
    total_users_with_entries: int = 0
    sent_count: int = 0
    skipped_count: int = 0
    results: list[DigestResult] = Field(default_factory=list)


def group_by_user(records: list[ShiftRecord], windows: WeeklyWindows) -> dict[str, UserWeek]:
    grouped: dict[str, UserWeek] = {}
    for record in records:
        if not record.user_id or record.started_at is None:
            continue
        period = windows.classify(record.started_at)
        if period is None:
            continue
        bucket = grouped.setdefault(record.user_id, UserWeek())
        if period == "this_week":
            bucket.this_week.append(record)
        else:
            bucket.previous_week.append(record)
    return grouped


class WeeklyDigestJob:
    def __init__(
        self,
        store: SQLiteStore,
        mailer: Mailer,
        *,
        from_address: str,
        brand: str = "GigMate",
        fallback: RateSettings | None = None,
    ) -> None:
        self.users = UserManager(store)
        self.settings = SettingsManager(store)
        self.entries = EntryManager(store)
        self.mailer = mailer
        self.from_address = from_address
        self.brand = brand
        self.fallback = fallback

    async def run(self, *, now: datetime) -> DigestReport:
        windows = weekly_windows(now)
        records = await asyncio.to_thread(
            self.entries.list_entries_between, windows.previous_week_start, windows.this_week_end
        )
        grouped = group_by_user(records, windows)
        if not grouped:
            logger.info("weekly digest: no entries between %s and %s", windows.previous_week_start, windows.this_week_end)
            return DigestReport(message=NOTHING_TO_SEND, week_label=windows.label)

        results = await asyncio.gather(
            *(
                asyncio.to_thread(self.process_user, user_id, week, windows)
                for user_id, week in grouped.items()
            )
        )

        sent = sum(1 for result in results if not result.skipped)
        report = DigestReport(
            message=PROCESSED,
            week_label=windows.label,
            total_users_with_entries=len(grouped),
            sent_count=sent,
            skipped_count=len(results) - sent,
            results=list(results),
        )
        logger.info(
            "weekly digest: %s users, %s sent, %s skipped",
            report.total_users_with_entries,
            report.sent_count,
            report.skipped_count,
        )
        return report

    def process_user(self, user_id: str, week: UserWeek, windows: WeeklyWindows) -> DigestResult:
        counts = {
            "this_week_entry_count": len(week.this_week),
            "previous_week_entry_count": len(week.previous_week),
        }

        try:
            user = self.users.get_user(user_id)
        except Exception:
            logger.warning("weekly digest: looking up user %s failed", user_id, exc_info=True)
            user = None
        email = user.get("email") if user else None
        if not email:
            logger.warning("weekly digest: skipping user %s, no email on record", user_id)
            return DigestResult(user_id=user_id, skipped=True, reason=NO_EMAIL_REASON, **counts)

        try:
            content = self._build_email(user, week, windows)
        except Exception:
            logger.exception("weekly digest: building summary for user %s failed", user_id)
            return DigestResult(user_id=user_id, skipped=True, reason=BUILD_ERROR_REASON, **counts)

        try:
            message_id = self.mailer.send(
                OutgoingEmail(
                    from_address=self.from_address,
                    to=email,
                    subject=content.subject,
                    html=content.html,
                    text=content.text,
                )
            )
        except MailerError:
            logger.warning("weekly digest: sending to user %s failed", user_id, exc_info=True)
            return DigestResult(user_id=user_id, skipped=True, reason=SEND_ERROR_REASON, **counts)

        return DigestResult(user_id=user_id, skipped=False, message_id=message_id, **counts)

    def _build_email(self, user: dict, week: UserWeek, windows: WeeklyWindows) -> WeeklySummaryEmail:
        settings = self.settings.get(user["id"])
        tz = windows.this_week_end.tzinfo
        this_week = calculate_weekly_stats(week.this_week, settings, fallback=self.fallback, tz=tz)
        previous_week = (
            calculate_weekly_stats(week.previous_week, settings, fallback=self.fallback, tz=tz)
            if week.previous_week
            else None
        )
        return build_weekly_summary_email(
            first_name=first_name(user.get("full_name")),
            week_label=windows.label,
            this_week=this_week,
            previous_week=previous_week,
            brand=self.brand,
        )


async def run_weekly_digest_async(
    store: SQLiteStore,
    mailer: Mailer,
    *,
    now: datetime,
    from_address: str,
    brand: str = "GigMate",
    fallback: RateSettings | None = None,
) -> DigestReport:
    job = WeeklyDigestJob(store, mailer, from_address=from_address, brand=brand, fallback=fallback)
    return await job.run(now=now)


def run_weekly_digest(
    store: SQLiteStore,
    mailer: Mailer,
    *,
    now: datetime,
    from_address: str,
    brand: str = "GigMate",
    fallback: RateSettings | None = None,
) -> DigestReport:
    return asyncio.run(
        run_weekly_digest_async(
            store, mailer, now=now, from_address=from_address, brand=brand, fallback=fallback
        )
    )
