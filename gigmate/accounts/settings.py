"""Per-user rate settings (mileage rate and tax rate)."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from gigmate.core.money import to_cents
from gigmate.core.store import SQLiteStore
from gigmate.core.types import RateSettings, SettingsIn


class SettingsManager:
    def __init__(self, store: SQLiteStore) -> None:
        self.store = store

    def get(self, user_id: str) -> RateSettings | None:
        with self.store.connection() as conn:
            row = conn.execute(
                "SELECT mileage_rate_cents, tax_rate_bps FROM settings WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        if row is None:
            return None
        return RateSettings(
            mileage_rate_cents=int(row["mileage_rate_cents"]),
            tax_rate_bps=int(row["tax_rate_bps"]),
        )

    def update(self, user_id: str, *, mileage_rate_cents: int, tax_rate_bps: int) -> RateSettings:
        """Upsert the user's settings row."""
        now = datetime.now(UTC).isoformat()
        with self.store.connection() as conn:
            conn.execute(
                """
                INSERT INTO settings (id, user_id, mileage_rate_cents, tax_rate_bps, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    mileage_rate_cents = excluded.mileage_rate_cents,
                    tax_rate_bps = excluded.tax_rate_bps,
                    updated_at = excluded.updated_at
                """,
                (str(uuid.uuid4()), user_id, mileage_rate_cents, tax_rate_bps, now, now),
            )
            conn.commit()
        return RateSettings(mileage_rate_cents=mileage_rate_cents, tax_rate_bps=tax_rate_bps)

    def update_from_form(self, user_id: str, payload: SettingsIn) -> RateSettings:
        return self.update(
            user_id,
            mileage_rate_cents=to_cents(payload.mileage_rate),
            tax_rate_bps=to_cents(payload.tax_rate),
        )


def settings_to_form(settings: RateSettings) -> dict[str, str]:
    """Render settings in form units: "0.67" dollars per mile, "15.00" percent."""
    return {
        "mileage_rate": f"{settings.mileage_rate_cents / 100:.2f}",
        "tax_rate": f"{settings.tax_rate_bps / 100:.2f}",
    }
