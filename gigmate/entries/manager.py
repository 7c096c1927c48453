"""Shift entry storage: CRUD scoped to the owning user."""

from __future__ import annotations

import sqlite3
import uuid
from datetime import UTC, datetime
from typing import Any

from gigmate.core.money import to_cents
from gigmate.core.store import SQLiteStore
from gigmate.core.types import EntryIn, EntryUpdate, Platform, ShiftRecord, parse_timestamp

UPDATABLE_FIELDS = {
    "platform",
    "started_at",
    "ended_at",
    "gross_cents",
    "tips_cents",
    "miles",
    "fuel_cost_cents",
    "notes",
}


class EntryNotFoundError(LookupError):
    """Raised when an entry does not exist or belongs to another user."""


def to_storage_timestamp(value: datetime | str) -> str:
    parsed = parse_timestamp(value)
    if parsed is None:
        raise ValueError(f"invalid timestamp: {value!r}")
    return parsed.astimezone(UTC).isoformat()


class EntryManager:
    """Reads and writes shift entries.

    Every method except :meth:`list_entries_between` takes the owning
    ``user_id`` and never touches another user's rows.
    """

    def __init__(self, store: SQLiteStore) -> None:
        self.store = store

    def create_entry(
        self,
        *,
        user_id: str,
        platform: Platform | str,
        started_at: datetime | str,
        ended_at: datetime | str | None,
        gross_cents: int,
        tips_cents: int = 0,
        miles: float = 0.0,
        fuel_cost_cents: int = 0,
        notes: str | None = None,
    ) -> str:
        entry_id = str(uuid.uuid4())
        now = datetime.now(UTC).isoformat()
        with self.store.connection() as conn:
            conn.execute(
                """
                INSERT INTO entries (id, user_id, platform, started_at, ended_at, gross_cents,
                                     tips_cents, miles, fuel_cost_cents, notes, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry_id,
                    user_id,
                    Platform(platform).value,
                    to_storage_timestamp(started_at),
                    to_storage_timestamp(ended_at) if ended_at is not None else None,
                    gross_cents,
                    tips_cents,
                    miles,
                    fuel_cost_cents,
                    notes or None,
                    now,
                    now,
                ),
            )
            conn.commit()
        return entry_id

    def create_from_form(self, user_id: str, payload: EntryIn) -> str:
        return self.create_entry(
            user_id=user_id,
            platform=payload.platform,
            started_at=payload.started_at,
            ended_at=payload.ended_at,
            gross_cents=to_cents(payload.gross),
            tips_cents=to_cents(payload.tips),
            miles=float(payload.miles),
            fuel_cost_cents=to_cents(payload.fuel_cost),
            notes=payload.notes,
        )

    def get_entry(self, user_id: str, entry_id: str) -> ShiftRecord:
        with self.store.connection() as conn:
            row = conn.execute(
                "SELECT * FROM entries WHERE id = ? AND user_id = ?", (entry_id, user_id)
            ).fetchone()
        if row is None:
            raise EntryNotFoundError(f"entry not found: {entry_id}")
        return self._row_to_record(row)

    def list_entries(
        self,
        user_id: str,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[ShiftRecord]:
        """Entries newest first, optionally restricted to ``start <= started_at <= end``."""
        query = "SELECT * FROM entries WHERE user_id = ?"
        params: list[Any] = [user_id]
        if start is not None:
            query += " AND started_at >= ?"
            params.append(to_storage_timestamp(start))
        if end is not None:
            query += " AND started_at <= ?"
            params.append(to_storage_timestamp(end))
        query += " ORDER BY started_at DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with self.store.connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_record(row) for row in rows]

    def latest_entry(self, user_id: str) -> ShiftRecord | None:
        entries = self.list_entries(user_id, limit=1)
        return entries[0] if entries else None

    def list_entries_between(self, start: datetime, end: datetime) -> list[ShiftRecord]:
        """All users' entries started within ``[start, end]``, for batch jobs."""
        with self.store.connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM entries
                WHERE started_at >= ? AND started_at <= ?
                ORDER BY started_at ASC
                """,
                (to_storage_timestamp(start), to_storage_timestamp(end)),
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def update_entry(self, user_id: str, entry_id: str, changes: dict[str, Any]) -> ShiftRecord:
        update = {key: value for key, value in changes.items() if key in UPDATABLE_FIELDS}
        if not update:
            raise ValueError("No valid fields to update")

        if "platform" in update:
            update["platform"] = Platform(update["platform"]).value
        for key in ("started_at", "ended_at"):
            if key in update and update[key] is not None:
                update[key] = to_storage_timestamp(update[key])
        update["updated_at"] = datetime.now(UTC).isoformat()

        assignments = ", ".join(f"{key} = ?" for key in update)
        with self.store.connection() as conn:
            try:
                cursor = conn.execute(
                    f"UPDATE entries SET {assignments} WHERE id = ? AND user_id = ?",
                    (*update.values(), entry_id, user_id),
                )
            except sqlite3.IntegrityError as exc:
                raise ValueError(f"invalid entry update: {exc}") from exc
            conn.commit()
            if cursor.rowcount == 0:
                raise EntryNotFoundError(f"entry not found: {entry_id}")
        return self.get_entry(user_id, entry_id)

    def update_from_form(self, user_id: str, entry_id: str, payload: EntryUpdate) -> ShiftRecord:
        fields = payload.model_dump(exclude_unset=True)
        changes: dict[str, Any] = {}
        for form_key, column in (("gross", "gross_cents"), ("tips", "tips_cents"), ("fuel_cost", "fuel_cost_cents")):
            if fields.get(form_key) is not None:
                changes[column] = to_cents(fields[form_key])
        if fields.get("miles") is not None:
            changes["miles"] = float(fields["miles"])
        for key in ("platform", "started_at", "ended_at", "notes"):
            if key in fields:
                changes[key] = fields[key]
        return self.update_entry(user_id, entry_id, changes)

    def delete_entry(self, user_id: str, entry_id: str) -> None:
        with self.store.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM entries WHERE id = ? AND user_id = ?", (entry_id, user_id)
            )
            conn.commit()
            if cursor.rowcount == 0:
                raise EntryNotFoundError(f"entry not found: {entry_id}")

    def _row_to_record(self, row: sqlite3.Row) -> ShiftRecord:
        return ShiftRecord(
            id=row["id"],
            user_id=row["user_id"],
            platform=row["platform"],
            started_at=row["started_at"],
            ended_at=row["ended_at"],
            gross_cents=row["gross_cents"],
            tips_cents=row["tips_cents"],
            miles=row["miles"],
            fuel_cost_cents=row["fuel_cost_cents"],
            notes=row["notes"],
        )
