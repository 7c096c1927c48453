"""User accounts.

Each user gets an opaque API token at creation; the web app authenticates
requests by that token and scopes every query to the owning user.
"""

from __future__ import annotations

import secrets
import sqlite3
import uuid
from datetime import UTC, datetime
from typing import Any

from gigmate.core.store import SQLiteStore
from gigmate.core.types import RateSettings


class UserExistsError(ValueError):
    """Raised when an email is already registered."""


class UserManager:
    """Manages user accounts and their API tokens."""

    def __init__(self, store: SQLiteStore) -> None:
        self.store = store

    def create_user(
        self,
        *,
        email: str | None,
        full_name: str | None = None,
        settings: RateSettings | None = None,
    ) -> tuple[str, str]:
        """Create a user and, when given, its settings row. Returns (user_id, api_token)."""
        user_id = str(uuid.uuid4())
        token = secrets.token_urlsafe(32)
        now = datetime.now(UTC).isoformat()
        normalized_email = email.strip().lower() if email else None

        with self.store.connection() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO users (id, email, full_name, api_token, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (user_id, normalized_email, full_name, token, now, now),
                )
            except sqlite3.IntegrityError as exc:
                raise UserExistsError(f"user already exists: {normalized_email}") from exc
            if settings is not None:
                conn.execute(
                    """
                    INSERT INTO settings (id, user_id, mileage_rate_cents, tax_rate_bps, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        str(uuid.uuid4()),
                        user_id,
                        settings.mileage_rate_cents,
                        settings.tax_rate_bps,
                        now,
                        now,
                    ),
                )
            conn.commit()
        return user_id, token

    def get_user(self, user_id: str) -> dict[str, Any] | None:
        with self.store.connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return dict(row) if row else None

    def get_user_by_email(self, email: str) -> dict[str, Any] | None:
        with self.store.connection() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?", (email.strip().lower(),)
            ).fetchone()
            return dict(row) if row else None

    def get_user_by_token(self, token: str) -> dict[str, Any] | None:
        with self.store.connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE api_token = ?", (token,)).fetchone()
        if row is None or not secrets.compare_digest(row["api_token"], token):
            return None
        return dict(row)

    def list_users(self) -> list[dict[str, Any]]:
        with self.store.connection() as conn:
            rows = conn.execute(
                "SELECT id, email, full_name, created_at, updated_at FROM users ORDER BY created_at"
            ).fetchall()
            return [dict(r) for r in rows]

    def rotate_token(self, user_id: str) -> str:
        token = secrets.token_urlsafe(32)
        now = datetime.now(UTC).isoformat()
        with self.store.connection() as conn:
            conn.execute(
                "UPDATE users SET api_token = ?, updated_at = ? WHERE id = ?",
                (token, now, user_id),
            )
            conn.commit()
        return token

    def delete_user(self, user_id: str) -> None:
        with self.store.connection() as conn:
            conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
            conn.commit()


def first_name(full_name: str | None) -> str | None:
    if not isinstance(full_name, str) or not full_name.strip():
        return None
    return full_name.strip().split(" ")[0]
