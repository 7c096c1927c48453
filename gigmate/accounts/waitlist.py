from __future__ import annotations

import re
from datetime import UTC, datetime

from jinja2 import Template

from gigmate.core.store import SQLiteStore

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class InvalidEmailError(ValueError):
    pass


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email))


class WaitlistManager:
    """Collects waitlist signups; duplicate emails are ignored."""

    def __init__(self, store: SQLiteStore) -> None:
        self.store = store

    def add(self, email: str) -> bool:
        """Store an email. Returns True when it was new."""
        cleaned = (email or "").strip()
        if not cleaned or not is_valid_email(cleaned):
            raise InvalidEmailError("Invalid email")

        now = datetime.now(UTC).isoformat()
        with self.store.connection() as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO waitlist_emails (email, created_at) VALUES (?, ?)",
                (cleaned.lower(), now),
            )
            conn.commit()
            return cursor.rowcount > 0

    def list_emails(self) -> list[str]:
        with self.store.connection() as conn:
            rows = conn.execute("SELECT email FROM waitlist_emails ORDER BY id").fetchall()
            return [row["email"] for row in rows]


_WELCOME_HTML = Template(
    """<!doctype html><html><body>
  <h2>Thanks for joining {{ brand }} 👋</h2>
  <p>{{ brand }} helps gig workers track true profit after fuel, mileage, and taxes.</p>
</body></html>""",
    autoescape=True,
)


def build_welcome_email(brand: str = "GigMate") -> tuple[str, str, str]:
    """Subject, HTML and text of the waitlist welcome message."""
    subject = f"Welcome to {brand}: see your true profit"
    text = (
        f"Thanks for joining {brand}.\n"
        f"{brand} helps gig workers track true profit after fuel, mileage, and taxes."
    )
    return subject, _WELCOME_HTML.render(brand=brand), text
