"""Tests for users, rate settings and the waitlist."""

from __future__ import annotations

import pytest

from gigmate.accounts.settings import SettingsManager, settings_to_form
from gigmate.accounts.users import UserExistsError, UserManager, first_name
from gigmate.accounts.waitlist import InvalidEmailError, WaitlistManager, build_welcome_email
from gigmate.core.store import SQLiteStore
from gigmate.core.types import RateSettings, SettingsIn


def test_create_user_and_lookup_by_token(store: SQLiteStore) -> None:
    users = UserManager(store)
    user_id, token = users.create_user(email="Driver@Example.com", full_name="Sam Rivera")

    by_token = users.get_user_by_token(token)
    assert by_token is not None
    assert by_token["id"] == user_id
    assert by_token["email"] == "driver@example.com"
    assert users.get_user_by_token("wrong-token") is None
    assert users.get_user_by_email("DRIVER@example.com")["id"] == user_id


def test_duplicate_email_is_rejected(store: SQLiteStore) -> None:
    users = UserManager(store)
    users.create_user(email="a@example.com")

    with pytest.raises(UserExistsError):
        users.create_user(email="A@example.com")


def test_users_without_email_can_coexist(store: SQLiteStore) -> None:
    users = UserManager(store)
    users.create_user(email=None)
    users.create_user(email=None)

    assert len(users.list_users()) == 2


def test_create_user_seeds_settings(store: SQLiteStore) -> None:
    user_id, _ = UserManager(store).create_user(
        email="a@example.com", settings=RateSettings(mileage_rate_cents=67, tax_rate_bps=1500)
    )

    assert SettingsManager(store).get(user_id) == RateSettings(mileage_rate_cents=67, tax_rate_bps=1500)


def test_rotate_token_invalidates_old_token(store: SQLiteStore) -> None:
    users = UserManager(store)
    user_id, old = users.create_user(email="a@example.com")

    new = users.rotate_token(user_id)

    assert users.get_user_by_token(old) is None
    assert users.get_user_by_token(new)["id"] == user_id


def test_delete_user_cascades_settings(store: SQLiteStore) -> None:
    users = UserManager(store)
    user_id, _ = users.create_user(email="a@example.com", settings=RateSettings(mileage_rate_cents=1))

    users.delete_user(user_id)

    assert users.get_user(user_id) is None
    assert SettingsManager(store).get(user_id) is None


@pytest.mark.parametrize(
    "full_name,expected",
    [("Sam Rivera", "Sam"), ("  Ana  ", "Ana"), ("", None), (None, None), ("   ", None)],
)
def test_first_name(full_name, expected) -> None:
    assert first_name(full_name) == expected


def test_settings_absent_then_upserted(store: SQLiteStore) -> None:
    user_id, _ = UserManager(store).create_user(email="a@example.com")
    settings = SettingsManager(store)

    assert settings.get(user_id) is None

    settings.update(user_id, mileage_rate_cents=65, tax_rate_bps=2500)
    updated = settings.update_from_form(user_id, SettingsIn(mileage_rate=0.67, tax_rate=15))

    assert updated == RateSettings(mileage_rate_cents=67, tax_rate_bps=1500)
    assert settings.get(user_id) == updated
    with store.connection() as conn:
        count = conn.execute("SELECT COUNT(*) FROM settings WHERE user_id = ?", (user_id,)).fetchone()[0]
    assert count == 1


def test_settings_form_units() -> None:
    form = settings_to_form(RateSettings(mileage_rate_cents=67, tax_rate_bps=1500))

    assert form == {"mileage_rate": "0.67", "tax_rate": "15.00"}


def test_waitlist_ignores_duplicates(store: SQLiteStore) -> None:
    waitlist = WaitlistManager(store)

    assert waitlist.add(" New@Example.com ") is True
    assert waitlist.add("new@example.com") is False
    assert waitlist.list_emails() == ["new@example.com"]


@pytest.mark.parametrize("email", ["", "no-at-sign", "a@b", "two words@example.com"])
def test_waitlist_rejects_invalid_email(store: SQLiteStore, email: str) -> None:
    with pytest.raises(InvalidEmailError):
        WaitlistManager(store).add(email)


def test_welcome_email_mentions_brand() -> None:
    subject, html, text = build_welcome_email("GigMate")

    assert subject.startswith("Welcome to GigMate")
    assert "Thanks for joining GigMate" in html
    assert "true profit" in text
