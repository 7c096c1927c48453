from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from conftest import NOW
from gigmate.accounts.users import UserManager
from gigmate.core.factory import build_store
from gigmate.core.types import RateSettings
from gigmate.digest.mailer import RecordingMailer
from gigmate.web.app import AUTH_COOKIE_NAME, create_app

SHIFT = {
    "platform": "Uber",
    "started_at": "2026-10-13T14:00:00Z",
    "ended_at": "2026-10-13T16:00:00Z",
    "gross": 100,
    "fuel_cost": 10,
    "miles": 20,
}


@pytest.fixture()
def home(tmp_path: Path) -> Path:
    return tmp_path / "home"


@pytest.fixture()
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture()
def client(home: Path, mailer: RecordingMailer) -> TestClient:
    return TestClient(create_app(home=home, clock=lambda: NOW, mailer=mailer))


def _user(home: Path, email: str, *, settings: bool = True) -> str:
    _, token = UserManager(build_store(home)).create_user(
        email=email,
        full_name="Sam Rivera",
        settings=RateSettings(mileage_rate_cents=67, tax_rate_bps=1500) if settings else None,
    )
    return token


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def test_healthz_is_public(client: TestClient) -> None:
    assert client.get("/healthz").json() == {"ok": True}


def test_api_requires_token(client: TestClient, home: Path) -> None:
    _user(home, "sam@example.com")

    missing = client.get("/api/entries")
    wrong = client.get("/api/entries", headers=_auth("nope"))

    assert missing.status_code == 401
    assert missing.json() == {"error": "Not authenticated"}
    assert wrong.status_code == 401


def test_query_token_sets_session_cookie(client: TestClient, home: Path) -> None:
    token = _user(home, "sam@example.com")

    first = client.get(f"/api/entries?access_token={token}")
    assert first.status_code == 200
    assert client.cookies.get(AUTH_COOKIE_NAME) == token

    assert client.get("/api/entries").status_code == 200


def test_entry_crud_with_metrics(client: TestClient, home: Path) -> None:
    headers = _auth(_user(home, "sam@example.com"))

    created = client.post("/api/entries", json=SHIFT, headers=headers)
    assert created.status_code == 201
    body = created.json()
    assert body["gross_cents"] == 10000
    assert body["fuel_cost_cents"] == 1000
    assert body["metrics"] == {
        "mileage_deduction_cents": 1340,
        "tax_cents": 1149,
        "net_cents": 7851,
        "hours": 2.0,
    }
    entry_id = body["id"]

    assert client.get(f"/api/entries/{entry_id}", headers=headers).json()["id"] == entry_id
    assert client.get("/api/entries/latest", headers=headers).json()["id"] == entry_id
    assert [e["id"] for e in client.get("/api/entries", headers=headers).json()] == [entry_id]

    patched = client.patch(f"/api/entries/{entry_id}", json={"tips": 5.5}, headers=headers)
    assert patched.status_code == 200
    assert patched.json()["tips_cents"] == 550
    assert patched.json()["gross_cents"] == 10000

    assert client.delete(f"/api/entries/{entry_id}", headers=headers).status_code == 204
    assert client.get(f"/api/entries/{entry_id}", headers=headers).status_code == 404
    assert client.get("/api/entries/latest", headers=headers).status_code == 404


def test_entry_validation(client: TestClient, home: Path) -> None:
    headers = _auth(_user(home, "sam@example.com"))
    entry_id = client.post("/api/entries", json=SHIFT, headers=headers).json()["id"]

    assert client.post("/api/entries", json={**SHIFT, "gross": -1}, headers=headers).status_code == 422
    assert client.patch(f"/api/entries/{entry_id}", json={"bogus": 1}, headers=headers).status_code == 422
    cleared = client.patch(f"/api/entries/{entry_id}", json={"started_at": None}, headers=headers)
    assert cleared.status_code == 400


def test_entries_of_other_users_are_hidden(client: TestClient, home: Path) -> None:
    owner = _auth(_user(home, "sam@example.com"))
    other = _auth(_user(home, "alex@example.com"))
    entry_id = client.post("/api/entries", json=SHIFT, headers=owner).json()["id"]

    assert client.get(f"/api/entries/{entry_id}", headers=other).status_code == 404
    assert client.patch(f"/api/entries/{entry_id}", json={"tips": 1}, headers=other).status_code == 404
    assert client.delete(f"/api/entries/{entry_id}", headers=other).status_code == 404
    assert client.get("/api/entries", headers=other).json() == []


def test_settings_round_trip(client: TestClient, home: Path) -> None:
    headers = _auth(_user(home, "sam@example.com", settings=False))

    assert client.get("/api/settings", headers=headers).json() == {
        "configured": False,
        "settings": None,
        "form": None,
    }

    saved = client.put("/api/settings", json={"mileage_rate": 0.67, "tax_rate": 15}, headers=headers)

    assert saved.status_code == 200
    assert saved.json()["settings"] == {"mileage_rate_cents": 67, "tax_rate_bps": 1500}
    assert client.get("/api/settings", headers=headers).json()["form"] == {
        "mileage_rate": "0.67",
        "tax_rate": "15.00",
    }
    assert client.put("/api/settings", json={"mileage_rate": 1, "tax_rate": 150}, headers=headers).status_code == 422


def test_chart_insights_and_dashboard(client: TestClient, home: Path) -> None:
    headers = _auth(_user(home, "sam@example.com"))
    client.post("/api/entries", json=SHIFT, headers=headers)

    chart = client.get("/api/chart?mode=day", headers=headers).json()
    assert chart["mode"] == "day"
    assert len(chart["buckets"]) == 7
    assert sum(bucket["net_cents"] for bucket in chart["buckets"]) == 7851

    insights = client.get("/api/insights?scope=week", headers=headers).json()
    assert insights["scope"] == "week"
    assert insights["totals"]["count"] == 1
    assert insights["totals"]["net_cents"] == 7851
    assert insights["top_platform_this_month"] == {"platform": "Uber", "net_cents": 7851}

    dashboard = client.get("/api/dashboard", headers=headers).json()
    assert dashboard["settings_configured"] is True
    assert dashboard["entry_count"] == 1
    assert dashboard["chart"]["mode"] == "day"
    assert dashboard["patterns"]["days"] == 30

    assert client.get("/api/chart?mode=year", headers=headers).status_code == 422


def test_export_is_csv_attachment(client: TestClient, home: Path) -> None:
    headers = _auth(_user(home, "sam@example.com"))
    client.post("/api/entries", json=SHIFT, headers=headers)

    response = client.get("/api/export", headers=headers)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.headers["content-disposition"] == 'attachment; filename="gigmate-entries-2026-10-14.csv"'
    assert response.headers["cache-control"] == "no-store"
    assert len(response.text.split("\r\n")) == 2


def test_waitlist_validates_and_dedupes(client: TestClient, mailer: RecordingMailer) -> None:
    invalid = client.post("/api/waitlist", json={"email": "not-an-email"})
    assert invalid.status_code == 400
    assert invalid.json() == {"ok": False, "error": "Invalid email"}
    assert client.post("/api/waitlist").status_code == 400

    first = client.post("/api/waitlist", json={"email": "fan@example.com"}).json()
    again = client.post("/api/waitlist", json={"email": "FAN@example.com"}).json()

    assert first["created"] is True
    assert first["emailed"] is False
    assert "note" in first
    assert again["created"] is False
    assert mailer.sent == []


def test_waitlist_sends_welcome_email_when_sender_configured(
    client: TestClient, mailer: RecordingMailer, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("MAIL_FROM", "GigMate <hello@example.com>")

    body = client.post("/api/waitlist", json={"email": "fan@example.com"}).json()

    assert body["emailed"] is True
    [email] = mailer.sent
    assert email.to == "fan@example.com"
    assert email.subject.startswith("Welcome to GigMate")


def test_cron_requires_secret_when_configured(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("CRON_SECRET", "s3cret")
    monkeypatch.setenv("MAIL_FROM", "GigMate <hello@example.com>")

    assert client.get("/api/cron/weekly-summary").status_code == 401
    assert client.get("/api/cron/weekly-summary?secret=wrong").json() == {"error": "Unauthorized"}
    assert client.get("/api/cron/weekly-summary?secret=s3cret").status_code == 200
    assert client.get("/api/cron/weekly-summary", headers=_auth("s3cret")).status_code == 200


def test_cron_without_sender_is_server_error(client: TestClient) -> None:
    response = client.get("/api/cron/weekly-summary")

    assert response.status_code == 500
    assert "MAIL_FROM" in response.json()["error"]


def test_cron_runs_weekly_digest(
    client: TestClient, home: Path, mailer: RecordingMailer, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("MAIL_FROM", "GigMate <hello@example.com>")
    headers = _auth(_user(home, "sam@example.com"))
    client.post("/api/entries", json=SHIFT, headers=headers)

    report = client.get("/api/cron/weekly-summary").json()

    assert report["message"] == "Weekly summaries processed."
    assert report["week_label"] == "Oct 8 – Oct 14"
    assert report["sent_count"] == 1
    assert mailer.sent[0].to == "sam@example.com"
