"""FastAPI JSON API for GigMate.

Every ``/api`` route except the waitlist signup and the cron trigger needs a
user's API token, presented as a bearer header, the session cookie, or the
``access_token`` query parameter (which also sets the cookie).
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from fastapi import Body, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response

from gigmate.accounts.settings import SettingsManager, settings_to_form
from gigmate.accounts.users import UserManager
from gigmate.accounts.waitlist import InvalidEmailError, WaitlistManager, build_welcome_email
from gigmate.core.config import cron_secret, mail_from
from gigmate.core.factory import (
    build_mailer,
    build_store,
    digest_fallback_settings,
    load_home_config,
    resolve_home,
)
from gigmate.core.money import shift_metrics
from gigmate.core.store import SQLiteStore
from gigmate.core.types import ChartMode, EntryIn, EntryUpdate, RateSettings, Scope, SettingsIn, ShiftRecord
from gigmate.digest.errors import MailerConfigurationError, MailerError
from gigmate.digest.job import run_weekly_digest_async
from gigmate.digest.mailer import Mailer, OutgoingEmail
from gigmate.entries.manager import EntryManager, EntryNotFoundError
from gigmate.export.csv_export import export_filename, render_entries_csv
from gigmate.reports.buckets import bucket_shifts
from gigmate.reports.insights import TRAILING_DAYS, build_insights, build_patterns

logger = logging.getLogger(__name__)

AUTH_COOKIE_NAME = "gigmate_session"
AUTH_QUERY_PARAM = "access_token"
PUBLIC_PATHS = frozenset({"/healthz", "/api/waitlist", "/api/cron/weekly-summary"})


def _extract_bearer_token(request: Request) -> str | None:
    authorization = request.headers.get("authorization")
    if not authorization:
        return None
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() != "bearer" or not value:
        return None
    return value.strip()


def entry_payload(record: ShiftRecord, settings: RateSettings | None) -> dict[str, Any]:
    payload = record.model_dump(mode="json")
    payload["metrics"] = shift_metrics(record, settings).model_dump(mode="json")
    return payload


def create_app(
    *,
    home: Path | None = None,
    clock: Callable[[], datetime] | None = None,
    mailer: Mailer | None = None,
) -> FastAPI:
    home_dir = resolve_home(home)
    config = load_home_config(home_dir)
    app = FastAPI(title=config.brand_name, docs_url=None, redoc_url=None)
    app.state.home = home_dir
    app.state.auth_query_param = AUTH_QUERY_PARAM
    app.state.auth_cookie_name = AUTH_COOKIE_NAME

    tz = config.tzinfo()

    def _now() -> datetime:
        if clock is not None:
            return clock()
        return datetime.now(tz)

    def _store() -> SQLiteStore:
        return build_store(home_dir)

    def _mailer() -> Mailer:
        return mailer if mailer is not None else build_mailer(config)

    def _user_id(request: Request) -> str:
        return str(request.state.user["id"])

    @app.middleware("http")
    async def _auth_middleware(request: Request, call_next):
        if request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        query_token = request.query_params.get(AUTH_QUERY_PARAM)
        presented = _extract_bearer_token(request) or request.cookies.get(AUTH_COOKIE_NAME) or query_token
        user = UserManager(_store()).get_user_by_token(presented) if presented else None
        if user is None:
            return JSONResponse(status_code=401, content={"error": "Not authenticated"})

        request.state.user = user
        response = await call_next(request)
        if query_token and query_token == presented:
            response.set_cookie(
                key=AUTH_COOKIE_NAME,
                value=query_token,
                httponly=True,
                samesite="strict",
            )
        return response

    @app.on_event("startup")
    async def _startup() -> None:
        _store()

    @app.get("/healthz")
    async def healthz() -> dict[str, Any]:
        return {"ok": True}

    # ---------- Entries ----------

    @app.get("/api/entries")
    async def list_entries(request: Request, limit: int | None = Query(None, ge=1, le=1000)) -> list[dict]:
        store = _store()
        user_id = _user_id(request)
        settings = SettingsManager(store).get(user_id)
        records = EntryManager(store).list_entries(user_id, limit=limit)
        return [entry_payload(record, settings) for record in records]

    @app.post("/api/entries", status_code=201)
    async def create_entry(request: Request, payload: EntryIn) -> dict[str, Any]:
        store = _store()
        user_id = _user_id(request)
        manager = EntryManager(store)
        entry_id = manager.create_from_form(user_id, payload)
        record = manager.get_entry(user_id, entry_id)
        return entry_payload(record, SettingsManager(store).get(user_id))

    @app.get("/api/entries/latest")
    async def latest_entry(request: Request) -> dict[str, Any]:
        store = _store()
        user_id = _user_id(request)
        record = EntryManager(store).latest_entry(user_id)
        if record is None:
            raise HTTPException(status_code=404, detail="No entries yet")
        return entry_payload(record, SettingsManager(store).get(user_id))

    @app.get("/api/entries/{entry_id}")
    async def get_entry(request: Request, entry_id: str) -> dict[str, Any]:
        store = _store()
        user_id = _user_id(request)
        try:
            record = EntryManager(store).get_entry(user_id, entry_id)
        except EntryNotFoundError as exc:
            raise HTTPException(status_code=404, detail="Entry not found") from exc
        return entry_payload(record, SettingsManager(store).get(user_id))

    @app.patch("/api/entries/{entry_id}")
    async def update_entry(request: Request, entry_id: str, payload: EntryUpdate) -> dict[str, Any]:
        store = _store()
        user_id = _user_id(request)
        try:
            record = EntryManager(store).update_from_form(user_id, entry_id, payload)
        except EntryNotFoundError as exc:
            raise HTTPException(status_code=404, detail="Entry not found") from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return entry_payload(record, SettingsManager(store).get(user_id))

    @app.delete("/api/entries/{entry_id}")
    async def delete_entry(request: Request, entry_id: str) -> Response:
        try:
            EntryManager(_store()).delete_entry(_user_id(request), entry_id)
        except EntryNotFoundError as exc:
            raise HTTPException(status_code=404, detail="Entry not found") from exc
        return Response(status_code=204)

    # ---------- Settings ----------

    @app.get("/api/settings")
    async def get_settings(request: Request) -> dict[str, Any]:
        settings = SettingsManager(_store()).get(_user_id(request))
        if settings is None:
            return {"configured": False, "settings": None, "form": None}
        return {
            "configured": True,
            "settings": settings.model_dump(mode="json"),
            "form": settings_to_form(settings),
        }

    @app.put("/api/settings")
    async def put_settings(request: Request, payload: SettingsIn) -> dict[str, Any]:
        settings = SettingsManager(_store()).update_from_form(_user_id(request), payload)
        return {
            "configured": True,
            "settings": settings.model_dump(mode="json"),
            "form": settings_to_form(settings),
        }

    # ---------- Reports ----------

    def _records_and_settings(request: Request) -> tuple[list[ShiftRecord], RateSettings | None]:
        store = _store()
        user_id = _user_id(request)
        return EntryManager(store).list_entries(user_id), SettingsManager(store).get(user_id)

    def _chart(records: list[ShiftRecord], settings: RateSettings | None, mode: ChartMode) -> list[dict]:
        buckets = bucket_shifts(
            records,
            settings,
            mode=mode,
            now=_now(),
            week_starts_on=config.chart.week_starts_on,
            weeks=config.chart.weeks,
            months=config.chart.months,
        )
        return [bucket.model_dump(mode="json") for bucket in buckets]

    @app.get("/api/chart")
    async def chart(request: Request, mode: ChartMode = Query(ChartMode.DAY)) -> dict[str, Any]:
        records, settings = _records_and_settings(request)
        return {"mode": mode.value, "buckets": _chart(records, settings, mode)}

    @app.get("/api/insights")
    async def insights(request: Request, scope: Scope = Query(Scope.WEEK)) -> dict[str, Any]:
        records, settings = _records_and_settings(request)
        result = build_insights(
            records, settings, now=_now(), scope=scope, week_starts_on=config.chart.week_starts_on
        )
        return result.model_dump(mode="json")

    @app.get("/api/patterns")
    async def patterns(request: Request, days: int = Query(TRAILING_DAYS, ge=1, le=365)) -> dict[str, Any]:
        records, settings = _records_and_settings(request)
        return build_patterns(records, settings, now=_now(), days=days).model_dump(mode="json")

    @app.get("/api/dashboard")
    async def dashboard(
        request: Request,
        scope: Scope = Query(Scope.WEEK),
        mode: ChartMode = Query(ChartMode.DAY),
    ) -> dict[str, Any]:
        records, settings = _records_and_settings(request)
        now = _now()
        return {
            "settings_configured": settings is not None,
            "entry_count": len(records),
            "insights": build_insights(
                records, settings, now=now, scope=scope, week_starts_on=config.chart.week_starts_on
            ).model_dump(mode="json"),
            "chart": {"mode": mode.value, "buckets": _chart(records, settings, mode)},
            "patterns": build_patterns(records, settings, now=now).model_dump(mode="json"),
        }

    @app.get("/api/export")
    async def export_csv(request: Request) -> Response:
        records = EntryManager(_store()).list_entries(_user_id(request))
        filename = export_filename(_now().date())
        return Response(
            content=render_entries_csv(records),
            media_type="text/csv; charset=utf-8",
            headers={
                "Content-Disposition": f'attachment; filename="{filename}"',
                "Cache-Control": "no-store",
            },
        )

    # ---------- Public ----------

    @app.post("/api/waitlist")
    async def join_waitlist(payload: dict[str, Any] | None = Body(None)) -> JSONResponse:
        email = str((payload or {}).get("email") or "").strip()
        try:
            created = WaitlistManager(_store()).add(email)
        except InvalidEmailError:
            return JSONResponse(status_code=400, content={"ok": False, "error": "Invalid email"})

        sender = mail_from(config)
        result: dict[str, Any] = {"ok": True, "saved": True, "created": created, "emailed": False}
        if not created:
            return JSONResponse(content=result)
        if not sender:
            result["note"] = "Email sender not configured."
            return JSONResponse(content=result)

        subject, html, text = build_welcome_email(config.brand_name)
        try:
            _mailer().send(OutgoingEmail(from_address=sender, to=email, subject=subject, html=html, text=text))
        except MailerError as exc:
            logger.warning("waitlist welcome email to %s failed", email, exc_info=True)
            result["note"] = str(exc)
            return JSONResponse(content=result)

        result["emailed"] = True
        return JSONResponse(content=result)

    @app.get("/api/cron/weekly-summary")
    async def weekly_summary(request: Request) -> JSONResponse:
        expected = cron_secret()
        if expected:
            candidates = [_extract_bearer_token(request), request.query_params.get("secret")]
            if not any(c and secrets.compare_digest(c, expected) for c in candidates):
                return JSONResponse(status_code=401, content={"error": "Unauthorized"})

        sender = mail_from(config)
        digest_mailer = _mailer()
        try:
            digest_mailer.check_configured()
        except MailerConfigurationError as exc:
            return JSONResponse(status_code=500, content={"error": str(exc)})
        if not sender:
            return JSONResponse(
                status_code=500,
                content={"error": "Missing sender address (MAIL_FROM or WEEKLY_SUMMARY_FROM_EMAIL)."},
            )

        report = await run_weekly_digest_async(
            _store(),
            digest_mailer,
            now=_now(),
            from_address=sender,
            brand=config.brand_name,
            fallback=digest_fallback_settings(config),
        )
        return JSONResponse(content=report.model_dump(mode="json"))

    return app
