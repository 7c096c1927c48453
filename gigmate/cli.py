from __future__ import annotations

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError

from gigmate.accounts.settings import SettingsManager, settings_to_form
from gigmate.accounts.users import UserExistsError, UserManager
from gigmate.core.config import (
    ConfigError,
    GigMateConfig,
    env_summary,
    load_config,
    mail_from,
    save_config_atomic,
)
from gigmate.core.factory import (
    build_mailer,
    build_store,
    config_path,
    default_rate_settings,
    digest_fallback_settings,
    resolve_home,
)
from gigmate.core.money import format_currency
from gigmate.core.store import SQLiteStore
from gigmate.core.types import ChartMode, EntryIn, Platform, Scope, SettingsIn, parse_timestamp
from gigmate.digest.errors import MailerConfigurationError
from gigmate.digest.job import run_weekly_digest
from gigmate.digest.mailer import RecordingMailer
from gigmate.entries.manager import EntryManager
from gigmate.export.csv_export import export_filename, write_entries_csv
from gigmate.reports.buckets import bucket_shifts
from gigmate.reports.insights import build_insights, build_patterns

app = typer.Typer(help="GigMate: net profit tracking for gig workers")
users_app = typer.Typer(help="Manage user accounts")
entries_app = typer.Typer(help="Log and list shifts")
settings_app = typer.Typer(help="Per-user mileage and tax rates")
digest_app = typer.Typer(help="Weekly summary emails")

app.add_typer(users_app, name="users")
app.add_typer(entries_app, name="entries")
app.add_typer(settings_app, name="settings")
app.add_typer(digest_app, name="digest")

HOME_HELP = "GigMate home directory"


def _load(home: Path | None) -> tuple[Path, GigMateConfig]:
    home_dir = resolve_home(home)
    try:
        config = load_config(path=config_path(home_dir)).config
    except ConfigError as exc:
        typer.echo(f"config error: {exc}")
        raise typer.Exit(code=1)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )
    return home_dir, config


def _now(config: GigMateConfig, at: str | None) -> datetime:
    if at is None:
        return datetime.now(config.tzinfo())
    parsed = parse_timestamp(at)
    if parsed is None:
        typer.echo(f"invalid --now timestamp: {at}")
        raise typer.Exit(code=1)
    return parsed.astimezone(config.tzinfo())


def _require_user(store: SQLiteStore, email: str) -> dict[str, Any]:
    user = UserManager(store).get_user_by_email(email)
    if user is None:
        typer.echo(f"unknown user: {email}")
        raise typer.Exit(code=1)
    return user


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, sort_keys=True))


@app.command("init")
def init_command(home: Path | None = typer.Option(None, help=HOME_HELP)) -> None:
    """Create the home directory, config file and database."""
    home_dir, config = _load(home)
    path = config_path(home_dir)
    if not path.exists():
        save_config_atomic(config=config, path=path)
    build_store(home_dir)
    typer.echo(f"initialized GigMate home: {home_dir}")
    typer.echo(f"config: {path}")
    typer.echo(f"sqlite db: {home_dir / 'gigmate.db'}")
    typer.echo(f"env: {json.dumps(env_summary(), sort_keys=True)}")


# ---------- users ----------


@users_app.command("add")
def users_add(
    email: str = typer.Argument(..., help="Email address"),
    full_name: str | None = typer.Option(None, "--name", help="Full name"),
    home: Path | None = typer.Option(None, help=HOME_HELP),
) -> None:
    """Add a user with the default rates and print its API token."""
    home_dir, config = _load(home)
    manager = UserManager(build_store(home_dir))
    try:
        user_id, token = manager.create_user(
            email=email, full_name=full_name, settings=default_rate_settings(config)
        )
    except UserExistsError:
        typer.echo(f"user '{email}' already exists")
        raise typer.Exit(code=1)
    typer.echo(f"created user: {email} (id={user_id[:8]})")
    typer.echo(f"api token: {token}")


@users_app.command("list")
def users_list(home: Path | None = typer.Option(None, help=HOME_HELP)) -> None:
    """List all users."""
    home_dir, _ = _load(home)
    users = UserManager(build_store(home_dir)).list_users()
    if not users:
        typer.echo("no users found (run `gigmate users add` first)")
        return
    for user in users:
        typer.echo(f"{user['id'][:8]} | {user['email']} | {user['full_name'] or '-'} | {user['created_at'][:19]}")


@users_app.command("rotate-token")
def users_rotate_token(
    email: str = typer.Argument(..., help="Email address"),
    home: Path | None = typer.Option(None, help=HOME_HELP),
) -> None:
    """Issue a new API token; the old one stops working."""
    home_dir, _ = _load(home)
    store = build_store(home_dir)
    user = _require_user(store, email)
    token = UserManager(store).rotate_token(user["id"])
    typer.echo(f"api token: {token}")


# ---------- entries ----------


@entries_app.command("add")
def entries_add(
    email: str = typer.Option(..., "--user", help="Owner email"),
    started_at: str = typer.Option(..., "--start", help="ISO-8601 start time"),
    ended_at: str = typer.Option(..., "--end", help="ISO-8601 end time"),
    gross: float = typer.Option(..., "--gross", help="Gross pay in dollars"),
    platform: Platform = typer.Option(Platform.UBER, "--platform", help="Platform"),
    tips: float = typer.Option(0.0, "--tips", help="Tips in dollars"),
    miles: float = typer.Option(0.0, "--miles", help="Miles driven"),
    fuel_cost: float = typer.Option(0.0, "--fuel", help="Fuel cost in dollars"),
    notes: str | None = typer.Option(None, "--notes", help="Free-text notes"),
    home: Path | None = typer.Option(None, help=HOME_HELP),
) -> None:
    """Log one shift."""
    home_dir, _ = _load(home)
    store = build_store(home_dir)
    user = _require_user(store, email)
    try:
        payload = EntryIn(
            platform=platform,
            started_at=started_at,
            ended_at=ended_at,
            gross=gross,
            tips=tips,
            miles=miles,
            fuel_cost=fuel_cost,
            notes=notes,
        )
    except ValidationError as exc:
        typer.echo(f"invalid entry: {exc}")
        raise typer.Exit(code=1)
    entry_id = EntryManager(store).create_from_form(user["id"], payload)
    typer.echo(f"created entry: {entry_id}")


@entries_app.command("list")
def entries_list(
    email: str = typer.Option(..., "--user", help="Owner email"),
    limit: int = typer.Option(20, "--limit", min=1, help="Maximum rows"),
    home: Path | None = typer.Option(None, help=HOME_HELP),
) -> None:
    """List recent shifts, newest first."""
    home_dir, _ = _load(home)
    store = build_store(home_dir)
    user = _require_user(store, email)
    records = EntryManager(store).list_entries(user["id"], limit=limit)
    if not records:
        typer.echo("no entries")
        return
    for record in records:
        started = record.started_at.isoformat() if record.started_at else "-"
        typer.echo(
            f"{(record.id or '')[:8]} | {record.platform.value:10s} | {started} | "
            f"gross={format_currency(record.gross_cents)} miles={record.miles:.1f}"
        )


# ---------- settings ----------


@settings_app.command("show")
def settings_show(
    email: str = typer.Option(..., "--user", help="Owner email"),
    home: Path | None = typer.Option(None, help=HOME_HELP),
) -> None:
    """Print a user's rates."""
    home_dir, _ = _load(home)
    store = build_store(home_dir)
    user = _require_user(store, email)
    settings = SettingsManager(store).get(user["id"])
    if settings is None:
        typer.echo("settings: not configured")
        return
    form = settings_to_form(settings)
    typer.echo(f"mileage_rate: ${form['mileage_rate']}/mile")
    typer.echo(f"tax_rate: {form['tax_rate']}%")


@settings_app.command("set")
def settings_set(
    email: str = typer.Option(..., "--user", help="Owner email"),
    mileage_rate: float = typer.Option(..., "--mileage-rate", help="Dollars per mile, e.g. 0.67"),
    tax_rate: float = typer.Option(..., "--tax-rate", help="Percent, e.g. 15"),
    home: Path | None = typer.Option(None, help=HOME_HELP),
) -> None:
    """Update a user's rates."""
    home_dir, _ = _load(home)
    store = build_store(home_dir)
    user = _require_user(store, email)
    try:
        payload = SettingsIn(mileage_rate=mileage_rate, tax_rate=tax_rate)
    except ValidationError as exc:
        typer.echo(f"invalid settings: {exc}")
        raise typer.Exit(code=1)
    settings = SettingsManager(store).update_from_form(user["id"], payload)
    typer.echo(
        f"saved: mileage_rate_cents={settings.mileage_rate_cents} tax_rate_bps={settings.tax_rate_bps}"
    )


# ---------- reports ----------


@app.command("stats")
def stats_command(
    email: str = typer.Option(..., "--user", help="Owner email"),
    scope: Scope = typer.Option(Scope.WEEK, "--scope", help="week or all"),
    at: str | None = typer.Option(None, "--now", help="Reference time (ISO-8601); defaults to now"),
    home: Path | None = typer.Option(None, help=HOME_HELP),
) -> None:
    """Print insights and patterns as JSON."""
    home_dir, config = _load(home)
    store = build_store(home_dir)
    user = _require_user(store, email)
    now = _now(config, at)
    records = EntryManager(store).list_entries(user["id"])
    settings = SettingsManager(store).get(user["id"])
    _echo_json(
        {
            "insights": build_insights(
                records, settings, now=now, scope=scope, week_starts_on=config.chart.week_starts_on
            ).model_dump(mode="json"),
            "patterns": build_patterns(records, settings, now=now).model_dump(mode="json"),
        }
    )


@app.command("chart")
def chart_command(
    email: str = typer.Option(..., "--user", help="Owner email"),
    mode: ChartMode = typer.Option(ChartMode.DAY, "--mode", help="day, week or month"),
    at: str | None = typer.Option(None, "--now", help="Reference time (ISO-8601); defaults to now"),
    home: Path | None = typer.Option(None, help=HOME_HELP),
) -> None:
    """Print net profit per day, week or month."""
    home_dir, config = _load(home)
    store = build_store(home_dir)
    user = _require_user(store, email)
    buckets = bucket_shifts(
        EntryManager(store).list_entries(user["id"]),
        SettingsManager(store).get(user["id"]),
        mode=mode,
        now=_now(config, at),
        week_starts_on=config.chart.week_starts_on,
        weeks=config.chart.weeks,
        months=config.chart.months,
    )
    if not buckets:
        typer.echo("no entries in range")
        return
    for bucket in buckets:
        typer.echo(f"{bucket.label:16s} {format_currency(bucket.net_cents):>12s} {bucket.hours:6.2f}h")


@app.command("export")
def export_command(
    email: str = typer.Option(..., "--user", help="Owner email"),
    output: Path | None = typer.Option(None, "--output", help="CSV path; defaults to gigmate-entries-<date>.csv"),
    home: Path | None = typer.Option(None, help=HOME_HELP),
) -> None:
    """Export a user's entries to CSV."""
    home_dir, config = _load(home)
    store = build_store(home_dir)
    user = _require_user(store, email)
    records = EntryManager(store).list_entries(user["id"])
    path = output or Path(export_filename(datetime.now(config.tzinfo()).date()))
    result = write_entries_csv(records, path)
    typer.echo(f"wrote {result['rows_written']} rows to {result['output_path']}")


# ---------- digest ----------


@digest_app.command("run")
def digest_run(
    dry_run: bool = typer.Option(False, "--dry-run", help="Build emails without sending"),
    at: str | None = typer.Option(None, "--now", help="Reference time (ISO-8601); defaults to now"),
    home: Path | None = typer.Option(None, help=HOME_HELP),
) -> None:
    """Send the weekly summary to every user with recent entries."""
    home_dir, config = _load(home)
    sender = mail_from(config)
    if not sender:
        if not dry_run:
            typer.echo("digest failed: set MAIL_FROM or WEEKLY_SUMMARY_FROM_EMAIL")
            raise typer.Exit(code=1)
        sender = f"{config.brand_name} <noreply@localhost>"

    try:
        mailer = build_mailer(config, dry_run=dry_run)
        mailer.check_configured()
    except (ConfigError, MailerConfigurationError) as exc:
        typer.echo(f"digest failed: {exc}")
        raise typer.Exit(code=1)

    report = run_weekly_digest(
        build_store(home_dir),
        mailer,
        now=_now(config, at),
        from_address=sender,
        brand=config.brand_name,
        fallback=digest_fallback_settings(config),
    )
    typer.echo(report.message)
    typer.echo(f"period: {report.week_label}")
    typer.echo(
        f"users: {report.total_users_with_entries} sent: {report.sent_count} skipped: {report.skipped_count}"
    )
    for result in report.results:
        status = f"skipped ({result.reason})" if result.skipped else "sent"
        typer.echo(
            f"  {result.user_id[:8]} {status} "
            f"this_week={result.this_week_entry_count} previous_week={result.previous_week_entry_count}"
        )
    if dry_run and isinstance(mailer, RecordingMailer):
        for message in mailer.sent:
            typer.echo(f"\n--- {message.to}: {message.subject} ---")
            typer.echo(message.text)


# ---------- web ----------


@app.command("web")
def web_command(
    port: int = typer.Option(8741, "--port", help="Port to serve on"),
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
    home: Path | None = typer.Option(None, help=HOME_HELP),
) -> None:
    """Serve the JSON API."""
    import uvicorn

    from gigmate.web.app import create_app

    home_dir, config = _load(home)
    app_instance = create_app(home=home_dir)
    typer.echo(f"GigMate API on http://{host}:{port} (home: {home_dir})")
    typer.echo("authenticate with a user's api token: Authorization: Bearer <token>")
    uvicorn.run(app_instance, host=host, port=port, log_level=config.log_level.lower())


def main() -> None:
    app()


if __name__ == "__main__":
    main()
