"""Factory functions for building GigMate runtime components.

Shared by the CLI and the web app so both wire things the same way.
"""

from __future__ import annotations

from pathlib import Path

from gigmate.core.config import ConfigError, GigMateConfig, load_config
from gigmate.core.store import SQLiteStore
from gigmate.core.types import RateSettings
from gigmate.digest.mailer import Mailer, RecordingMailer, ResendMailer


def resolve_home(home: Path | None) -> Path:
    """Normalize .gigmate home directory path."""
    if home is not None:
        return home.expanduser().resolve()
    return Path(".gigmate").resolve()


def config_path(home: Path) -> Path:
    return home / "config.yml"


def load_home_config(home: Path) -> GigMateConfig:
    return load_config(path=config_path(home)).config


def build_store(home: Path) -> SQLiteStore:
    return SQLiteStore(home / "gigmate.db")


def build_mailer(config: GigMateConfig, *, dry_run: bool = False) -> Mailer:
    if dry_run:
        return RecordingMailer()
    if config.mail.provider != "resend":
        raise ConfigError(f"unsupported mail provider: {config.mail.provider}")
    return ResendMailer(
        base_url=config.mail.base_url,
        timeout_seconds=config.mail.timeout_seconds,
    )


def default_rate_settings(config: GigMateConfig) -> RateSettings:
    """Rates seeded into a new user's settings row."""
    return RateSettings(
        mileage_rate_cents=config.rates.default_mileage_rate_cents,
        tax_rate_bps=config.rates.default_tax_rate_bps,
    )


def digest_fallback_settings(config: GigMateConfig) -> RateSettings:
    """Rates the digest applies to users with no settings row."""
    return RateSettings(
        mileage_rate_cents=config.digest.fallback_mileage_rate_cents,
        tax_rate_bps=config.digest.fallback_tax_rate_bps,
    )
