from __future__ import annotations

import os
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ConfigError(RuntimeError):
    """Raised when GigMate config cannot be parsed or saved."""


CURRENT_CONFIG_VERSION = 1

CRON_SECRET_ENV_VARS = ("GIGMATE_CRON_SECRET", "CRON_SECRET")
MAIL_FROM_ENV_VARS = ("MAIL_FROM", "WEEKLY_SUMMARY_FROM_EMAIL")
RESEND_API_KEY_ENV = "RESEND_API_KEY"


class RatesConfig(BaseModel):
    """Rates seeded into a new user's settings row."""

    model_config = ConfigDict(extra="forbid")

    default_mileage_rate_cents: int = Field(67, ge=0)
    default_tax_rate_bps: int = Field(1500, ge=0, le=10000)


class ChartConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    week_starts_on: int = Field(0, ge=0, le=6)
    weeks: int = Field(8, ge=1)
    months: int = Field(12, ge=1)


class DigestConfig(BaseModel):
    """Weekly digest settings; fallback rates apply to users without settings."""

    model_config = ConfigDict(extra="forbid")

    fallback_mileage_rate_cents: int = Field(65, ge=0)
    fallback_tax_rate_bps: int = Field(2500, ge=0, le=10000)
    mail_from: str | None = None


class MailConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    provider: str = "resend"
    base_url: str = "https://api.resend.com"
    timeout_seconds: float = Field(30.0, gt=0)


class GigMateConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    config_version: int = CURRENT_CONFIG_VERSION
    log_level: str = "info"
    timezone: str = "UTC"
    brand_name: str = "GigMate"
    rates: RatesConfig = Field(default_factory=RatesConfig)
    chart: ChartConfig = Field(default_factory=ChartConfig)
    digest: DigestConfig = Field(default_factory=DigestConfig)
    mail: MailConfig = Field(default_factory=MailConfig)

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone: {value}") from exc
        return value

    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class LoadedConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    config: GigMateConfig
    existed: bool


def default_config() -> GigMateConfig:
    return GigMateConfig()


def load_config(*, path: Path) -> LoadedConfig:
    if not path.exists():
        return LoadedConfig(config=default_config(), existed=False)

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid config yaml at {path}: {exc}") from exc

    if raw is None:
        return LoadedConfig(config=default_config(), existed=True)
    if not isinstance(raw, dict):
        raise ConfigError("config root must be a mapping")

    try:
        parsed = GigMateConfig.model_validate(raw)
    except Exception as exc:
        raise ConfigError(f"invalid config schema: {exc}") from exc

    if parsed.config_version > CURRENT_CONFIG_VERSION:
        raise ConfigError(
            f"config_version {parsed.config_version} is newer than supported ({CURRENT_CONFIG_VERSION})"
        )
    return LoadedConfig(config=parsed, existed=True)


def save_config_atomic(*, config: GigMateConfig, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")

    payload = config.model_dump(mode="json")
    content = yaml.safe_dump(payload, sort_keys=False)

    tmp_path.write_text(content, encoding="utf-8")
    tmp_path.replace(path)


def _first_env(names: tuple[str, ...]) -> str | None:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return None


def cron_secret() -> str | None:
    return _first_env(CRON_SECRET_ENV_VARS)


def mail_from(config: GigMateConfig) -> str | None:
    """Sender address: environment first, then config."""
    return _first_env(MAIL_FROM_ENV_VARS) or config.digest.mail_from


def env_summary() -> dict[str, Any]:
    """Which secrets are present, without revealing them."""
    return {
        "cron_secret": cron_secret() is not None,
        "resend_api_key": bool(os.getenv(RESEND_API_KEY_ENV)),
        "mail_from": _first_env(MAIL_FROM_ENV_VARS) is not None,
    }
