"""Outbound email for the weekly digest."""

from __future__ import annotations

import json
import logging
import os
import threading
from typing import Any, Protocol

import httpx
from pydantic import BaseModel

from gigmate.core.config import RESEND_API_KEY_ENV
from gigmate.digest.errors import (
    MailerAuthError,
    MailerConfigurationError,
    MailerProviderError,
    MailerRateLimitError,
    MailerTimeoutError,
)

logger = logging.getLogger(__name__)


class OutgoingEmail(BaseModel):
    from_address: str
    to: str
    subject: str
    html: str
    text: str


class Mailer(Protocol):
    name: str

    def check_configured(self) -> None: ...

    def send(self, message: OutgoingEmail) -> str | None:
        """Deliver one message; returns the provider's message id when it gives one."""
        ...


class ResendMailer:
    name = "resend"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str = "https://api.resend.com",
        timeout_seconds: float = 30.0,
    ) -> None:
        self.api_key = api_key if api_key is not None else os.getenv(RESEND_API_KEY_ENV)
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    def check_configured(self) -> None:
        if not self.api_key:
            raise MailerConfigurationError(f"{RESEND_API_KEY_ENV} is not configured")

    def send(self, message: OutgoingEmail) -> str | None:
        self.check_configured()
        response = self._post_json(
            path="/emails",
            body={
                "from": message.from_address,
                "to": [message.to],
                "subject": message.subject,
                "html": message.html,
                "text": message.text,
            },
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )
        message_id = response.get("id")
        return message_id if isinstance(message_id, str) else None

    def _post_json(self, *, path: str, body: dict[str, Any], headers: dict[str, str]) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.post(url, json=body, headers=headers)
        except httpx.TimeoutException as exc:
            raise MailerTimeoutError() from exc
        except httpx.HTTPError as exc:
            raise MailerProviderError(f"resend request failed: {exc}", retryable=True) from exc

        payload = self._decode_json(response)
        if response.status_code >= 400:
            raise self._http_error(response.status_code, payload)
        return payload

    def _decode_json(self, response: httpx.Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except json.JSONDecodeError:
            return {}
        return payload if isinstance(payload, dict) else {}

    def _http_error(self, status: int, payload: dict[str, Any]) -> MailerProviderError:
        message = self._error_message(payload)
        if status in {401, 403}:
            return MailerAuthError(f"resend authentication failed: {message}", status_code=status)
        if status == 429:
            return MailerRateLimitError(f"resend rate limited: {message}", status_code=status)
        return MailerProviderError(
            f"resend request failed ({status}): {message}",
            retryable=status >= 500,
            status_code=status,
        )

    def _error_message(self, payload: dict[str, Any]) -> str:
        detail = payload.get("message")
        if isinstance(detail, str) and detail.strip():
            return detail.strip()
        err = payload.get("error")
        if isinstance(err, dict):
            detail = err.get("message")
            if isinstance(detail, str) and detail.strip():
                return detail.strip()
        if isinstance(err, str) and err.strip():
            return err.strip()
        return "unknown error"


class RecordingMailer:
    """Keeps messages in memory instead of sending them (dry runs, tests)."""

    name = "recording"

    def __init__(self, *, fail_for: set[str] | None = None) -> None:
        self.sent: list[OutgoingEmail] = []
        self.fail_for = {addr.lower() for addr in fail_for or set()}
        self._lock = threading.Lock()

    def check_configured(self) -> None:
        return None

    def send(self, message: OutgoingEmail) -> str | None:
        if message.to.lower() in self.fail_for:
            raise MailerProviderError(f"recording mailer refused {message.to}")
        with self._lock:
            self.sent.append(message)
            index = len(self.sent)
        logger.debug("recorded email to %s: %s", message.to, message.subject)
        return f"recorded-{index}"
