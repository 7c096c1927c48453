from __future__ import annotations


class MailerError(RuntimeError):
    """Base class for outbound mail failures."""


class MailerConfigurationError(MailerError):
    """Raised when the mail provider is not configured (API key, sender)."""


class MailerProviderError(MailerError):
    """Raised for API/provider failures."""

    def __init__(self, message: str, *, retryable: bool = False, status_code: int | None = None):
        super().__init__(message)
        self.retryable = retryable
        self.status_code = status_code


class MailerAuthError(MailerProviderError):
    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message, retryable=False, status_code=status_code)


class MailerRateLimitError(MailerProviderError):
    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message, retryable=True, status_code=status_code)


class MailerTimeoutError(MailerProviderError):
    def __init__(self, message: str = "mail request timed out"):
        super().__init__(message, retryable=True)
