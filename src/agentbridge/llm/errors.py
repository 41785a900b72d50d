"""Errors raised by the provider layer."""

from __future__ import annotations


class ProviderError(Exception):
    """A vendor call failed. ``code`` is vendor specific, e.g. ``OPENAI_HTTP_429``."""

    def __init__(self, message: str, code: str = "PROVIDER_ERROR"):
        super().__init__(message)
        self.code = code


class UnsupportedProviderError(ValueError):
    """No adapter or formatter is registered under the requested name."""


def error_code(prefix: str, exc: BaseException) -> str:
    """Derive a vendor-specific error code from an SDK exception."""
    if isinstance(exc, ProviderError):
        return exc.code
    # openai/anthropic expose status_code, google-genai exposes code
    status = getattr(exc, "status_code", None)
    if not isinstance(status, int):
        status = getattr(exc, "code", None)
    if isinstance(status, int):
        return f"{prefix}_HTTP_{status}"
    return f"{prefix}_ERROR"
