"""Shared exception taxonomy."""

from __future__ import annotations


class ScannerError(Exception):
    """Base exception for token scanner errors."""


class ProviderUnavailable(ScannerError):
    """Raised when an external data provider cannot serve a request.

    Covers network failures, non-2xx responses and undecodable payloads.
    The gateway recovers from it locally; callers only see it attached
    to a failed fetch result.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class NotFoundError(ScannerError):
    """Raised when a requested entity does not exist in persistence."""


class ValidationFailure(ScannerError, ValueError):
    """Raised when a public operation receives malformed input."""
