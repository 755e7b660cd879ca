"""Shared error types for the authentication client."""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorKind(StrEnum):
    """Which layer produced a failed authentication outcome."""

    VALIDATION = "VALIDATION"
    TRANSPORT = "TRANSPORT"
    DOMAIN = "DOMAIN"
    CONFIGURATION = "CONFIGURATION"
    INVALID_LINK = "INVALID_LINK"
    UNEXPECTED = "UNEXPECTED"


class AuthFlowError(Exception):
    """Base class for errors raised inside authentication flows."""

    kind = ErrorKind.UNEXPECTED

    def __init__(self, message: str) -> None:
        """Store human-readable message."""
        super().__init__(message)
        self.message = message


class ValidationError(AuthFlowError):
    """Local, pre-submission input error; never reaches the network."""

    kind = ErrorKind.VALIDATION

    def __init__(
        self, message: str, *, field_errors: dict[str, str] | None = None
    ) -> None:
        """Build validation error with optional per-field messages."""
        super().__init__(message)
        self.field_errors = dict(field_errors or {})

    @property
    def field(self) -> str | None:
        """Return the first failing field name, if any."""
        return next(iter(self.field_errors), None)


class TransportError(AuthFlowError):
    """HTTP or network failure returned by the API transport."""

    kind = ErrorKind.TRANSPORT

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        data: Any = None,
    ) -> None:
        """Keep status code and decoded response body for normalization."""
        super().__init__(message)
        self.status_code = status_code
        self.data = data

    @property
    def error_code(self) -> str:
        """Return backend error_code from response body when present."""
        if isinstance(self.data, dict):
            return str(self.data.get("error_code") or "")
        return ""


class DomainError(AuthFlowError):
    """Backend-reported business rule violation carrying a stable code."""

    kind = ErrorKind.DOMAIN

    def __init__(
        self, message: str, *, code: str, field: str | None = None
    ) -> None:
        """Build domain error for a specific backend code."""
        super().__init__(message)
        self.code = code
        self.field = field


class ConfigurationError(AuthFlowError):
    """Optional identity provider is not configured."""

    kind = ErrorKind.CONFIGURATION


def to_error_payload(error: BaseException) -> dict[str, str]:
    """Normalize any raised error into a stable log/CLI payload."""
    if isinstance(error, TransportError):
        error_code = error.error_code or (
            f"HTTP_{error.status_code}" if error.status_code else "NETWORK_ERROR"
        )
        return {"error_code": error_code, "message": error.message}
    if isinstance(error, DomainError):
        return {"error_code": error.code, "message": error.message}
    if isinstance(error, AuthFlowError):
        return {"error_code": str(error.kind), "message": error.message}
    return {
        "error_code": str(ErrorKind.UNEXPECTED),
        "message": str(error) or "Unexpected error",
    }
