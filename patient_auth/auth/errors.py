"""Normalize transport and provider failures into AuthError values."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import requests

from patient_auth.api.errors import TransportError
from patient_auth.auth.models import AuthError, AuthErrorCode

FALLBACK_MESSAGE = "An unexpected error occurred. Please try again."

KNOWN_CODE_MESSAGES = {
    AuthErrorCode.PHONE_REQUIRED: (
        "Please provide your phone number to complete registration"
    ),
    AuthErrorCode.EMAIL_EXISTS: (
        "This email is already registered. Please login or use a different email."
    ),
    AuthErrorCode.PHONE_EXISTS: (
        "This phone number is already registered. "
        "Please login or use a different number."
    ),
}


def _response_parts(raw: Any) -> tuple[int | None, Any]:
    """Extract (status, body) from any supported raw error shape."""
    if isinstance(raw, TransportError):
        return raw.status_code, raw.data
    if isinstance(raw, requests.HTTPError) and raw.response is not None:
        try:
            body = raw.response.json()
        except ValueError:
            body = None
        return raw.response.status_code, body
    if isinstance(raw, Mapping):
        response = raw.get("response")
        if isinstance(response, Mapping):
            return response.get("status"), response.get("data")
    return None, None


def _generic_message(raw: Any) -> str:
    """Return message string carried by the error itself."""
    if isinstance(raw, Mapping):
        value = raw.get("message")
        return str(value) if value else ""
    if isinstance(raw, BaseException):
        value = getattr(raw, "message", None) or str(raw)
        return str(value) if value else ""
    return ""


def _optional_code(body: Mapping[str, Any]) -> str | None:
    code = body.get("error_code")
    return str(code) if code else None


def parse_auth_error(raw: Any) -> AuthError:
    """Map an arbitrary failure into an AuthError, first matching rule wins."""
    _, body = _response_parts(raw)
    code = _optional_code(body) if isinstance(body, Mapping) else None

    if isinstance(body, Mapping):
        errors = body.get("errors")
        if isinstance(errors, Mapping) and errors:
            field = next(iter(errors))
            value = errors[field]
            if isinstance(value, (list, tuple)):
                value = value[0] if value else ""
            return AuthError(
                field=str(field),
                message=str(value or "") or FALLBACK_MESSAGE,
                code=code,
            )

        if body.get("message"):
            return AuthError(message=str(body["message"]), code=code)

    message = _generic_message(raw)
    if message:
        return AuthError(message=message, code=code)

    return AuthError(message=FALLBACK_MESSAGE, code=code)


def format_error_message(error: AuthError) -> str:
    """Return display text, replacing it for codes with a fixed message."""
    if error.code in KNOWN_CODE_MESSAGES:
        return KNOWN_CODE_MESSAGES[AuthErrorCode(error.code)]
    return error.message or FALLBACK_MESSAGE


def _has_code(raw: Any, code: AuthErrorCode) -> bool:
    status, body = _response_parts(raw)
    if status != 422 or not isinstance(body, Mapping):
        return False
    return body.get("error_code") == code


def is_phone_required_error(raw: Any) -> bool:
    """Return True for a 422 PHONE_REQUIRED response."""
    return _has_code(raw, AuthErrorCode.PHONE_REQUIRED)


def is_email_already_exists_error(raw: Any) -> bool:
    """Return True for a 422 EMAIL_EXISTS response."""
    return _has_code(raw, AuthErrorCode.EMAIL_EXISTS)


def is_phone_already_exists_error(raw: Any) -> bool:
    """Return True for a 422 PHONE_EXISTS response."""
    return _has_code(raw, AuthErrorCode.PHONE_EXISTS)


def should_show_phone_screen(raw: Any) -> bool:
    """Return whether the caller should move to phone collection."""
    return is_phone_required_error(raw)
