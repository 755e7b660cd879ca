"""Normalize backend payload shapes into response models."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from patient_auth.auth.models import ActionResponse, AuthResponse, User


def _pick(payload: Mapping[str, Any], key: str) -> Any:
    """Prefer payload["data"][key], fall back to payload[key]."""
    data = payload.get("data")
    if isinstance(data, Mapping) and data.get(key) is not None:
        return data[key]
    return payload.get(key)


def _message(payload: Mapping[str, Any]) -> str:
    value = payload.get("message")
    return "" if value is None else str(value)


def normalize_auth_response(payload: Any) -> AuthResponse:
    """Map {data: {user, token}} or {user, token} into an AuthResponse."""
    if not isinstance(payload, Mapping):
        return AuthResponse(success=False, message="")

    raw_user = _pick(payload, "user")
    raw_token = _pick(payload, "token")

    user: User | None = None
    if isinstance(raw_user, Mapping):
        user = User.model_validate(dict(raw_user))
    elif isinstance(raw_user, User):
        user = raw_user

    return AuthResponse(
        success=bool(payload.get("success")),
        message=_message(payload),
        user=user,
        token=str(raw_token) if raw_token else None,
    )


def normalize_action_response(payload: Any) -> ActionResponse:
    """Map forgot/reset password payloads into an ActionResponse."""
    if not isinstance(payload, Mapping):
        return ActionResponse(success=False, message="")
    return ActionResponse(
        success=bool(payload.get("success")),
        message=_message(payload),
    )
