"""Backend authentication endpoints with wire field-name translation."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from patient_auth.api.client import ApiResponse
from patient_auth.api.errors import TransportError
from patient_auth.auth.models import (
    ActionResponse,
    AuthResponse,
    RegistrationForm,
    User,
)
from patient_auth.auth.responses import (
    normalize_action_response,
    normalize_auth_response,
)

logger = logging.getLogger(__name__)

LOGIN_PATH = "/auth/login"
GOOGLE_PATH = "/auth/google"
REGISTER_PATH = "/auth/register"
LOGOUT_PATH = "/auth/logout"
ME_PATH = "/auth/me"
FORGOT_PASSWORD_PATH = "/auth/forgot-password"
RESET_PASSWORD_PATH = "/auth/reset-password"
PHONE_LOGIN_PATH = "/auth/phone"


class ApiTransport(Protocol):
    """Request/response transport consumed by the service."""

    async def post(self, path: str, json_body: dict[str, Any] | None = None) -> ApiResponse:
        """POST JSON body."""

    async def get(self, path: str) -> ApiResponse:
        """GET path."""


def _compact(payload: dict[str, Any]) -> dict[str, Any]:
    """Drop optional keys left unset."""
    return {key: value for key, value in payload.items() if value is not None}


class AuthService:
    """Typed wrapper over the backend auth endpoints."""

    def __init__(self, api: ApiTransport) -> None:
        """Initialize service with API transport."""
        self._api = api

    async def login(self, identifier_kind: str, identifier: str, password: str) -> AuthResponse:
        """Log in with either an email or a phone identifier."""
        key = "email" if identifier_kind == "email" else "phone"
        response = await self._api.post(
            LOGIN_PATH, {key: identifier.strip(), "password": password}
        )
        return normalize_auth_response(response.data)

    async def google_login(
        self,
        id_token: str,
        *,
        phone: str | None = None,
        email: str | None = None,
        google_id: str | None = None,
    ) -> AuthResponse:
        """Exchange a Google ID token, optionally with a collected phone."""
        payload = _compact(
            {
                "id_token": id_token,
                "phone": phone,
                "email": email,
                "google_id": google_id,
            }
        )
        response = await self._api.post(GOOGLE_PATH, payload)
        return normalize_auth_response(response.data)

    async def register(self, form: RegistrationForm) -> AuthResponse:
        """Create an account from a validated registration form."""
        payload = _compact(
            {
                "first_name": form.first_name.strip(),
                "last_name": form.last_name.strip(),
                "email": form.email.strip(),
                "phone": form.phone.strip(),
                "password": form.password,
                "password_confirmation": form.password_confirmation,
                "date_of_birth": form.date_of_birth,
                "gender": form.gender,
                "emergency_contact_name": form.emergency_contact,
            }
        )
        response = await self._api.post(REGISTER_PATH, payload)
        return normalize_auth_response(response.data)

    async def phone_login(self, phone: str, firebase_token: str) -> AuthResponse:
        """Exchange a verified phone number and provider token for a session."""
        response = await self._api.post(
            PHONE_LOGIN_PATH, {"phone": phone, "firebase_token": firebase_token}
        )
        return normalize_auth_response(response.data)

    async def logout(self) -> None:
        """Invalidate the session on the backend."""
        await self._api.post(LOGOUT_PATH)

    async def get_current_user(self) -> User | None:
        """Return the authenticated user or None on any failure."""
        try:
            response = await self._api.get(ME_PATH)
        except TransportError:
            return None
        data = response.data if isinstance(response.data, dict) else {}
        nested = data.get("data")
        user = nested.get("user") if isinstance(nested, dict) else None
        if not isinstance(user, dict):
            return None
        return User.model_validate(user)

    async def forgot_password(self, email: str) -> ActionResponse:
        """Request password reset instructions by email."""
        response = await self._api.post(FORGOT_PASSWORD_PATH, {"email": email.strip()})
        return normalize_action_response(response.data)

    async def reset_password(self, *, email: str, password: str, token: str) -> ActionResponse:
        """Set a new password using the emailed reset token."""
        response = await self._api.post(
            RESET_PASSWORD_PATH,
            {"email": email, "password": password, "token": token},
        )
        return normalize_action_response(response.data)
