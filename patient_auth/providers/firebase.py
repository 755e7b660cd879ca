"""Firebase phone verification over the Identity Toolkit REST API."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Callable

import requests

from patient_auth.api.errors import ConfigurationError, TransportError
from patient_auth.auth.validation import get_phone_country_code
from patient_auth.core.config import FirebaseConfig
from patient_auth.providers.interface import ProviderCredential

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"
SECURE_TOKEN_URL = "https://securetoken.googleapis.com/v1/token"

PROVIDER_MESSAGES = {
    "INVALID_CODE": "Invalid OTP",
    "INVALID_SESSION_INFO": "Verification session is invalid. Please request a new code.",
    "SESSION_EXPIRED": "The code has expired. Please request a new code.",
    "INVALID_PHONE_NUMBER": "Invalid phone number",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many attempts. Please try again later.",
    "CAPTCHA_CHECK_FAILED": "Verification challenge failed. Please try again.",
    "QUOTA_EXCEEDED": "SMS quota exceeded. Please try again later.",
}


def to_e164(phone_number: str) -> str:
    """Return +<digits>, adding the default country code when missing."""
    raw = (phone_number or "").strip()
    digits = re.sub(r"\D", "", raw)
    if raw.startswith("+"):
        return f"+{digits}"
    return f"{get_phone_country_code(raw)}{digits}"


class StaticChallenge:
    """Challenge handle backed by a token obtained outside this process."""

    def __init__(self, token_source: Callable[[], str]) -> None:
        """Keep the callable producing challenge tokens."""
        self._token_source: Callable[[], str] | None = token_source

    def token(self) -> str:
        """Return a fresh challenge token."""
        if self._token_source is None:
            raise ConfigurationError("Verification challenge has been cleared")
        return self._token_source()

    def clear(self) -> None:
        """Drop the token source."""
        self._token_source = None


class FirebasePhoneProvider:
    """Phone identity provider using Firebase REST endpoints."""

    def __init__(
        self,
        config: FirebaseConfig,
        *,
        challenge_source: Callable[[], str] | None = None,
        session: requests.Session | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        """Initialize provider with API key and challenge token source."""
        if not config.enabled:
            raise ConfigurationError(
                "Firebase is not configured. Set FIREBASE_API_KEY to enable phone sign-in."
            )
        self._config = config
        self._challenge_source = challenge_source or (lambda: "")
        self._session = session or requests.Session()
        self._timeout = timeout_seconds

    def create_challenge(self) -> StaticChallenge:
        """Create a challenge handle for one verification flow."""
        return StaticChallenge(self._challenge_source)

    async def send_verification(self, phone_number: str, challenge: StaticChallenge) -> str:
        """Send the SMS code and return Firebase session info."""
        body = {"phoneNumber": to_e164(phone_number), "recaptchaToken": challenge.token()}
        data = await asyncio.to_thread(
            self._post, f"{IDENTITY_TOOLKIT_URL}/accounts:sendVerificationCode", body
        )
        session_info = str(data.get("sessionInfo") or "")
        if not session_info:
            raise TransportError("Failed to send OTP", data=data)
        return session_info

    async def verify_code(self, verification_id: str, code: str) -> ProviderCredential:
        """Sign in with the session info and the entered code."""
        data = await asyncio.to_thread(
            self._post,
            f"{IDENTITY_TOOLKIT_URL}/accounts:signInWithPhoneNumber",
            {"sessionInfo": verification_id, "code": code},
        )
        return ProviderCredential(
            phone_number=str(data.get("phoneNumber") or ""),
            id_token=str(data.get("idToken") or ""),
            refresh_token=str(data.get("refreshToken") or ""),
            local_id=str(data.get("localId") or ""),
        )

    async def get_identity_token(self, credential: ProviderCredential) -> str:
        """Exchange the refresh token for a fresh ID token."""
        if not credential.refresh_token:
            return credential.id_token
        data = await asyncio.to_thread(self._refresh, credential.refresh_token)
        return str(data.get("id_token") or credential.id_token)

    def _post(self, url: str, body: dict[str, Any]) -> dict[str, Any]:
        """POST JSON to a Firebase endpoint and decode the reply."""
        try:
            response = self._session.post(
                url,
                params={"key": self._config.api_key},
                json=body,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(str(exc) or "Network Error") from exc
        return self._decode(response)

    def _refresh(self, refresh_token: str) -> dict[str, Any]:
        """Request a new ID token from the secure token endpoint."""
        try:
            response = self._session.post(
                SECURE_TOKEN_URL,
                params={"key": self._config.api_key},
                data={"grant_type": "refresh_token", "refresh_token": refresh_token},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(str(exc) or "Network Error") from exc
        return self._decode(response)

    @staticmethod
    def _decode(response: requests.Response) -> dict[str, Any]:
        """Decode body and raise TransportError with a readable message."""
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        if response.ok:
            return data

        error = data.get("error") if isinstance(data.get("error"), dict) else {}
        reason = str(error.get("message") or "").split(":", 1)[0].strip()
        message = PROVIDER_MESSAGES.get(reason, reason or "Phone verification failed")
        logger.info(
            "Firebase rejected request",
            extra={"status_code": response.status_code, "error_code": reason},
        )
        raise TransportError(message, status_code=response.status_code, data=data)
