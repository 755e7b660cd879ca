"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_API_BASE_URL = "http://10.210.19.13:8000/api"


@dataclass(frozen=True)
class ApiConfig:
    """Backend API transport configuration."""

    base_url: str
    timeout_seconds: float


@dataclass(frozen=True)
class GoogleConfig:
    """Google sign-in client identifiers."""

    expo_client_id: str
    ios_client_id: str
    android_client_id: str
    web_client_id: str

    @property
    def enabled(self) -> bool:
        """Return whether at least one client id is configured."""
        return any(
            (
                self.expo_client_id,
                self.ios_client_id,
                self.android_client_id,
                self.web_client_id,
            )
        )


@dataclass(frozen=True)
class FirebaseConfig:
    """Firebase phone verification settings."""

    api_key: str
    project_id: str

    @property
    def enabled(self) -> bool:
        """Return whether phone verification can be used."""
        return bool(self.api_key)


@dataclass(frozen=True)
class OtpConfig:
    """One-time code entry and resend policy."""

    resend_cooldown_seconds: int
    code_length: int


@dataclass(frozen=True)
class LoggingConfig:
    """Structured logging configuration."""

    level: str


@dataclass(frozen=True)
class AuthCapabilities:
    """Optional identity paths available to the orchestrator."""

    google_enabled: bool = False
    phone_enabled: bool = False


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    api: ApiConfig
    google: GoogleConfig
    firebase: FirebaseConfig
    otp: OtpConfig
    logging: LoggingConfig

    def capabilities(self) -> AuthCapabilities:
        """Compute capability flags once from loaded provider settings."""
        return AuthCapabilities(
            google_enabled=self.google.enabled,
            phone_enabled=self.firebase.enabled,
        )

    @staticmethod
    def from_env() -> "AppConfig":
        """Build app config from process environment."""
        base_url = (
            os.getenv("API_BASE_URL", "").strip() or DEFAULT_API_BASE_URL
        ).rstrip("/")
        timeout_seconds = float(os.getenv("API_TIMEOUT_SECONDS", "10"))
        resend_cooldown = int(os.getenv("OTP_RESEND_COOLDOWN_SECONDS", "60"))
        code_length = int(os.getenv("OTP_CODE_LENGTH", "6"))
        log_level = os.getenv("LOG_LEVEL", "INFO").strip() or "INFO"

        return AppConfig(
            api=ApiConfig(base_url=base_url, timeout_seconds=timeout_seconds),
            google=GoogleConfig(
                expo_client_id=os.getenv("GOOGLE_EXPO_CLIENT_ID", "").strip(),
                ios_client_id=os.getenv("GOOGLE_IOS_CLIENT_ID", "").strip(),
                android_client_id=os.getenv("GOOGLE_ANDROID_CLIENT_ID", "").strip(),
                web_client_id=os.getenv("GOOGLE_WEB_CLIENT_ID", "").strip(),
            ),
            firebase=FirebaseConfig(
                api_key=os.getenv("FIREBASE_API_KEY", "").strip(),
                project_id=os.getenv("FIREBASE_PROJECT_ID", "").strip(),
            ),
            otp=OtpConfig(
                resend_cooldown_seconds=max(1, resend_cooldown),
                code_length=max(1, code_length),
            ),
            logging=LoggingConfig(level=log_level),
        )
