from __future__ import annotations

import pytest

from patient_auth.core.config import DEFAULT_API_BASE_URL, AppConfig

ENV_KEYS = (
    "API_BASE_URL",
    "API_TIMEOUT_SECONDS",
    "GOOGLE_EXPO_CLIENT_ID",
    "GOOGLE_IOS_CLIENT_ID",
    "GOOGLE_ANDROID_CLIENT_ID",
    "GOOGLE_WEB_CLIENT_ID",
    "FIREBASE_API_KEY",
    "FIREBASE_PROJECT_ID",
    "OTP_RESEND_COOLDOWN_SECONDS",
    "OTP_CODE_LENGTH",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults_disable_optional_providers() -> None:
    config = AppConfig.from_env()

    assert config.api.base_url == DEFAULT_API_BASE_URL
    assert config.api.timeout_seconds == 10
    assert config.otp.resend_cooldown_seconds == 60
    assert config.otp.code_length == 6
    assert config.logging.level == "INFO"
    capabilities = config.capabilities()
    assert capabilities.google_enabled is False
    assert capabilities.phone_enabled is False


def test_env_overrides_enable_capabilities(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("API_BASE_URL", "https://clinic.example/api/")
    monkeypatch.setenv("GOOGLE_WEB_CLIENT_ID", "web-id")
    monkeypatch.setenv("FIREBASE_API_KEY", "key")
    monkeypatch.setenv("OTP_RESEND_COOLDOWN_SECONDS", "30")

    config = AppConfig.from_env()

    assert config.api.base_url == "https://clinic.example/api"
    assert config.otp.resend_cooldown_seconds == 30
    assert config.capabilities().google_enabled is True
    assert config.capabilities().phone_enabled is True
