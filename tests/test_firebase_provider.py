from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any

import pytest
import requests

from patient_auth.api.errors import ConfigurationError, TransportError
from patient_auth.core.config import FirebaseConfig
from patient_auth.providers.firebase import (
    FirebasePhoneProvider,
    StaticChallenge,
    to_e164,
)
from patient_auth.providers.interface import ProviderCredential


def _response(status: int, body: dict[str, Any]) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response._content = json.dumps(body).encode("utf-8")
    return response


@dataclass
class _Session:
    responses: list[requests.Response]
    posts: list[dict[str, Any]] = field(default_factory=list)

    def post(self, url: str, **kwargs: Any) -> requests.Response:
        self.posts.append({"url": url, **kwargs})
        return self.responses.pop(0)


def _provider(session: _Session) -> FirebasePhoneProvider:
    return FirebasePhoneProvider(
        FirebaseConfig(api_key="key-1", project_id="demo"),
        challenge_source=lambda: "captcha",
        session=session,  # type: ignore[arg-type]
    )


def test_provider_requires_api_key() -> None:
    with pytest.raises(ConfigurationError):
        FirebasePhoneProvider(FirebaseConfig(api_key="", project_id="demo"))


def test_to_e164_keeps_plus_and_adds_default_code() -> None:
    assert to_e164("+254 712 345 678") == "+254712345678"
    assert to_e164("(555) 123-4567") == "+15551234567"


def test_send_verification_returns_session_info() -> None:
    session = _Session([_response(200, {"sessionInfo": "vid-1"})])
    provider = _provider(session)

    verification_id = asyncio.run(
        provider.send_verification("+254712345678", provider.create_challenge())
    )

    assert verification_id == "vid-1"
    sent = session.posts[0]
    assert sent["url"].endswith("/accounts:sendVerificationCode")
    assert sent["params"] == {"key": "key-1"}
    assert sent["json"] == {"phoneNumber": "+254712345678", "recaptchaToken": "captcha"}


def test_verify_code_maps_provider_error_message() -> None:
    session = _Session([_response(400, {"error": {"message": "INVALID_CODE"}})])
    provider = _provider(session)

    with pytest.raises(TransportError) as exc_info:
        asyncio.run(provider.verify_code("vid-1", "000000"))

    assert exc_info.value.message == "Invalid OTP"
    assert exc_info.value.status_code == 400


def test_verify_then_refresh_identity_token() -> None:
    session = _Session(
        [
            _response(
                200,
                {
                    "phoneNumber": "+254712345678",
                    "idToken": "id-1",
                    "refreshToken": "refresh-1",
                    "localId": "uid-1",
                },
            ),
            _response(200, {"id_token": "id-2"}),
        ]
    )
    provider = _provider(session)

    credential = asyncio.run(provider.verify_code("vid-1", "123456"))
    token = asyncio.run(provider.get_identity_token(credential))

    assert credential == ProviderCredential(
        phone_number="+254712345678",
        id_token="id-1",
        refresh_token="refresh-1",
        local_id="uid-1",
    )
    assert token == "id-2"
    assert session.posts[1]["data"] == {
        "grant_type": "refresh_token",
        "refresh_token": "refresh-1",
    }


def test_cleared_challenge_cannot_produce_tokens() -> None:
    challenge = StaticChallenge(lambda: "captcha")
    assert challenge.token() == "captcha"

    challenge.clear()

    with pytest.raises(ConfigurationError):
        challenge.token()
