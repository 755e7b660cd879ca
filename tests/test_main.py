from __future__ import annotations

import asyncio

import pytest

from main import _run_phone
from patient_auth.api.errors import ErrorKind
from patient_auth.auth.orchestrator import AuthOrchestrator
from patient_auth.auth.service import AuthService
from patient_auth.core.config import AuthCapabilities
from tests.fakes import FakeApi, RecordingSessionStore


def _no_input(prompt: str = "") -> str:
    raise AssertionError(f"Unexpected prompt: {prompt}")


def test_phone_command_exits_when_phone_sign_in_is_disabled(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr("builtins.input", _no_input)
    orchestrator = AuthOrchestrator(
        AuthService(FakeApi()), RecordingSessionStore(), AuthCapabilities()
    )

    outcome = asyncio.run(_run_phone(orchestrator))

    assert outcome.ok is False
    assert outcome.error_kind == ErrorKind.CONFIGURATION
    assert orchestrator.phone_flow is None


def test_phone_command_stops_on_missing_provider(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    answers = iter(["0712345678"])
    monkeypatch.setattr("builtins.input", lambda prompt="": next(answers))
    orchestrator = AuthOrchestrator(
        AuthService(FakeApi()),
        RecordingSessionStore(),
        AuthCapabilities(phone_enabled=True),
    )

    outcome = asyncio.run(_run_phone(orchestrator))

    assert outcome.error_kind == ErrorKind.CONFIGURATION
    assert orchestrator.phone_flow is None
