from __future__ import annotations

import asyncio

from patient_auth.api.errors import ErrorKind, TransportError
from patient_auth.auth.countdown import ResendCountdown
from patient_auth.auth.models import AuthState
from patient_auth.auth.orchestrator import AuthOrchestrator
from patient_auth.auth.phone_flow import PhoneVerificationFlow
from patient_auth.auth.service import AuthService
from patient_auth.core.config import AuthCapabilities
from tests.fakes import FakeApi, FakePhoneProvider, RecordingSessionStore

USER = {"id": 7, "email": "", "phone": "+254712345678", "phone_verified": True}


def _flow(
    api: FakeApi,
    provider: FakePhoneProvider | None,
    store: RecordingSessionStore | None = None,
) -> PhoneVerificationFlow:
    # Long interval keeps the background task idle; tests tick by hand.
    return PhoneVerificationFlow(
        AuthService(api),
        store or RecordingSessionStore(),
        provider,
        countdown=ResendCountdown(60, interval_seconds=3600),
    )


def test_send_code_enters_otp_pending_with_full_countdown() -> None:
    async def scenario() -> None:
        provider = FakePhoneProvider()
        flow = _flow(FakeApi(), provider)

        outcome = await flow.send_code(" 0712345678 ")

        assert outcome.ok is True
        assert outcome.state == AuthState.OTP_PENDING
        assert flow.state == AuthState.OTP_PENDING
        assert provider.sent_to == ["0712345678"]
        assert flow.otp_session is not None
        assert flow.otp_session.verification_id == "vid-1"
        assert flow.otp_session.code == [""] * 6
        assert flow.countdown.remaining == 60
        assert flow.countdown.running is True
        assert flow.can_resend is False
        flow.close()

    asyncio.run(scenario())


def test_invalid_phone_is_rejected_locally() -> None:
    async def scenario() -> None:
        provider = FakePhoneProvider()
        flow = _flow(FakeApi(), provider)

        outcome = await flow.send_code("12345")

        assert outcome.error_kind == ErrorKind.VALIDATION
        assert "phone" in outcome.field_errors
        assert flow.state == AuthState.PHONE_ENTRY
        assert provider.sent_to == []

    asyncio.run(scenario())


def test_missing_provider_is_configuration_error() -> None:
    async def scenario() -> None:
        flow = _flow(FakeApi(), None)

        outcome = await flow.send_code("0712345678")

        assert outcome.ok is False
        assert outcome.error_kind == ErrorKind.CONFIGURATION
        assert flow.state == AuthState.PHONE_ENTRY

    asyncio.run(scenario())


def test_send_failure_stays_on_phone_entry() -> None:
    async def scenario() -> None:
        provider = FakePhoneProvider(
            send_error=TransportError("Too many attempts. Please try again later.")
        )
        flow = _flow(FakeApi(), provider)

        outcome = await flow.send_code("0712345678")

        assert outcome.ok is False
        assert outcome.message == "Too many attempts. Please try again later."
        assert flow.state == AuthState.PHONE_ENTRY
        assert flow.otp_session is None

    asyncio.run(scenario())


def test_resend_waits_for_countdown_then_uses_new_verification() -> None:
    async def scenario() -> None:
        api = FakeApi()
        api.reply("/auth/phone", {"success": True, "data": {"user": USER, "token": "P"}})
        provider = FakePhoneProvider()
        store = RecordingSessionStore()
        flow = _flow(api, provider, store)

        await flow.send_code("0712345678")
        early = await flow.resend()
        assert early.ok is False
        assert early.message == "Please wait 60 seconds before requesting a new code"
        assert provider.sent_to == ["0712345678"]

        for _ in range(60):
            flow.countdown.tick()
        assert flow.countdown.remaining == 0
        assert flow.can_resend is True

        resent = await flow.resend()
        assert resent.ok is True
        assert flow.countdown.remaining == 60
        assert flow.otp_session is not None
        assert flow.otp_session.verification_id == "vid-2"

        flow.set_code("123456")
        outcome = await flow.verify_phone_otp()

        assert outcome.state == AuthState.AUTHENTICATED
        assert provider.verified == [("vid-2", "123456")]
        assert api.calls == [
            (
                "POST",
                "/auth/phone",
                {"phone": "+254712345678", "firebase_token": "fresh-provider-id-token"},
            )
        ]
        assert store.token == "P"
        assert flow.countdown.running is False
        assert flow.otp_session is None

    asyncio.run(scenario())


def test_countdown_ticks_down_in_background() -> None:
    async def scenario() -> None:
        ticks: list[int] = []
        countdown = ResendCountdown(3, interval_seconds=0.01, on_tick=ticks.append)

        countdown.start()
        assert countdown.can_resend is False
        await asyncio.sleep(0.2)

        assert ticks == [2, 1, 0]
        assert countdown.can_resend is True
        assert countdown.running is False

    asyncio.run(scenario())


def test_wrong_code_keeps_buffer_and_state() -> None:
    async def scenario() -> None:
        api = FakeApi()
        provider = FakePhoneProvider()
        store = RecordingSessionStore()
        flow = _flow(api, provider, store)

        await flow.send_code("0712345678")
        flow.set_code("000000")
        outcome = await flow.verify_phone_otp()

        assert outcome.ok is False
        assert outcome.message == "Invalid OTP"
        assert flow.state == AuthState.OTP_PENDING
        assert flow.otp_session is not None
        assert flow.otp_session.code_value == "000000"
        assert api.calls == []
        assert store.is_authenticated is False
        flow.close()

    asyncio.run(scenario())


def test_incomplete_code_is_not_submitted() -> None:
    async def scenario() -> None:
        provider = FakePhoneProvider()
        flow = _flow(FakeApi(), provider)

        await flow.send_code("0712345678")
        flow.set_code("123")
        outcome = await flow.verify_phone_otp()

        assert outcome.error_kind == ErrorKind.VALIDATION
        assert outcome.field_errors == {"code": "Please enter the 6-digit code"}
        assert provider.verified == []
        flow.close()

    asyncio.run(scenario())


def test_digit_entry_moves_focus() -> None:
    async def scenario() -> None:
        flow = _flow(FakeApi(), FakePhoneProvider())
        await flow.send_code("0712345678")

        assert flow.enter_digit(0, "1") == 1
        assert flow.enter_digit(1, "29") == 2
        assert flow.enter_digit(5, "6") == 5
        assert flow.backspace(2) == 1
        assert flow.backspace(1) == 1
        assert flow.otp_session is not None
        assert flow.otp_session.code == ["1", "", "", "", "", "6"]
        flow.close()

    asyncio.run(scenario())


def test_back_discards_verification_and_close_releases_challenge() -> None:
    async def scenario() -> None:
        provider = FakePhoneProvider()
        flow = _flow(FakeApi(), provider)

        await flow.send_code("0712345678")
        flow.back()

        assert flow.state == AuthState.PHONE_ENTRY
        assert flow.otp_session is None
        assert flow.countdown.running is False
        assert (await flow.verify_phone_otp()).ok is False

        await flow.send_code("0712345679")
        assert flow.otp_session is not None
        assert flow.otp_session.verification_id == "vid-2"
        assert len(provider.challenges) == 1

        flow.close()
        assert provider.challenges[0].cleared is True

    asyncio.run(scenario())


def test_back_during_verification_ignores_late_session() -> None:
    async def scenario() -> None:
        api = FakeApi()
        gate = asyncio.Event()
        original_post = api.post

        async def slow_post(path, json_body=None):  # type: ignore[no-untyped-def]
            await gate.wait()
            return await original_post(path, json_body)

        api.post = slow_post  # type: ignore[method-assign]
        api.reply("/auth/phone", {"success": True, "user": USER, "token": "P"})
        store = RecordingSessionStore()
        flow = _flow(api, FakePhoneProvider(), store)

        await flow.send_code("0712345678")
        flow.set_code("123456")
        pending = asyncio.create_task(flow.verify_phone_otp())
        await asyncio.sleep(0)
        flow.back()
        gate.set()
        outcome = await pending

        assert outcome.ok is False
        assert store.set_auth_calls == 0
        assert flow.state == AuthState.PHONE_ENTRY

    asyncio.run(scenario())


def test_orchestrator_phone_flow_respects_capability() -> None:
    async def scenario() -> None:
        api = FakeApi()
        api.reply("/auth/phone", {"success": True, "user": USER, "token": "P"})
        store = RecordingSessionStore()
        provider = FakePhoneProvider()

        disabled = AuthOrchestrator(
            AuthService(api), store, AuthCapabilities(), phone_provider=provider
        )
        blocked = await disabled.start_phone_flow().send_code("0712345678")
        assert blocked.error_kind == ErrorKind.CONFIGURATION
        disabled.end_phone_flow()

        orchestrator = AuthOrchestrator(
            AuthService(api),
            store,
            AuthCapabilities(phone_enabled=True),
            phone_provider=provider,
        )
        flow = orchestrator.start_phone_flow()
        await flow.send_code("0712345678")
        flow.set_code("123456")
        outcome = await orchestrator.verify_phone_otp()

        assert outcome.state == AuthState.AUTHENTICATED
        assert orchestrator.state == AuthState.AUTHENTICATED
        assert store.set_auth_calls == 1

        orchestrator.end_phone_flow()
        assert orchestrator.phone_flow is None
        assert provider.challenges[-1].cleared is True

    asyncio.run(scenario())


def test_second_verify_while_pending_is_busy() -> None:
    async def scenario() -> None:
        api = FakeApi()
        gate = asyncio.Event()
        original_post = api.post

        async def slow_post(path, json_body=None):  # type: ignore[no-untyped-def]
            await gate.wait()
            return await original_post(path, json_body)

        api.post = slow_post  # type: ignore[method-assign]
        api.reply("/auth/phone", {"success": True, "user": USER, "token": "P"})
        store = RecordingSessionStore()
        flow = _flow(api, FakePhoneProvider(), store)

        await flow.send_code("0712345678")
        flow.set_code("123456")
        first = asyncio.create_task(flow.verify_phone_otp())
        await asyncio.sleep(0)
        second = await flow.verify_phone_otp()

        assert second.message == "Request already in progress"
        gate.set()
        assert (await first).state == AuthState.AUTHENTICATED
        assert store.set_auth_calls == 1

    asyncio.run(scenario())
