from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from patient_auth.api.client import ApiResponse
from patient_auth.api.errors import TransportError
from patient_auth.auth.models import User
from patient_auth.auth.session import InMemorySessionStore
from patient_auth.providers.interface import ProviderCredential


@dataclass
class FakeApi:
    """Queue of canned replies per path; exceptions in the queue are raised."""

    replies: dict[str, list[Any]] = field(default_factory=dict)
    calls: list[tuple[str, str, dict[str, Any] | None]] = field(default_factory=list)

    def reply(self, path: str, value: Any) -> None:
        self.replies.setdefault(path, []).append(value)

    def _next(self, path: str) -> ApiResponse:
        queue = self.replies.get(path) or []
        if not queue:
            raise AssertionError(f"Unexpected request to {path}")
        value = queue.pop(0)
        if isinstance(value, BaseException):
            raise value
        return ApiResponse(status=200, data=value)

    async def post(self, path: str, json_body: dict[str, Any] | None = None) -> ApiResponse:
        self.calls.append(("POST", path, json_body))
        return self._next(path)

    async def get(self, path: str) -> ApiResponse:
        self.calls.append(("GET", path, None))
        return self._next(path)


def http_error(status: int, body: dict[str, Any]) -> TransportError:
    return TransportError(
        f"Request failed with status code {status}", status_code=status, data=body
    )


@dataclass
class FakeChallenge:
    cleared: bool = False

    def token(self) -> str:
        return "challenge-token"

    def clear(self) -> None:
        self.cleared = True


@dataclass
class FakePhoneProvider:
    verification_ids: list[str] = field(default_factory=lambda: ["vid-1", "vid-2", "vid-3"])
    valid_code: str = "123456"
    verified_phone: str = "+254712345678"
    sent_to: list[str] = field(default_factory=list)
    verified: list[tuple[str, str]] = field(default_factory=list)
    challenges: list[FakeChallenge] = field(default_factory=list)
    send_error: BaseException | None = None

    def create_challenge(self) -> FakeChallenge:
        challenge = FakeChallenge()
        self.challenges.append(challenge)
        return challenge

    async def send_verification(self, phone_number: str, challenge: FakeChallenge) -> str:
        _ = challenge
        if self.send_error is not None:
            raise self.send_error
        self.sent_to.append(phone_number)
        return self.verification_ids[len(self.sent_to) - 1]

    async def verify_code(self, verification_id: str, code: str) -> ProviderCredential:
        self.verified.append((verification_id, code))
        current = self.verification_ids[len(self.sent_to) - 1]
        if verification_id != current or code != self.valid_code:
            raise TransportError("Invalid OTP", status_code=400, data={})
        return ProviderCredential(
            phone_number=self.verified_phone,
            id_token="provider-id-token",
            refresh_token="provider-refresh",
        )

    async def get_identity_token(self, credential: ProviderCredential) -> str:
        return f"fresh-{credential.id_token}"


class RecordingSessionStore(InMemorySessionStore):
    """In-memory store that counts session handoffs."""

    def __init__(self) -> None:
        super().__init__()
        self.set_auth_calls = 0

    async def set_auth(self, user: User, token: str) -> None:
        self.set_auth_calls += 1
        await super().set_auth(user, token)
