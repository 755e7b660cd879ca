"""Contracts for external phone identity providers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class ProviderCredential:
    """Credential returned after a successful code verification."""

    phone_number: str
    id_token: str = ""
    refresh_token: str = ""
    local_id: str = ""


class ChallengeVerifier(Protocol):
    """Anti-abuse challenge that must accompany a verification request."""

    def token(self) -> str:
        """Return the current challenge response token."""

    def clear(self) -> None:
        """Release challenge resources."""


class PhoneIdentityProvider(Protocol):
    """Phone verification SDK surface used by the phone flow."""

    def create_challenge(self) -> ChallengeVerifier:
        """Create a challenge handle for one phone verification flow."""

    async def send_verification(
        self, phone_number: str, challenge: ChallengeVerifier
    ) -> str:
        """Dispatch a one-time code and return its verification id."""

    async def verify_code(self, verification_id: str, code: str) -> ProviderCredential:
        """Confirm the code and return the provider credential."""

    async def get_identity_token(self, credential: ProviderCredential) -> str:
        """Return a fresh identity token for the verified credential."""
