"""Phone number + one-time code sign-in flow."""

from __future__ import annotations

import logging

from patient_auth.api.errors import (
    ConfigurationError,
    ErrorKind,
    TransportError,
    ValidationError,
)
from patient_auth.auth.countdown import ResendCountdown
from patient_auth.auth.flow import AuthFlow, scoped_attempt
from patient_auth.auth.models import (
    AuthError,
    AuthOutcome,
    AuthResponse,
    AuthState,
    OtpSession,
    PhoneCredential,
)
from patient_auth.auth.service import AuthService
from patient_auth.auth.session import SessionStore
from patient_auth.auth.validation import format_phone_number, validate_phone
from patient_auth.core.config import OtpConfig
from patient_auth.providers.interface import ChallengeVerifier, PhoneIdentityProvider

logger = logging.getLogger(__name__)

PHONE_NOT_CONFIGURED = (
    "Phone sign-in is not configured. "
    "Please add Firebase credentials to the .env file."
)


class PhoneVerificationFlow(AuthFlow):
    """PHONE_ENTRY -> OTP_PENDING -> AUTHENTICATED, with back and resend.

    Owns the in-flight OtpSession, the resend countdown and the provider
    challenge handle. The challenge is created on first use and released by
    close().
    """

    flow_name = "phone"

    def __init__(
        self,
        service: AuthService,
        session_store: SessionStore,
        provider: PhoneIdentityProvider | None,
        *,
        otp_config: OtpConfig | None = None,
        countdown: ResendCountdown | None = None,
    ) -> None:
        """Initialize flow in the phone entry step."""
        super().__init__(session_store, AuthState.PHONE_ENTRY)
        self._service = service
        self._provider = provider
        self._otp_config = otp_config or OtpConfig(
            resend_cooldown_seconds=60, code_length=6
        )
        self._countdown = countdown or ResendCountdown(
            self._otp_config.resend_cooldown_seconds
        )
        self._challenge: ChallengeVerifier | None = None
        self._otp: OtpSession | None = None
        self._phone_number = ""
        self._raw_phone = ""

    @property
    def otp_session(self) -> OtpSession | None:
        """Return the active verification, if a code has been sent."""
        return self._otp

    @property
    def phone_number(self) -> str:
        """Return the formatted number the code was sent to."""
        return self._phone_number

    @property
    def countdown(self) -> ResendCountdown:
        """Return the resend countdown."""
        return self._countdown

    @property
    def can_resend(self) -> bool:
        """Return whether a new code may be requested."""
        return self._state == AuthState.OTP_PENDING and self._countdown.can_resend

    @scoped_attempt
    async def send_code(self, phone: str) -> AuthOutcome:
        """Validate the number and dispatch a one-time code."""
        if self._provider is None:
            error = ConfigurationError(PHONE_NOT_CONFIGURED)
            return AuthOutcome.failure(
                self._state, AuthError(message=error.message), error.kind
            )
        if self.is_loading:
            return self._busy()
        if self._state == AuthState.OTP_PENDING:
            return AuthOutcome.failure(
                self._state,
                AuthError(message="A code was already sent. Use resend or go back."),
                ErrorKind.VALIDATION,
            )
        check = validate_phone(phone)
        if not check.valid:
            return self._validation_failure(
                ValidationError(check.error or "", field_errors={"phone": check.error or ""}),
                self._state,
            )
        return await self._dispatch(phone.strip(), fallback_state=self._state)

    @scoped_attempt
    async def resend(self) -> AuthOutcome:
        """Request a new code once the countdown has reached zero."""
        if self.is_loading:
            return self._busy()
        if self._state != AuthState.OTP_PENDING or not self._raw_phone:
            return AuthOutcome.failure(
                self._state,
                AuthError(message="Please request a verification code first"),
                ErrorKind.VALIDATION,
            )
        if not self._countdown.can_resend:
            return AuthOutcome.failure(
                self._state,
                AuthError(
                    message=f"Please wait {self._countdown.remaining} seconds before requesting a new code"
                ),
                ErrorKind.VALIDATION,
            )

        # The previous verification id must never be verified again.
        self._otp = None
        return await self._dispatch(self._raw_phone, fallback_state=AuthState.OTP_PENDING)

    async def _dispatch(self, phone: str, *, fallback_state: AuthState) -> AuthOutcome:
        """Send a code and move to OTP_PENDING with a fresh countdown."""
        provider = self._provider
        if provider is None:
            return AuthOutcome.failure(
                self._state, AuthError(message=PHONE_NOT_CONFIGURED), ErrorKind.CONFIGURATION
            )
        formatted = format_phone_number(phone)
        attempt_id = self._begin()
        try:
            verification_id = await provider.send_verification(
                phone, self._ensure_challenge()
            )
        except TransportError as exc:
            return self._transport_failure(attempt_id, exc, fallback_state)
        except ConfigurationError as exc:
            self._set_state(attempt_id, fallback_state)
            return AuthOutcome.failure(
                fallback_state, AuthError(message=exc.message), exc.kind
            )
        except Exception:
            return self._unexpected_failure(attempt_id, fallback_state)
        finally:
            self._finish(attempt_id)

        if not self._is_current(attempt_id):
            return self._stale()

        self._raw_phone = phone
        self._phone_number = formatted
        self._otp = OtpSession(
            verification_id=verification_id,
            phone_number=formatted,
            code=[""] * self._otp_config.code_length,
        )
        self._state = AuthState.OTP_PENDING
        self._countdown.start()
        logger.info(
            "Verification code sent",
            extra={"flow": self.flow_name, "state": str(self._state)},
        )
        return AuthOutcome.success(
            AuthState.OTP_PENDING,
            message=f"Verification code sent to {formatted}",
            details={"phone_number": formatted},
        )

    def enter_digit(self, index: int, value: str) -> int:
        """Fill a code slot and return the slot that should take focus."""
        if self._otp is None:
            return index
        self._otp.set_digit(index, value)
        if value and index < len(self._otp.code) - 1:
            return index + 1
        return index

    def backspace(self, index: int) -> int:
        """Clear a slot, or step back when it is already empty."""
        if self._otp is None:
            return index
        if self._otp.code[index]:
            self._otp.clear_digit(index)
            return index
        return max(index - 1, 0)

    def set_code(self, code: str) -> None:
        """Fill all slots at once, e.g. from a pasted code."""
        if self._otp is None:
            return
        self._otp.clear()
        for index, digit in enumerate(code.strip()[: len(self._otp.code)]):
            self._otp.set_digit(index, digit)

    @scoped_attempt
    async def verify_phone_otp(self) -> AuthOutcome:
        """Verify the entered code and exchange the result for a session."""
        if self.is_loading:
            return self._busy()
        otp = self._otp
        provider = self._provider
        if self._state != AuthState.OTP_PENDING or otp is None or provider is None:
            return AuthOutcome.failure(
                self._state,
                AuthError(message="Please request a verification code first"),
                ErrorKind.VALIDATION,
            )
        if not otp.is_complete:
            return self._validation_failure(
                ValidationError(
                    f"Please enter the {len(otp.code)}-digit code",
                    field_errors={"code": f"Please enter the {len(otp.code)}-digit code"},
                ),
                AuthState.OTP_PENDING,
            )

        attempt_id = self._begin()
        try:
            response = await self._exchange(provider, otp)
        except TransportError as exc:
            return self._transport_failure(attempt_id, exc, AuthState.OTP_PENDING)
        except ConfigurationError as exc:
            self._set_state(attempt_id, AuthState.OTP_PENDING)
            return AuthOutcome.failure(
                AuthState.OTP_PENDING, AuthError(message=exc.message), exc.kind
            )
        except Exception:
            return self._unexpected_failure(attempt_id, AuthState.OTP_PENDING)
        finally:
            self._finish(attempt_id)

        if not self._is_current(attempt_id):
            return self._stale()
        if response is None:
            return self._response_failure(
                attempt_id, "", "Invalid OTP", AuthState.OTP_PENDING
            )
        if not response.is_authenticated:
            return self._response_failure(
                attempt_id, response.message, "Login failed", AuthState.OTP_PENDING
            )

        outcome = await self._handoff(attempt_id, response)
        if outcome.ok:
            self._countdown.stop()
            self._otp = None
        return outcome

    async def _exchange(
        self, provider: PhoneIdentityProvider, otp: OtpSession
    ) -> AuthResponse | None:
        """Verify with the provider, then trade phone + identity token with the backend."""
        entered = PhoneCredential(phone_number=otp.phone_number, otp_code=otp.code_value)
        credential = await provider.verify_code(otp.verification_id, entered.otp_code)
        if not credential.phone_number:
            return None
        identity_token = await provider.get_identity_token(credential)
        return await self._service.phone_login(credential.phone_number, identity_token)

    def back(self) -> None:
        """Return to phone entry, discarding the code and verification id."""
        self._countdown.stop()
        self._invalidate()
        self._otp = None
        self._state = AuthState.PHONE_ENTRY

    def close(self) -> None:
        """Leave the flow: stop the countdown and release the challenge."""
        self.back()
        self.clear_challenge()

    def clear_challenge(self) -> None:
        """Release the provider challenge handle."""
        if self._challenge is not None:
            self._challenge.clear()
            self._challenge = None

    def _ensure_challenge(self) -> ChallengeVerifier:
        """Create the challenge handle on first use."""
        if self._challenge is None:
            if self._provider is None:
                raise ConfigurationError(PHONE_NOT_CONFIGURED)
            self._challenge = self._provider.create_challenge()
        return self._challenge
