"""Authentication orchestrator for password, Google and account flows."""

from __future__ import annotations

import logging

from patient_auth.api.errors import (
    ConfigurationError,
    DomainError,
    ErrorKind,
    TransportError,
    ValidationError,
)
from patient_auth.auth.errors import (
    format_error_message,
    is_email_already_exists_error,
    is_phone_already_exists_error,
    parse_auth_error,
    should_show_phone_screen,
)
from patient_auth.auth.flow import AuthFlow, scoped_attempt
from patient_auth.auth.models import (
    AuthError,
    AuthErrorCode,
    AuthOutcome,
    AuthState,
    GoogleCredential,
    PasswordCredential,
    PendingGoogleProfile,
    RegistrationForm,
    User,
)
from patient_auth.auth.phone_flow import PhoneVerificationFlow
from patient_auth.auth.service import AuthService
from patient_auth.auth.session import SessionStore
from patient_auth.auth.validation import (
    is_email_or_phone,
    validate_email,
    validate_password,
    validate_password_match,
    validate_phone,
)
from patient_auth.core.config import AuthCapabilities, OtpConfig
from patient_auth.providers.interface import PhoneIdentityProvider

logger = logging.getLogger(__name__)

GOOGLE_NOT_CONFIGURED = (
    "Google sign-in is not configured. "
    "Add GOOGLE_*_CLIENT_ID settings and restart the app."
)
INVALID_RESET_LINK = "The password reset link is invalid or has expired."


def _google_profile(id_token: str, user: User | None, body: object = None) -> PendingGoogleProfile:
    """Collect the identity shown on the phone step."""
    source: dict[str, object] = {}
    if isinstance(body, dict):
        nested = body.get("data") if isinstance(body.get("data"), dict) else body
        raw_user = nested.get("user") if isinstance(nested.get("user"), dict) else nested
        source = dict(raw_user)
    if user is not None:
        source = user.model_dump()

    name = str(source.get("name") or "").strip()
    if not name:
        parts = [source.get("first_name"), source.get("last_name")]
        name = " ".join(str(part) for part in parts if part).strip()
    return PendingGoogleProfile(
        email=str(source.get("email") or ""),
        name=name,
        google_id=str(source.get("google_id") or ""),
        id_token=id_token,
    )


class AuthOrchestrator(AuthFlow):
    """Drives an authentication attempt to a session or a displayable error."""

    flow_name = "auth"

    def __init__(
        self,
        service: AuthService,
        session_store: SessionStore,
        capabilities: AuthCapabilities | None = None,
        *,
        phone_provider: PhoneIdentityProvider | None = None,
        otp_config: OtpConfig | None = None,
    ) -> None:
        """Wire collaborators and capability flags."""
        super().__init__(session_store, AuthState.IDLE)
        self._service = service
        self._capabilities = capabilities or AuthCapabilities()
        self._phone_provider = phone_provider
        self._otp_config = otp_config or OtpConfig(
            resend_cooldown_seconds=60, code_length=6
        )
        self._pending_profile: PendingGoogleProfile | None = None
        self._phone_flow: PhoneVerificationFlow | None = None

    @property
    def capabilities(self) -> AuthCapabilities:
        """Return capability flags fixed at configuration load."""
        return self._capabilities

    @property
    def pending_profile(self) -> PendingGoogleProfile | None:
        """Return the Google identity waiting for a phone number."""
        return self._pending_profile

    def cancel(self) -> None:
        """Abandon the current attempt; late responses are ignored."""
        self._invalidate()
        self._pending_profile = None
        self._state = AuthState.IDLE

    @scoped_attempt
    async def login(self, identifier: str, password: str) -> AuthOutcome:
        """Password path: email or phone identifier plus password."""
        if self.is_loading:
            return self._busy()
        credential = PasswordCredential(identifier=identifier or "", password=password or "")
        missing: dict[str, str] = {}
        if not credential.identifier.strip():
            missing["identifier"] = "Email or phone number is required"
        if not credential.password:
            missing["password"] = "Password is required"
        if missing:
            return self._validation_failure(
                ValidationError("Please enter email/phone and password", field_errors=missing),
                AuthState.IDLE,
            )

        kind = is_email_or_phone(credential.identifier)
        if kind == "invalid":
            return self._validation_failure(
                ValidationError(
                    "Please enter a valid email or phone number",
                    field_errors={"identifier": "Please enter a valid email or phone number"},
                ),
                AuthState.IDLE,
            )

        attempt_id = self._begin()
        try:
            response = await self._service.login(
                kind, credential.identifier, credential.password
            )
        except TransportError as exc:
            return self._transport_failure(attempt_id, exc, AuthState.IDLE)
        except Exception:
            return self._unexpected_failure(attempt_id, AuthState.IDLE)
        finally:
            self._finish(attempt_id)

        if not self._is_current(attempt_id):
            return self._stale()
        if response.is_authenticated:
            return await self._handoff(attempt_id, response)
        return self._response_failure(
            attempt_id, response.message, "Login failed", AuthState.IDLE
        )

    @scoped_attempt
    async def google_login(self, id_token: str) -> AuthOutcome:
        """Google path: exchange an ID token, possibly pausing for a phone."""
        if not self._capabilities.google_enabled:
            error = ConfigurationError(GOOGLE_NOT_CONFIGURED)
            return AuthOutcome.failure(
                self._state, AuthError(message=error.message), error.kind
            )
        if self.is_loading:
            return self._busy()
        if not id_token:
            return self._validation_failure(
                ValidationError("Missing id_token from Google"), AuthState.IDLE
            )
        credential = GoogleCredential(id_token=id_token)

        self._pending_profile = None
        attempt_id = self._begin()
        try:
            response = await self._service.google_login(credential.id_token)
        except TransportError as exc:
            if should_show_phone_screen(exc) and self._is_current(attempt_id):
                profile = _google_profile(id_token, None, exc.data)
                return self._needs_phone(attempt_id, profile)
            return self._transport_failure(attempt_id, exc, AuthState.IDLE)
        except Exception:
            return self._unexpected_failure(attempt_id, AuthState.IDLE)
        finally:
            self._finish(attempt_id)

        if not self._is_current(attempt_id):
            return self._stale()
        if response.success and response.user is not None and response.user.phone_verified is False:
            return self._needs_phone(attempt_id, _google_profile(id_token, response.user))
        if response.is_authenticated:
            return await self._handoff(attempt_id, response)
        return self._response_failure(
            attempt_id, response.message, "Unable to sign in", AuthState.IDLE
        )

    def _needs_phone(self, attempt_id: str, profile: PendingGoogleProfile) -> AuthOutcome:
        """Pause the Google path until a phone number is collected."""
        self._pending_profile = profile
        self._set_state(attempt_id, AuthState.NEEDS_PHONE)
        logger.info(
            "Google account needs a phone number",
            extra={"flow": "google", "state": str(AuthState.NEEDS_PHONE)},
        )
        return AuthOutcome.success(
            AuthState.NEEDS_PHONE,
            message=format_error_message(
                AuthError(message="", code=AuthErrorCode.PHONE_REQUIRED)
            ),
            pending_profile=profile,
        )

    @scoped_attempt
    async def complete_google_phone(self, phone: str) -> AuthOutcome:
        """Second Google step: submit the collected phone number."""
        if self.is_loading:
            return self._busy()
        profile = self._pending_profile
        if self._state != AuthState.NEEDS_PHONE or profile is None:
            return AuthOutcome.failure(
                self._state,
                AuthError(message="Missing Google token. Please try again."),
                ErrorKind.VALIDATION,
            )

        check = validate_phone(phone)
        if not check.valid:
            return self._validation_failure(
                ValidationError(check.error or "", field_errors={"phone": check.error or ""}),
                AuthState.NEEDS_PHONE,
                pending_profile=profile,
            )

        attempt_id = self._begin()
        try:
            response = await self._service.google_login(
                profile.id_token,
                phone=phone.strip(),
                email=profile.email or None,
                google_id=profile.google_id or None,
            )
        except TransportError as exc:
            return self._transport_failure(
                attempt_id, exc, AuthState.NEEDS_PHONE, pending_profile=profile
            )
        except Exception:
            return self._unexpected_failure(attempt_id, AuthState.NEEDS_PHONE)
        finally:
            self._finish(attempt_id)

        if not self._is_current(attempt_id):
            return self._stale()
        if response.is_authenticated:
            outcome = await self._handoff(attempt_id, response)
            if outcome.ok:
                self._pending_profile = None
            return outcome
        return self._response_failure(
            attempt_id,
            response.message,
            "Google Sign In Failed",
            AuthState.NEEDS_PHONE,
            pending_profile=profile,
        )

    @scoped_attempt
    async def register_account(self, form: RegistrationForm) -> AuthOutcome:
        """Create an account; a tokenless success waits for email verification."""
        if self.is_loading:
            return self._busy()
        field_errors = form.validate_form()
        if field_errors:
            return self._validation_failure(
                ValidationError(next(iter(field_errors.values())), field_errors=field_errors),
                AuthState.IDLE,
            )

        attempt_id = self._begin()
        try:
            response = await self._service.register(form)
        except TransportError as exc:
            return self._registration_failure(attempt_id, exc)
        except Exception:
            return self._unexpected_failure(attempt_id, AuthState.IDLE)
        finally:
            self._finish(attempt_id)

        if not self._is_current(attempt_id):
            return self._stale()
        if response.is_authenticated:
            return await self._handoff(attempt_id, response)
        if response.success:
            self._state = AuthState.VERIFICATION_PENDING
            return AuthOutcome.success(
                AuthState.VERIFICATION_PENDING,
                response,
                details={"email": form.email.strip()},
            )
        return self._response_failure(
            attempt_id, response.message, "Registration failed", AuthState.IDLE
        )

    def _registration_failure(self, attempt_id: str, exc: TransportError) -> AuthOutcome:
        """Attach duplicate-account errors to their field."""
        if not self._is_current(attempt_id):
            return self._stale()
        if is_email_already_exists_error(exc):
            field, known_code = "email", AuthErrorCode.EMAIL_EXISTS
        elif is_phone_already_exists_error(exc):
            field, known_code = "phone", AuthErrorCode.PHONE_EXISTS
        else:
            return self._transport_failure(attempt_id, exc, AuthState.IDLE)

        parsed = parse_auth_error(exc)
        if not parsed.code:
            parsed = parsed.model_copy(update={"code": str(known_code)})
        message = format_error_message(parsed)
        domain_error = DomainError(message, code=parsed.code or "", field=field)
        self._state = AuthState.IDLE
        return AuthOutcome.failure(
            AuthState.IDLE,
            AuthError(field=field, message=message, code=domain_error.code),
            domain_error.kind,
            field_errors={field: message},
        )

    @scoped_attempt
    async def forgot_password(self, email: str) -> AuthOutcome:
        """Request reset instructions; never establishes a session."""
        if self.is_loading:
            return self._busy()
        check = validate_email(email)
        if not check.valid:
            return self._validation_failure(
                ValidationError(check.error or "", field_errors={"email": check.error or ""}),
                AuthState.IDLE,
            )

        attempt_id = self._begin()
        try:
            response = await self._service.forgot_password(email)
        except TransportError as exc:
            return self._transport_failure(attempt_id, exc, AuthState.IDLE)
        except Exception:
            return self._unexpected_failure(attempt_id, AuthState.IDLE)
        finally:
            self._finish(attempt_id)

        if not self._is_current(attempt_id):
            return self._stale()
        if not response.success:
            return self._response_failure(
                attempt_id, response.message, "Unable to process request", AuthState.IDLE
            )
        self._state = AuthState.IDLE
        return AuthOutcome.success(
            AuthState.IDLE,
            response,
            message=response.message or "Check your email for password reset instructions",
        )

    @scoped_attempt
    async def reset_password(
        self,
        *,
        email: str | None,
        token: str | None,
        password: str,
        password_confirmation: str,
    ) -> AuthOutcome:
        """Set a new password from a reset link; a link without email/token is terminal."""
        if self.is_loading:
            return self._busy()
        if not email or not token:
            self._state = AuthState.INVALID_LINK
            return AuthOutcome.failure(
                AuthState.INVALID_LINK,
                AuthError(message=INVALID_RESET_LINK),
                ErrorKind.INVALID_LINK,
            )

        field_errors: dict[str, str] = {}
        password_check = validate_password(password)
        if not password_check.valid:
            field_errors["password"] = password_check.error or ""
        match_check = validate_password_match(password, password_confirmation)
        if not match_check.valid:
            field_errors["password_confirmation"] = match_check.error or ""
        if field_errors:
            return self._validation_failure(
                ValidationError(next(iter(field_errors.values())), field_errors=field_errors),
                AuthState.IDLE,
            )

        attempt_id = self._begin()
        try:
            response = await self._service.reset_password(
                email=email, password=password, token=token
            )
        except TransportError as exc:
            return self._transport_failure(attempt_id, exc, AuthState.IDLE)
        except Exception:
            return self._unexpected_failure(attempt_id, AuthState.IDLE)
        finally:
            self._finish(attempt_id)

        if not self._is_current(attempt_id):
            return self._stale()
        if not response.success:
            return self._response_failure(
                attempt_id, response.message, "Unable to reset password", AuthState.IDLE
            )
        self._state = AuthState.IDLE
        return AuthOutcome.success(
            AuthState.IDLE,
            response,
            message=response.message or "Your password has been reset successfully",
        )

    async def logout(self) -> None:
        """Tell the backend, then always clear the local session."""
        self.cancel()
        self.end_phone_flow()
        try:
            await self._service.logout()
        except TransportError as exc:
            logger.info(
                "Backend logout failed; clearing local session anyway",
                extra={"flow": "logout", "status_code": exc.status_code},
            )
        finally:
            await self._session_store.clear()

    async def current_user(self) -> User | None:
        """Return the backend's view of the signed-in user."""
        return await self._service.get_current_user()

    def start_phone_flow(self) -> PhoneVerificationFlow:
        """Open a phone/OTP flow, replacing any previous one."""
        self.end_phone_flow()
        self._phone_flow = PhoneVerificationFlow(
            self._service,
            self._session_store,
            self._phone_provider if self._capabilities.phone_enabled else None,
            otp_config=self._otp_config,
        )
        return self._phone_flow

    @property
    def phone_flow(self) -> PhoneVerificationFlow | None:
        """Return the open phone/OTP flow, if any."""
        return self._phone_flow

    async def verify_phone_otp(self) -> AuthOutcome:
        """Verify the code collected by the open phone flow."""
        if self._phone_flow is None:
            return AuthOutcome.failure(
                AuthState.PHONE_ENTRY,
                AuthError(message="Please request a verification code first"),
                ErrorKind.VALIDATION,
            )
        outcome = await self._phone_flow.verify_phone_otp()
        if outcome.state == AuthState.AUTHENTICATED:
            self._state = AuthState.AUTHENTICATED
        return outcome

    def end_phone_flow(self) -> None:
        """Close the phone flow and release its challenge handle."""
        if self._phone_flow is not None:
            self._phone_flow.close()
            self._phone_flow = None
