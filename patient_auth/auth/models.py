"""Pydantic models for the authentication client domain."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from patient_auth.api.errors import ErrorKind


class AuthState(StrEnum):
    """States reachable by the authentication flows."""

    IDLE = "idle"
    SUBMITTING = "submitting"
    AUTHENTICATED = "authenticated"
    NEEDS_PHONE = "needs_phone"
    VERIFICATION_PENDING = "verification_pending"
    FAILED = "failed"
    INVALID_LINK = "invalid_link"
    PHONE_ENTRY = "phone_entry"
    OTP_PENDING = "otp_pending"


class AuthErrorCode(StrEnum):
    """Backend error codes that drive client-side branching."""

    PHONE_REQUIRED = "PHONE_REQUIRED"
    EMAIL_EXISTS = "EMAIL_EXISTS"
    PHONE_EXISTS = "PHONE_EXISTS"


class User(BaseModel):
    """Backend user record; unknown profile fields are preserved."""

    model_config = ConfigDict(extra="allow")

    id: int | str | None = None
    name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    email: str = ""
    phone: str | None = ""
    phone_verified: bool | None = None
    google_id: str | None = None


class PasswordCredential(BaseModel):
    """Identifier (email or phone) plus password."""

    identifier: str
    password: str


class GoogleCredential(BaseModel):
    """Google ID token obtained from the external consent prompt."""

    id_token: str


class PhoneCredential(BaseModel):
    """Phone number and the one-time code delivered to it."""

    phone_number: str
    otp_code: str


class ValidationResult(BaseModel):
    """Outcome of a single field check."""

    valid: bool
    error: str | None = None


class AuthError(BaseModel):
    """Normalized error with optional field and backend code."""

    field: str | None = None
    message: str
    code: str | None = None


class AuthResponse(BaseModel):
    """Normalized backend response for session-producing calls."""

    success: bool = False
    message: str = ""
    user: User | None = None
    token: str | None = None

    @property
    def is_authenticated(self) -> bool:
        """Return whether the response carries a usable session."""
        return bool(self.success and self.user is not None and self.token)


class ActionResponse(BaseModel):
    """Response of calls that never establish a session."""

    success: bool = False
    message: str = ""


class RegistrationForm(BaseModel):
    """Account registration input."""

    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    password: str = ""
    password_confirmation: str = ""
    date_of_birth: str | None = None
    gender: str | None = None
    emergency_contact: str | None = None

    def field_errors(self) -> dict[str, str]:
        """Validate each required field on its own."""
        from patient_auth.auth import validation

        checks = {
            "first_name": validation.validate_name(self.first_name, "First name"),
            "last_name": validation.validate_name(self.last_name, "Last name"),
            "email": validation.validate_email(self.email),
            "phone": validation.validate_phone(self.phone),
            "password": validation.validate_password(self.password),
        }
        return {
            field: result.error or ""
            for field, result in checks.items()
            if not result.valid
        }

    def validate_form(self) -> dict[str, str]:
        """Run field checks plus the submit-time password match check."""
        from patient_auth.auth import validation

        errors = self.field_errors()
        match = validation.validate_password_match(
            self.password, self.password_confirmation
        )
        if not match.valid:
            errors["password_confirmation"] = match.error or ""
        return errors


class PendingGoogleProfile(BaseModel):
    """Google identity waiting for a phone number before session creation."""

    email: str = ""
    name: str = ""
    google_id: str = ""
    id_token: str


class OtpSession(BaseModel):
    """In-flight phone verification with its code entry buffer."""

    verification_id: str
    phone_number: str
    code: list[str] = Field(default_factory=lambda: [""] * 6)

    def set_digit(self, index: int, value: str) -> None:
        """Store the first character of value in slot index."""
        self.code[index] = value[:1]

    def clear_digit(self, index: int) -> None:
        """Empty slot index."""
        self.code[index] = ""

    def clear(self) -> None:
        """Empty every slot."""
        self.code = [""] * len(self.code)

    @property
    def code_value(self) -> str:
        """Return the entered code as a single string."""
        return "".join(self.code)

    @property
    def is_complete(self) -> bool:
        """Return whether every slot holds a digit."""
        return all(slot.isdigit() for slot in self.code)


class AuthOutcome(BaseModel):
    """Result of an orchestrator entry point: response or error, never both."""

    ok: bool
    state: AuthState
    response: AuthResponse | ActionResponse | None = None
    error: AuthError | None = None
    error_kind: ErrorKind | None = None
    message: str = ""
    field_errors: dict[str, str] = Field(default_factory=dict)
    pending_profile: PendingGoogleProfile | None = None
    details: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def success(
        cls,
        state: AuthState,
        response: AuthResponse | ActionResponse | None = None,
        *,
        message: str = "",
        pending_profile: PendingGoogleProfile | None = None,
        details: dict[str, Any] | None = None,
    ) -> "AuthOutcome":
        """Build a successful outcome."""
        return cls(
            ok=True,
            state=state,
            response=response,
            message=message or (response.message if response else ""),
            pending_profile=pending_profile,
            details=details or {},
        )

    @classmethod
    def failure(
        cls,
        state: AuthState,
        error: AuthError,
        kind: ErrorKind,
        *,
        message: str = "",
        field_errors: dict[str, str] | None = None,
        pending_profile: PendingGoogleProfile | None = None,
    ) -> "AuthOutcome":
        """Build a failed outcome carrying a display message."""
        return cls(
            ok=False,
            state=state,
            error=error,
            error_kind=kind,
            message=message or error.message,
            field_errors=field_errors or {},
            pending_profile=pending_profile,
        )
