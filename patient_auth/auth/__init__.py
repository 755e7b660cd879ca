"""Public authentication client API."""

from patient_auth.auth.countdown import ResendCountdown
from patient_auth.auth.errors import (
    format_error_message,
    is_email_already_exists_error,
    is_phone_already_exists_error,
    is_phone_required_error,
    parse_auth_error,
)
from patient_auth.auth.models import (
    AuthError,
    AuthErrorCode,
    AuthOutcome,
    AuthResponse,
    AuthState,
    RegistrationForm,
    User,
)
from patient_auth.auth.orchestrator import AuthOrchestrator
from patient_auth.auth.phone_flow import PhoneVerificationFlow
from patient_auth.auth.responses import normalize_auth_response
from patient_auth.auth.service import AuthService
from patient_auth.auth.session import InMemorySessionStore, SessionStore

__all__ = [
    "AuthError",
    "AuthErrorCode",
    "AuthOrchestrator",
    "AuthOutcome",
    "AuthResponse",
    "AuthService",
    "AuthState",
    "InMemorySessionStore",
    "PhoneVerificationFlow",
    "RegistrationForm",
    "ResendCountdown",
    "SessionStore",
    "User",
    "format_error_message",
    "is_email_already_exists_error",
    "is_phone_already_exists_error",
    "is_phone_required_error",
    "normalize_auth_response",
    "parse_auth_error",
]
