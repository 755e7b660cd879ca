from __future__ import annotations

import re
from typing import Literal

from patient_auth.auth.models import ValidationResult

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
EMAIL_MESSAGE = "Please enter a valid email address"

PHONE_MIN_DIGITS = 10

PASSWORD_MIN_LENGTH = 8
PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")
PASSWORD_LENGTH_MESSAGE = f"Password must be at least {PASSWORD_MIN_LENGTH} characters"
PASSWORD_PATTERN_MESSAGE = "Password must contain uppercase, lowercase, and numbers"

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 50
NAME_PATTERN = re.compile(r"^[a-zA-Z\s'-]+$")
NAME_MESSAGE = "Name can only contain letters, spaces, hyphens, and apostrophes"

IdentifierKind = Literal["email", "phone", "invalid"]


def _ok() -> ValidationResult:
    return ValidationResult(valid=True)


def _fail(message: str) -> ValidationResult:
    return ValidationResult(valid=False, error=message)


def _digits(value: str) -> str:
    return re.sub(r"\D", "", value or "")


def validate_email(email: str) -> ValidationResult:
    if not (email or "").strip():
        return _fail("Email is required")
    if not EMAIL_PATTERN.fullmatch(email):
        return _fail(EMAIL_MESSAGE)
    return _ok()


def validate_phone(phone: str) -> ValidationResult:
    """Count digits only; separators and a leading + are ignored."""
    if not (phone or "").strip():
        return _fail("Phone number is required")
    if len(_digits(phone)) < PHONE_MIN_DIGITS:
        return _fail(f"Phone number must be at least {PHONE_MIN_DIGITS} digits")
    return _ok()


def validate_password(password: str) -> ValidationResult:
    """Length is checked before character classes."""
    if not password:
        return _fail("Password is required")
    if len(password) < PASSWORD_MIN_LENGTH:
        return _fail(PASSWORD_LENGTH_MESSAGE)
    if not PASSWORD_PATTERN.search(password):
        return _fail(PASSWORD_PATTERN_MESSAGE)
    return _ok()


def validate_name(name: str, label: str = "Name") -> ValidationResult:
    if not (name or "").strip():
        return _fail(f"{label} is required")
    if len(name) < NAME_MIN_LENGTH:
        return _fail(f"{label} must be at least {NAME_MIN_LENGTH} characters")
    if len(name) > NAME_MAX_LENGTH:
        return _fail(f"{label} must not exceed {NAME_MAX_LENGTH} characters")
    if not NAME_PATTERN.fullmatch(name):
        return _fail(NAME_MESSAGE)
    return _ok()


def validate_password_match(password: str, confirmation: str) -> ValidationResult:
    if password != confirmation:
        return _fail("Passwords do not match")
    return _ok()


def is_email_or_phone(identifier: str) -> IdentifierKind:
    if validate_email(identifier).valid:
        return "email"
    if validate_phone(identifier).valid:
        return "phone"
    return "invalid"


def get_identifier_type(identifier: str) -> Literal["email", "phone"] | None:
    kind = is_email_or_phone(identifier)
    return None if kind == "invalid" else kind


def format_phone_number(phone: str) -> str:
    cleaned = _digits(phone)
    if len(cleaned) == 10:
        return f"({cleaned[:3]}) {cleaned[3:6]}-{cleaned[6:]}"
    if len(cleaned) == 11 and cleaned[0] == "1":
        return f"+1 ({cleaned[1:4]}) {cleaned[4:7]}-{cleaned[7:]}"
    return phone


def get_phone_country_code(phone: str) -> str:
    # Always "+1" until the product settles on a dialing prefix.
    _ = phone
    return "+1"
