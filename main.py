from __future__ import annotations

import argparse
import asyncio
import getpass
import json
import logging
import os
from typing import Any

from dotenv import load_dotenv

from patient_auth.api.client import ApiClient
from patient_auth.api.errors import ConfigurationError, ErrorKind, to_error_payload
from patient_auth.auth.models import AuthError, AuthOutcome, AuthState, RegistrationForm
from patient_auth.auth.orchestrator import AuthOrchestrator
from patient_auth.auth.phone_flow import PHONE_NOT_CONFIGURED
from patient_auth.auth.service import AuthService
from patient_auth.auth.session import InMemorySessionStore
from patient_auth.core.config import AppConfig
from patient_auth.core.logging import setup_logging
from patient_auth.providers.firebase import FirebasePhoneProvider

logger = logging.getLogger("main")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Sign in to the patient backend from a terminal."
    )
    parser.add_argument(
        "--token",
        default="",
        help="Existing bearer token to reuse for `me` and `logout`.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Email or phone + password login.")
    login.add_argument("identifier", help="Email address or phone number.")
    login.add_argument("--password", default="", help="Prompted when omitted.")

    register = sub.add_parser("register", help="Create a new account.")
    register.add_argument("--first-name", required=True)
    register.add_argument("--last-name", required=True)
    register.add_argument("--email", required=True)
    register.add_argument("--phone", required=True)
    register.add_argument("--date-of-birth", default=None)
    register.add_argument("--gender", default=None)
    register.add_argument("--emergency-contact", default=None)

    google = sub.add_parser("google", help="Exchange a Google ID token.")
    google.add_argument("--id-token", required=True)
    google.add_argument(
        "--phone",
        default="",
        help="Phone number to submit if the account still needs one.",
    )

    sub.add_parser("phone", help="Interactive phone number + SMS code login.")

    forgot = sub.add_parser("forgot-password", help="Request reset instructions.")
    forgot.add_argument("email")

    reset = sub.add_parser("reset-password", help="Set a new password from a reset link.")
    reset.add_argument("--email", default="")
    reset.add_argument("--reset-token", default="")

    sub.add_parser("me", help="Show the signed-in user.")
    sub.add_parser("logout", help="Invalidate the session.")
    return parser


def _summary(outcome: AuthOutcome, store: InMemorySessionStore) -> dict[str, Any]:
    summary: dict[str, Any] = {
        "ok": outcome.ok,
        "state": str(outcome.state),
        "message": outcome.message,
    }
    if outcome.field_errors:
        summary["field_errors"] = outcome.field_errors
    if outcome.pending_profile is not None:
        summary["pending_profile"] = outcome.pending_profile.model_dump(exclude={"id_token"})
    if outcome.details:
        summary["details"] = outcome.details
    if store.user is not None:
        summary["user"] = store.user.model_dump(exclude_none=True)
    return summary


def _prompt_password(label: str = "Password: ") -> str:
    return getpass.getpass(label)


async def _run_phone(orchestrator: AuthOrchestrator) -> AuthOutcome:
    if not orchestrator.capabilities.phone_enabled:
        return AuthOutcome.failure(
            AuthState.PHONE_ENTRY,
            AuthError(message=PHONE_NOT_CONFIGURED),
            ErrorKind.CONFIGURATION,
        )
    flow = orchestrator.start_phone_flow()
    try:
        outcome = await flow.send_code(input("Phone number: "))
        while True:
            print(outcome.message)
            if outcome.state == AuthState.AUTHENTICATED:
                return outcome
            if outcome.error_kind == ErrorKind.CONFIGURATION:
                return outcome
            if flow.state == AuthState.PHONE_ENTRY:
                outcome = await flow.send_code(input("Phone number: "))
                continue

            entry = input("Code (or 'resend' / 'back'): ").strip().lower()
            if entry == "resend":
                outcome = await flow.resend()
            elif entry == "back":
                flow.back()
                outcome = AuthOutcome.success(AuthState.PHONE_ENTRY, message="Enter a phone number")
            else:
                flow.set_code(entry)
                outcome = await orchestrator.verify_phone_otp()
    finally:
        orchestrator.end_phone_flow()


async def run(args: argparse.Namespace, config: AppConfig) -> dict[str, Any]:
    store = InMemorySessionStore()
    api = ApiClient(
        config.api,
        token_getter=lambda: store.token or args.token or None,
        on_unauthorized=store.drop_token,
    )
    phone_provider = None
    if config.firebase.enabled:
        challenge_token = os.getenv("FIREBASE_RECAPTCHA_TOKEN", "").strip()
        phone_provider = FirebasePhoneProvider(
            config.firebase,
            challenge_source=lambda: challenge_token or input("Challenge token: "),
            timeout_seconds=config.api.timeout_seconds,
        )
    orchestrator = AuthOrchestrator(
        AuthService(api),
        store,
        config.capabilities(),
        phone_provider=phone_provider,
        otp_config=config.otp,
    )

    try:
        if args.command == "login":
            outcome = await orchestrator.login(
                args.identifier, args.password or _prompt_password()
            )
        elif args.command == "register":
            password = _prompt_password()
            form = RegistrationForm(
                first_name=args.first_name,
                last_name=args.last_name,
                email=args.email,
                phone=args.phone,
                password=password,
                password_confirmation=_prompt_password("Confirm password: "),
                date_of_birth=args.date_of_birth,
                gender=args.gender,
                emergency_contact=args.emergency_contact,
            )
            outcome = await orchestrator.register_account(form)
        elif args.command == "google":
            outcome = await orchestrator.google_login(args.id_token)
            if outcome.state == AuthState.NEEDS_PHONE:
                print(outcome.message)
                outcome = await orchestrator.complete_google_phone(
                    args.phone or input("Phone number: ")
                )
        elif args.command == "phone":
            outcome = await _run_phone(orchestrator)
        elif args.command == "forgot-password":
            outcome = await orchestrator.forgot_password(args.email)
        elif args.command == "reset-password":
            password = ""
            confirmation = ""
            if args.email and args.reset_token:
                password = _prompt_password("New password: ")
                confirmation = _prompt_password("Confirm password: ")
            outcome = await orchestrator.reset_password(
                email=args.email,
                token=args.reset_token,
                password=password,
                password_confirmation=confirmation,
            )
        elif args.command == "me":
            user = await orchestrator.current_user()
            return {"ok": user is not None, "user": user.model_dump(exclude_none=True) if user else None}
        else:
            await orchestrator.logout()
            return {"ok": True, "state": str(AuthState.IDLE), "message": "Logged out"}
    finally:
        api.close()

    return _summary(outcome, store)


def main() -> None:
    load_dotenv()
    config = AppConfig.from_env()
    setup_logging(config.logging.level)
    args = build_parser().parse_args()
    try:
        summary = asyncio.run(run(args, config))
    except ConfigurationError as exc:
        raise SystemExit(json.dumps(to_error_payload(exc))) from exc
    except KeyboardInterrupt:
        raise SystemExit(130)
    logger.info("Command finished", extra={"state": summary.get("state", "")})
    print(json.dumps(summary, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
