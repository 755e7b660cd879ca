"""Shared attempt bookkeeping for authentication flows."""

from __future__ import annotations

import functools
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from patient_auth.api.errors import ErrorKind, TransportError, ValidationError
from patient_auth.auth.errors import (
    FALLBACK_MESSAGE,
    format_error_message,
    parse_auth_error,
)
from patient_auth.auth.models import (
    AuthError,
    AuthOutcome,
    AuthResponse,
    AuthState,
    PendingGoogleProfile,
)
from patient_auth.auth.session import SessionStore
from patient_auth.core.logging import attempt_scope, set_attempt_id

logger = logging.getLogger(__name__)

BUSY_MESSAGE = "Request already in progress"

EntryPoint = TypeVar("EntryPoint", bound=Callable[..., Awaitable[Any]])


def scoped_attempt(method: EntryPoint) -> EntryPoint:
    """Keep attempt ids set by an entry point from leaking into the caller's logs."""

    @functools.wraps(method)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        with attempt_scope():
            return await method(*args, **kwargs)

    return wrapper  # type: ignore[return-value]


class AuthFlow:
    """Base for flows that submit at most one request at a time.

    Every submission opens an attempt. A completion whose attempt is no longer
    current is ignored, and each attempt may hand a session off only once.
    """

    flow_name = "auth"

    def __init__(self, session_store: SessionStore, initial_state: AuthState) -> None:
        """Initialize attempt tracking."""
        self._session_store = session_store
        self._state = initial_state
        self._is_loading = False
        self._attempt_id = ""
        self._handed_off: set[str] = set()

    @property
    def state(self) -> AuthState:
        """Return current flow state."""
        return self._state

    @property
    def is_loading(self) -> bool:
        """Return whether a request is in flight; callers disable controls."""
        return self._is_loading

    def _begin(self) -> str:
        """Open a new attempt and enter SUBMITTING."""
        attempt_id = uuid.uuid4().hex
        self._attempt_id = attempt_id
        self._is_loading = True
        self._state = AuthState.SUBMITTING
        set_attempt_id(attempt_id)
        logger.info(
            "Submitting",
            extra={"flow": self.flow_name, "state": str(self._state)},
        )
        return attempt_id

    def _finish(self, attempt_id: str) -> None:
        """Release the loading flag if the attempt is still current."""
        if self._is_current(attempt_id):
            self._is_loading = False

    def _is_current(self, attempt_id: str) -> bool:
        return attempt_id == self._attempt_id

    def _invalidate(self) -> None:
        """Forget the current attempt so late completions are ignored."""
        self._attempt_id = ""
        self._is_loading = False

    def _busy(self) -> AuthOutcome:
        return AuthOutcome.failure(
            self._state,
            AuthError(message=BUSY_MESSAGE),
            ErrorKind.VALIDATION,
        )

    def _stale(self) -> AuthOutcome:
        logger.info(
            "Ignoring completion of a superseded attempt",
            extra={"flow": self.flow_name, "state": str(self._state)},
        )
        return AuthOutcome.failure(
            self._state,
            AuthError(message="Request was superseded"),
            ErrorKind.UNEXPECTED,
        )

    def _set_state(self, attempt_id: str, state: AuthState) -> None:
        if self._is_current(attempt_id):
            self._state = state

    async def _handoff(self, attempt_id: str, response: AuthResponse) -> AuthOutcome:
        """Hand the session to the store once per attempt."""
        if not self._is_current(attempt_id) or attempt_id in self._handed_off:
            return self._stale()
        if response.user is None or not response.token:
            self._state = AuthState.FAILED
            return AuthOutcome.failure(
                self._state, AuthError(message=FALLBACK_MESSAGE), ErrorKind.UNEXPECTED
            )
        self._handed_off.add(attempt_id)
        await self._session_store.set_auth(response.user, response.token)
        self._state = AuthState.AUTHENTICATED
        logger.info(
            "Authenticated",
            extra={"flow": self.flow_name, "state": str(self._state)},
        )
        return AuthOutcome.success(AuthState.AUTHENTICATED, response)

    def _validation_failure(
        self,
        error: ValidationError,
        state: AuthState,
        *,
        pending_profile: PendingGoogleProfile | None = None,
    ) -> AuthOutcome:
        self._state = state
        return AuthOutcome.failure(
            state,
            AuthError(field=error.field, message=error.message),
            ErrorKind.VALIDATION,
            field_errors=error.field_errors,
            pending_profile=pending_profile,
        )

    def _response_failure(
        self,
        attempt_id: str,
        message: str,
        fallback: str,
        state: AuthState,
        *,
        pending_profile: PendingGoogleProfile | None = None,
    ) -> AuthOutcome:
        """Surface success=false responses."""
        if not self._is_current(attempt_id):
            return self._stale()
        self._state = state
        return AuthOutcome.failure(
            state,
            AuthError(message=message or fallback),
            ErrorKind.DOMAIN,
            pending_profile=pending_profile,
        )

    def _transport_failure(
        self,
        attempt_id: str,
        exc: TransportError,
        state: AuthState,
        *,
        pending_profile: PendingGoogleProfile | None = None,
    ) -> AuthOutcome:
        """Normalize a transport failure into a display message."""
        if not self._is_current(attempt_id):
            return self._stale()
        error = parse_auth_error(exc)
        self._state = state
        logger.info(
            "Request failed",
            extra={
                "flow": self.flow_name,
                "state": str(state),
                "status_code": exc.status_code,
                "error_code": error.code or "",
            },
        )
        kind = ErrorKind.DOMAIN if error.code else ErrorKind.TRANSPORT
        return AuthOutcome.failure(
            state,
            error,
            kind,
            message=format_error_message(error),
            pending_profile=pending_profile,
        )

    def _unexpected_failure(self, attempt_id: str, state: AuthState) -> AuthOutcome:
        """Convert an unexpected exception into the fallback error."""
        logger.exception(
            "Unexpected error in auth flow",
            extra={"flow": self.flow_name, "state": str(state)},
        )
        if self._is_current(attempt_id):
            self._state = state
        return AuthOutcome.failure(
            state,
            AuthError(message=FALLBACK_MESSAGE),
            ErrorKind.UNEXPECTED,
        )
