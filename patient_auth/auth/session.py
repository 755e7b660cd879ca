"""Session sink that receives the authenticated user and token."""

from __future__ import annotations

import logging
from typing import Protocol

from patient_auth.auth.models import User

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    """Contract the orchestrator hands sessions to."""

    async def set_auth(self, user: User, token: str) -> None:
        """Record an authenticated session."""

    async def clear(self) -> None:
        """Forget the current session."""


class InMemorySessionStore:
    """Process-local session store with an explicit lifecycle.

    Created at application start, passed to the orchestrator and the API
    client, and cleared on logout.
    """

    def __init__(self) -> None:
        """Start unauthenticated."""
        self._user: User | None = None
        self._token: str | None = None

    @property
    def user(self) -> User | None:
        """Return the current user, if authenticated."""
        return self._user

    @property
    def token(self) -> str | None:
        """Return the current bearer token, if authenticated."""
        return self._token

    @property
    def is_authenticated(self) -> bool:
        """Return whether both user and token are present."""
        return self._user is not None and bool(self._token)

    async def set_auth(self, user: User, token: str) -> None:
        """Record user and token as the active session."""
        self._user = user
        self._token = token
        logger.info("Session established")

    async def update_user(self, user: User) -> None:
        """Replace user profile while keeping the current token."""
        if not self._token:
            logger.error("Cannot update user without an active token")
            return
        self._user = user

    async def clear(self) -> None:
        """Drop user and token."""
        self._user = None
        self._token = None
        logger.info("Session cleared")

    def load(self, user: User | None, token: str | None) -> bool:
        """Restore a previously saved session; both parts are required."""
        if user is None or not token:
            self._user = None
            self._token = None
            return False
        self._user = user
        self._token = token
        return True

    def drop_token(self) -> None:
        """Forget the token after the backend rejected it."""
        self._token = None
