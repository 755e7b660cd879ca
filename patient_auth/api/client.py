"""JSON API transport for the patient backend."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable

import requests

from patient_auth.api.errors import TransportError
from patient_auth.core.config import ApiConfig

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


@dataclass(frozen=True)
class ApiResponse:
    """Decoded HTTP response."""

    status: int
    data: Any


class ApiClient:
    """Thin requests-based client returning decoded JSON bodies.

    Calls run in a worker thread so the event loop driving the auth flows
    stays free while a request is in flight.
    """

    def __init__(
        self,
        config: ApiConfig,
        *,
        session: requests.Session | None = None,
        token_getter: Callable[[], str | None] | None = None,
        on_unauthorized: Callable[[], None] | None = None,
    ) -> None:
        """Initialize HTTP session and optional bearer token hooks."""
        self._config = config
        self._session = session or requests.Session()
        self._session.headers.update(DEFAULT_HEADERS)
        self._token_getter = token_getter
        self._on_unauthorized = on_unauthorized

    async def post(self, path: str, json_body: dict[str, Any] | None = None) -> ApiResponse:
        """POST JSON body to backend path."""
        return await asyncio.to_thread(self._request, "POST", path, json_body)

    async def get(self, path: str) -> ApiResponse:
        """GET backend path."""
        return await asyncio.to_thread(self._request, "GET", path, None)

    def close(self) -> None:
        """Release pooled HTTP connections."""
        self._session.close()

    def _url(self, path: str) -> str:
        """Join configured base URL with an endpoint path."""
        return f"{self._config.base_url.rstrip('/')}/{path.lstrip('/')}"

    def _request(
        self, method: str, path: str, json_body: dict[str, Any] | None
    ) -> ApiResponse:
        """Perform blocking request and raise TransportError on failure."""
        headers: dict[str, str] = {}
        token = self._token_getter() if self._token_getter else None
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = self._session.request(
                method,
                self._url(path),
                json=json_body,
                headers=headers,
                timeout=self._config.timeout_seconds,
            )
        except requests.RequestException as exc:
            logger.warning(
                "Request failed before response",
                extra={"path": path},
            )
            raise TransportError(str(exc) or "Network Error") from exc

        data = self._decode(response)
        if response.status_code == 401 and self._on_unauthorized is not None:
            self._on_unauthorized()

        if not response.ok:
            logger.info(
                "Backend returned error status",
                extra={"path": path, "status_code": response.status_code},
            )
            raise TransportError(
                f"Request failed with status code {response.status_code}",
                status_code=response.status_code,
                data=data,
            )
        return ApiResponse(status=response.status_code, data=data)

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        """Decode JSON body with empty-dict fallback."""
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}
