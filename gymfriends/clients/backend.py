from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from ..config import Settings, get_settings

logger = logging.getLogger(__name__)


class BackendError(RuntimeError):
    """Raised when a backend call fails or returns an unusable response."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class BackendAuthError(BackendError):
    """Raised when the backend rejects the session or no session is present."""


class BackendNotFoundError(BackendError):
    """Raised when a row the caller expected to exist is missing."""


class BackendClient:
    """Async client for the hosted backend: stored procedures, table rows and auth.

    Speaks the PostgREST dialect (``/rest/v1``) and the auth endpoint
    (``/auth/v1/user``) of the managed service.
    """

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        access_token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._access_token = access_token
        self._client = httpx.AsyncClient(
            base_url=self._settings.backend_url.rstrip("/"),
            timeout=self._settings.backend_timeout,
            transport=transport,
        )

    @property
    def access_token(self) -> str | None:
        return self._access_token

    def set_access_token(self, token: str | None) -> None:
        self._access_token = (token or "").strip() or None

    def _headers(self) -> dict[str, str]:
        key = self._settings.backend_anon_key
        headers = {"apikey": key, "Content-Type": "application/json"}
        headers["Authorization"] = f"Bearer {self._access_token or key}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        merged = self._headers()
        if headers:
            merged.update(headers)
        try:
            response = await self._client.request(method, path, params=params, json=json, headers=merged)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            logger.error("Backend timeout | method=%s path=%s error=%s", method, path, type(exc).__name__)
            raise BackendError("Backend request timed out") from exc
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            logger.error("Backend HTTP status error | method=%s path=%s status=%s", method, path, status_code)
            if status_code in (401, 403):
                raise BackendAuthError("Backend rejected the session", status_code=status_code) from exc
            if status_code == 404:
                raise BackendNotFoundError("Backend resource not found", status_code=status_code) from exc
            raise BackendError(f"Backend returned {status_code}", status_code=status_code) from exc
        except httpx.HTTPError as exc:
            logger.error("Backend transport error | method=%s path=%s error=%s", method, path, type(exc).__name__)
            raise BackendError("Backend request failed") from exc
        return response

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise BackendError("Backend response was not valid JSON") from exc

    async def rpc(self, name: str, params: Mapping[str, Any] | None = None) -> Any:
        """Invoke a stored procedure and return its decoded JSON answer (may be ``None``)."""

        response = await self._request("POST", f"/rest/v1/rpc/{name}", json=dict(params or {}))
        return self._decode(response)

    async def select(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: Mapping[str, Any] | None = None,
        order: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Read rows matching equality ``filters``; ``order`` uses the ``column.desc`` form."""

        params = {"select": columns}
        for column, value in (filters or {}).items():
            params[column] = f"eq.{value}"
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = str(limit)
        response = await self._request("GET", f"/rest/v1/{table}", params=params)
        data = self._decode(response)
        if data is None:
            return []
        if not isinstance(data, list):
            raise BackendError("Invalid select response format")
        return [row for row in data if isinstance(row, dict)]

    async def delete(self, table: str, *, filters: Mapping[str, Any]) -> None:
        if not filters:
            raise ValueError("Refusing to delete without filters")
        params = {column: f"eq.{value}" for column, value in filters.items()}
        await self._request("DELETE", f"/rest/v1/{table}", params=params)

    async def current_user_id(self) -> str | None:
        """Return the signed-in user's id, or ``None`` when there is no valid session."""

        if not self._access_token:
            return None
        try:
            response = await self._request("GET", "/auth/v1/user")
        except BackendAuthError:
            logger.info("Backend session rejected; treating viewer as signed out")
            return None
        data = self._decode(response)
        user_id = data.get("id") if isinstance(data, dict) else None
        return str(user_id) if user_id else None

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


__all__ = ["BackendClient", "BackendError", "BackendAuthError", "BackendNotFoundError"]
