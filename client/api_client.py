"""
Async client for the auth API.

- ``Authorization: Bearer`` is attached to every call except the public
  ``/auth/*`` endpoints
- a 401 on an authenticated call triggers one coordinated refresh and one
  retry of that call
- the refresh token is only ever sent in the body of ``/auth/refresh``
"""

from __future__ import annotations

from typing import Any, Callable, Optional

import httpx

from client.errors import ApiClientError, SessionExpiredError
from client.refresh_coordinator import RefreshCoordinator
from client.token_store import TokenStore
from infrastructure.http_client import HttpClient
from shared.logging import get_logger

log = get_logger(__name__)

REFRESH_PATH = "/auth/refresh"

# /auth/* endpoints that still need the caller's access token
AUTHENTICATED_AUTH_PATHS = frozenset({"/auth/me", "/auth/logout"})


def requires_bearer(path: str) -> bool:
    path = "/" + path.split("?", 1)[0].lstrip("/")
    if path.startswith("/auth/"):
        return path in AUTHENTICATED_AUTH_PATHS
    return True


def _payload(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class ApiClient:
    def __init__(
        self,
        base_url: str,
        *,
        token_store: Optional[TokenStore] = None,
        timeout: float = 10.0,
        refresh_timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_session_expired: Optional[Callable[[], None]] = None,
    ) -> None:
        self.tokens = token_store or TokenStore()
        self._http = HttpClient(timeout, base_url=base_url, transport=transport)
        self._coordinator = RefreshCoordinator(
            self._exchange_refresh_token,
            self.tokens,
            timeout=refresh_timeout,
            on_session_expired=on_session_expired,
        )

    @property
    def coordinator(self) -> RefreshCoordinator:
        return self._coordinator

    async def _exchange_refresh_token(self, refresh_token: str) -> tuple[str, Optional[str]]:
        response = await self._http.post(
            REFRESH_PATH, json={"refresh_token": refresh_token}
        )
        if response.status_code != 200:
            raise ApiClientError(response.status_code, _payload(response))
        data = _payload(response).get("data") or {}
        return data["access_token"], data.get("refresh_token")

    def _headers(self, path: str, headers: Optional[dict[str, str]]) -> tuple[dict[str, str], Optional[str]]:
        merged = dict(headers or {})
        token = self.tokens.access_token if requires_bearer(path) else None
        if token:
            merged["Authorization"] = f"Bearer {token}"
        return merged, token

    async def request(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[dict[str, str]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request, refreshing the session once on 401.

        Raises:
            SessionExpiredError: the refresh failed; the session is over.
        """
        sent_headers, sent_token = self._headers(path, headers)
        response = await self._http.request(method, path, headers=sent_headers, **kwargs)

        if response.status_code != 401 or not requires_bearer(path):
            return response
        if not self.tokens.has_session:
            return response

        log.info("request_unauthorized", path=path, method=method)
        new_token = await self._coordinator.refresh(sent_token)

        retry_headers = dict(headers or {})
        retry_headers["Authorization"] = f"Bearer {new_token}"
        return await self._http.request(method, path, headers=retry_headers, **kwargs)

    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", path, **kwargs)

    async def login(self, email: str, password: str) -> dict[str, Any]:
        """Log in and keep the issued pair in the token store."""
        response = await self.post("/auth/login", json={"email": email, "password": password})
        body = _payload(response)
        if response.status_code != 200:
            raise ApiClientError(response.status_code, body)
        data = body.get("data") or {}
        self.tokens.set(data["access_token"], data.get("refresh_token"))
        return data

    async def logout(self) -> None:
        """Revoke the session server-side; local tokens are dropped either way."""
        try:
            if self.tokens.access_token:
                await self.post("/auth/logout")
        except SessionExpiredError:
            log.info("logout_session_already_expired")
        finally:
            self.tokens.clear()

    async def me(self) -> dict[str, Any]:
        response = await self.get("/auth/me")
        body = _payload(response)
        if response.status_code != 200:
            raise ApiClientError(response.status_code, body)
        return (body.get("data") or {}).get("user") or {}

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
