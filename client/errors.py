"""Client-side errors."""

from __future__ import annotations

from typing import Any, Optional


class ApiClientError(Exception):
    """Non-2xx answer from the auth API, carrying its error envelope."""

    def __init__(
        self, status_code: int, payload: Optional[dict[str, Any]] = None
    ) -> None:
        self.status_code = status_code
        self.payload = payload or {}
        self.code = self.payload.get("code")
        super().__init__(self.payload.get("message") or f"HTTP {status_code}")


class SessionExpiredError(Exception):
    """The session could not be refreshed; stored tokens have been cleared."""
