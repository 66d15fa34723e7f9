"""Holds the caller's current session tokens in memory."""

from __future__ import annotations

from typing import Optional


class TokenStore:
    def __init__(
        self,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
    ) -> None:
        self.access_token = access_token
        self.refresh_token = refresh_token

    def set(self, access_token: str, refresh_token: Optional[str]) -> None:
        self.access_token = access_token
        self.refresh_token = refresh_token

    def update_access(self, access_token: str, refresh_token: Optional[str] = None) -> None:
        """Store a refreshed access token; a rotated refresh token replaces the old one."""
        self.access_token = access_token
        if refresh_token:
            self.refresh_token = refresh_token

    def clear(self) -> None:
        self.access_token = None
        self.refresh_token = None

    @property
    def has_session(self) -> bool:
        return self.refresh_token is not None
