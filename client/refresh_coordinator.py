"""
Single-flight refresh of the access token.

The first caller that finds no refresh in progress becomes the leader and
runs the exchange; callers arriving while it is pending await the same
future. The outcome (new access token or SessionExpiredError) is released to
all of them at once and the in-flight slot is emptied in the same step.

A failed, timed-out or cancelled exchange ends the session: stored tokens
are cleared and nobody retries automatically.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from client.errors import SessionExpiredError
from client.token_store import TokenStore
from shared.logging import get_logger

log = get_logger(__name__)

# refresh_token -> (access_token, rotated refresh_token or None)
RefreshExchange = Callable[[str], Awaitable[tuple[str, Optional[str]]]]


class RefreshCoordinator:
    def __init__(
        self,
        exchange: RefreshExchange,
        token_store: TokenStore,
        *,
        timeout: float = 10.0,
        on_session_expired: Optional[Callable[[], None]] = None,
    ) -> None:
        self._exchange = exchange
        self._store = token_store
        self._timeout = timeout
        self._on_session_expired = on_session_expired
        self._lock = asyncio.Lock()
        self._in_flight: Optional[asyncio.Future[str]] = None

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None

    async def refresh(self, stale_access_token: Optional[str]) -> str:
        """Return an access token newer than *stale_access_token*.

        Raises:
            SessionExpiredError: the exchange failed for this whole group.
        """
        async with self._lock:
            current = self._store.access_token
            if current is not None and current != stale_access_token:
                # Someone already refreshed after our request went out
                return current
            if self._in_flight is None:
                future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
                self._in_flight = future
                leader = True
            else:
                future = self._in_flight
                leader = False

        if leader:
            await self._run(future)
        else:
            log.debug("token_refresh_joined")
        return await asyncio.shield(future)

    async def _run(self, future: asyncio.Future[str]) -> None:
        refresh_token = self._store.refresh_token
        log.info("token_refresh_started")
        try:
            if not refresh_token:
                raise SessionExpiredError("No refresh token available")
            access_token, rotated = await asyncio.wait_for(
                self._exchange(refresh_token), timeout=self._timeout
            )
        except asyncio.CancelledError:
            self._fail(future, SessionExpiredError("Token refresh was cancelled"))
            # Nobody may be left to await it
            future.exception()
            raise
        except asyncio.TimeoutError:
            self._fail(future, SessionExpiredError("Token refresh timed out"))
        except SessionExpiredError as e:
            self._fail(future, e)
        except Exception as e:
            error = SessionExpiredError("Token refresh failed")
            error.__cause__ = e
            self._fail(future, error)
        else:
            self._store.update_access(access_token, rotated)
            self._in_flight = None
            future.set_result(access_token)
            log.info("token_refresh_succeeded", rotated=rotated is not None)

    def _fail(self, future: asyncio.Future[str], error: SessionExpiredError) -> None:
        self._store.clear()
        self._in_flight = None
        future.set_exception(error)
        log.warning("token_refresh_failed", reason=str(error))
        if self._on_session_expired is not None:
            self._on_session_expired()
