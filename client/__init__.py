"""
Calling-side session helpers for the auth API.

ApiClient attaches the access token to outbound calls and, when one comes
back 401, lets RefreshCoordinator run a single refresh exchange for every
call that is waiting on it.
"""

from .api_client import ApiClient
from .errors import ApiClientError, SessionExpiredError
from .refresh_coordinator import RefreshCoordinator
from .token_store import TokenStore

__all__ = [
    "ApiClient",
    "ApiClientError",
    "RefreshCoordinator",
    "SessionExpiredError",
    "TokenStore",
]
