"""Federated identity provider clients.

Strategy ABC + registry keep provider differences in one place; only
Google (OIDC) is registered. Authlib's Starlette integration stores the
authorization state in the session cookie, so SessionMiddleware must be
installed before these clients are used.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

from authlib.integrations.starlette_client import OAuth

from shared.logging import get_logger

log = get_logger(__name__)


# ── Provider strategies ───────────────────────────────────────────────────────


class OAuthProviderStrategy(ABC):
    """Encapsulates everything that differs between identity providers."""

    @property
    @abstractmethod
    def key(self) -> str: ...

    @abstractmethod
    async def fetch_user_info(self, client: Any, token: Any) -> dict[str, Any]: ...


class GoogleStrategy(OAuthProviderStrategy):
    key = "google"

    async def fetch_user_info(self, client: Any, token: Any) -> dict[str, Any]:
        userinfo = token.get("userinfo")
        if userinfo is None:
            resp = await client.get("https://openidconnect.googleapis.com/v1/userinfo", token=token)
            resp.raise_for_status()
            userinfo = resp.json()
        return extract_user_info_from_google(userinfo)


PROVIDER_STRATEGIES: dict[str, OAuthProviderStrategy] = {
    s.key: s() for s in [GoogleStrategy]
}


# ── Authlib init ─────────────────────────────────────────────────────────────


def init_oauth(settings: Any) -> Tuple[Optional[OAuth], Dict[str, Any]]:
    """Initialise Authlib OAuth clients for FastAPI/Starlette.

    Accepts an OAuthProviderSettings instance (from config.py).
    Returns (oauth, providers_dict); both are stored on app.state.
    Returns (None, {}) if no providers are configured.
    """
    oauth = OAuth()
    providers: Dict[str, Any] = {}

    if settings.google_oauth_client_id and settings.google_oauth_client_secret:
        try:
            google = oauth.register(
                name="google",
                client_id=settings.google_oauth_client_id,
                client_secret=settings.google_oauth_client_secret,
                server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
                client_kwargs={
                    "scope": "openid email profile",
                    "prompt": "select_account",
                },
            )
            providers["google"] = google
            log.info("oauth_provider_initialized", provider="google")
        except Exception as e:
            log.error("oauth_provider_init_failed", provider="google", error=str(e))

    if not providers:
        log.warning("oauth_no_providers_configured")
        return None, {}

    return oauth, providers


# ── User-info extractors ──────────────────────────────────────────────────────


def extract_user_info_from_google(userinfo: Dict[str, Any]) -> Dict[str, Any]:
    given = userinfo.get("given_name") or ""
    family = userinfo.get("family_name") or ""
    name = userinfo.get("name") or " ".join(p for p in (given, family) if p)
    return {
        "provider_user_id": str(userinfo.get("sub") or ""),
        "email": (userinfo.get("email") or "").lower().strip(),
        "email_verified": bool(userinfo.get("email_verified", False)),
        "name": name.strip(),
    }
