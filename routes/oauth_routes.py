"""
Federated sign-in through Google.

GET /auth/google           — redirect to Google's consent screen
GET /auth/google/callback  — exchange the code, sign in, redirect to the frontend

Tokens are handed to the frontend in the URL fragment so they never reach
server logs. Any failure redirects to the login page with
``error=federation_failed``.
"""

from __future__ import annotations

from urllib.parse import urlencode

from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from config import AppSettings
from dependencies import get_federation_service, get_settings
from errors import FederationFailedError, ServiceUnavailableError
from infrastructure.oauth_clients import PROVIDER_STRATEGIES
from services.federation_service import FederationService
from shared.logging import get_logger

log = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["oauth"])

GOOGLE = "google"


def _provider_client(request: Request, provider: str):
    client = request.app.state.oauth_providers.get(provider)
    if client is None:
        raise ServiceUnavailableError(f"{provider.capitalize()} sign-in is not configured")
    return client


def _failure_redirect(settings: AppSettings) -> RedirectResponse:
    query = urlencode({"error": "federation_failed"})
    return RedirectResponse(
        f"{settings.frontend_url.rstrip('/')}/login?{query}", status_code=302
    )


@router.get("/google")
async def google_login(
    request: Request, settings: AppSettings = Depends(get_settings)
):
    google = _provider_client(request, GOOGLE)
    redirect_uri = settings.oauth.google_oauth_redirect_uri or str(
        request.url_for("google_callback")
    )
    return await google.authorize_redirect(request, redirect_uri)


@router.get("/google/callback", name="google_callback")
async def google_callback(
    request: Request,
    settings: AppSettings = Depends(get_settings),
    federation: FederationService = Depends(get_federation_service),
):
    google = _provider_client(request, GOOGLE)

    error = request.query_params.get("error")
    if error:
        log.warning("oauth_callback_error", provider=GOOGLE, error=error)
        return _failure_redirect(settings)

    try:
        token = await google.authorize_access_token(request)
        provider_info = await PROVIDER_STRATEGIES[GOOGLE].fetch_user_info(google, token)
    except OAuthError as e:
        log.warning("oauth_exchange_failed", provider=GOOGLE, error=e.error)
        return _failure_redirect(settings)
    except Exception as e:
        log.error(
            "oauth_exchange_failed",
            provider=GOOGLE,
            error=str(e),
            error_type=type(e).__name__,
        )
        return _failure_redirect(settings)

    try:
        result = await federation.login_with_external_identity(
            GOOGLE,
            provider_info["provider_user_id"],
            {
                "email": provider_info["email"],
                "name": provider_info["name"],
                "email_verified": provider_info["email_verified"],
            },
        )
    except FederationFailedError:
        return _failure_redirect(settings)

    fragment = urlencode(
        {
            "access_token": result.tokens.access_token,
            "refresh_token": result.tokens.refresh_token,
            "token_type": "bearer",
            "expires_in": result.tokens.expires_in,
        }
    )
    return RedirectResponse(
        f"{settings.frontend_url.rstrip('/')}/auth/callback#{fragment}",
        status_code=302,
    )
