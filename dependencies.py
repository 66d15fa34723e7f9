"""
FastAPI dependency providers.

All injectable dependencies are defined here as plain functions used with
FastAPI's Depends() system. Services are built once in create_app() and
kept on app.state.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config import AppSettings
from errors import AuthenticationError, ForbiddenError
from repositories.protocol import AccountRepository
from schemas.models.account import Role
from services.federation_service import FederationService
from services.login_service import LoginService
from services.password_reset_service import PasswordResetService
from services.registration_service import RegistrationService
from services.token_service import TokenService

_bearer = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> AppSettings:
    """Return the AppSettings instance stored on app.state."""
    return request.app.state.settings


def get_account_repository(request: Request) -> AccountRepository:
    return request.app.state.account_repository


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_login_service(request: Request) -> LoginService:
    return request.app.state.login_service


def get_registration_service(request: Request) -> RegistrationService:
    return request.app.state.registration_service


def get_password_reset_service(request: Request) -> PasswordResetService:
    return request.app.state.password_reset_service


def get_federation_service(request: Request) -> FederationService:
    return request.app.state.federation_service


def get_current_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    tokens: TokenService = Depends(get_token_service),
) -> dict[str, Any]:
    """Verified access-token claims of the caller.

    The caller's identity is always taken from these claims, never from the
    request body.
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("Authentication required")
    return tokens.verify_access(credentials.credentials)


def require_role(*roles: str) -> Callable[..., dict[str, Any]]:
    """Dependency factory admitting only callers whose token carries one of *roles*.

    Usage::

        @router.get("/admin/accounts", dependencies=[Depends(require_role("admin"))])
    """
    allowed = frozenset(Role(role).value for role in roles)

    def check_role(
        claims: dict[str, Any] = Depends(get_current_claims),
    ) -> dict[str, Any]:
        if claims.get("role") not in allowed:
            raise ForbiddenError(f"Not authorized as {' or '.join(sorted(allowed))}")
        return claims

    return check_role
