"""
Response DTOs for authentication endpoints.

AccountProfile    — sanitized account projection used in login/register/me
RegisterData      — data of POST /auth/register  (201)
LoginData         — data of POST /auth/login  (200)
RefreshData       — data of POST /auth/refresh  (200)
OtpData           — data of POST /auth/resend-otp  (200)

Every payload is wrapped in common.ApiResponse by the route handlers.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from schemas.models.account import AccountDoc, Role


class AccountProfile(BaseModel):
    """Account fields safe to return to the account holder.

    Built only through from_account(); no hash, challenge or token field
    exists on this model.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    email: str
    phone: Optional[str] = None
    role: str
    is_verified: bool
    verified_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None
    has_password: bool
    external_provider: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_account(cls, account: AccountDoc) -> "AccountProfile":
        return cls(
            id=account.account_id,
            name=account.name,
            email=account.email,
            phone=account.phone,
            role=Role(account.role).value,
            is_verified=account.is_verified,
            verified_at=account.verified_at,
            last_login_at=account.last_login_at,
            has_password=account.has_password,
            external_provider=(
                account.external_identity.provider
                if account.external_identity
                else None
            ),
            created_at=account.created_at,
        )


class EmailStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sent: bool
    otp_expires_in: int


class RegisterData(BaseModel):
    """Payload of POST /auth/register (201)."""

    model_config = ConfigDict(populate_by_name=True)

    user: AccountProfile
    email_status: EmailStatus


class LoginData(BaseModel):
    """Payload of POST /auth/login (200)."""

    model_config = ConfigDict(populate_by_name=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: AccountProfile


class RefreshData(BaseModel):
    """Payload of POST /auth/refresh (200).

    refresh_token is only present when rotation is enabled.
    """

    model_config = ConfigDict(populate_by_name=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_token: Optional[str] = None


class OtpData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    otp_expires_in: int
