"""
Request DTOs for authentication endpoints.

RegisterRequest        — POST /auth/register
VerifyOtpRequest       — POST /auth/verify-otp
ResendOtpRequest       — POST /auth/resend-otp, POST /auth/send-otp
LoginRequest           — POST /auth/login
RefreshRequest         — POST /auth/refresh
ForgotPasswordRequest  — POST /auth/forgot-password
ResetPasswordRequest   — POST /auth/reset-password/{token}

Field rules (length, email shape, role set) are enforced by the services
through shared.validators so every caller gets the same error envelope.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    email: str
    password: str
    role: Optional[str] = None
    phone: Optional[str] = None


class VerifyOtpRequest(BaseModel):
    """Request body for POST /auth/verify-otp.

    ``otp`` is the numeric code sent to the account's email address.
    """

    model_config = ConfigDict(populate_by_name=True)

    email: str
    otp: str


class ResendOtpRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    model_config = ConfigDict(populate_by_name=True)

    email: str
    password: str


class RefreshRequest(BaseModel):
    """Request body for POST /auth/refresh.

    The refresh token is only ever sent in the body, never as a cookie.
    """

    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str


class ForgotPasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str


class ResetPasswordRequest(BaseModel):
    """Request body for POST /auth/reset-password/{token}."""

    model_config = ConfigDict(populate_by_name=True)

    password: str
