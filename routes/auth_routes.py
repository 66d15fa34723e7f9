"""
Authentication endpoints.

POST /auth/register             — create account, send OTP (201)
POST /auth/verify-otp           — consume OTP, mark verified
POST /auth/resend-otp           — reissue OTP (alias: /auth/send-otp)
POST /auth/login                — password login, issue token pair
POST /auth/refresh              — exchange refresh token for access token
POST /auth/logout               — revoke the session (Bearer required)
POST /auth/forgot-password      — issue reset link (generic response)
POST /auth/reset-password/{tok} — consume reset link, revoke sessions
GET  /auth/me                   — caller's sanitized account (Bearer required)

Handlers only translate between HTTP and the services; every domain error
propagates as an AppError to the global handler.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from dependencies import (
    get_account_repository,
    get_current_claims,
    get_login_service,
    get_password_reset_service,
    get_registration_service,
    get_token_service,
)
from errors import NotFoundError
from repositories.protocol import AccountRepository
from schemas.dto.requests.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    ResendOtpRequest,
    ResetPasswordRequest,
    VerifyOtpRequest,
)
from schemas.dto.responses.auth import (
    AccountProfile,
    EmailStatus,
    LoginData,
    OtpData,
    RefreshData,
    RegisterData,
)
from schemas.dto.responses.common import ApiResponse, ErrorResponse
from services.login_service import LoginService
from services.password_reset_service import PasswordResetService
from services.registration_service import RegistrationService
from services.token_service import TokenService
from shared.logging import get_logger

log = get_logger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["auth"],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        423: {"model": ErrorResponse},
    },
)


def _respond(message: str, data: Any = None, status_code: int = 200) -> JSONResponse:
    body = ApiResponse(message=message, data=data)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", exclude_none=True),
    )


@router.post("/register")
async def register(
    body: RegisterRequest,
    registration: RegistrationService = Depends(get_registration_service),
) -> JSONResponse:
    result = await registration.register(
        body.name, body.email, body.password, body.role, body.phone
    )
    if result.notification_sent:
        message = "Registration successful. Please check your email for the verification code."
    else:
        message = (
            "Registration successful, but we could not send the verification email. "
            "Please request a new code."
        )
    data = RegisterData(
        user=AccountProfile.from_account(result.account),
        email_status=EmailStatus(
            sent=result.notification_sent, otp_expires_in=result.otp_expires_in
        ),
    )
    return _respond(message, data, status_code=201)


@router.post("/verify-otp")
async def verify_otp(
    body: VerifyOtpRequest,
    registration: RegistrationService = Depends(get_registration_service),
) -> JSONResponse:
    account = await registration.verify_otp(body.email, body.otp)
    return _respond(
        "Email verified successfully",
        {"user": AccountProfile.from_account(account)},
    )


@router.post("/resend-otp")
@router.post("/send-otp")
async def resend_otp(
    body: ResendOtpRequest,
    registration: RegistrationService = Depends(get_registration_service),
) -> JSONResponse:
    expires_in = await registration.resend_otp(body.email)
    return _respond("OTP sent successfully", OtpData(otp_expires_in=expires_in))


@router.post("/login")
async def login(
    body: LoginRequest,
    login_service: LoginService = Depends(get_login_service),
) -> JSONResponse:
    result = await login_service.login(body.email, body.password)
    data = LoginData(
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        expires_in=result.tokens.expires_in,
        user=AccountProfile.from_account(result.account),
    )
    return _respond("Login successful", data)


@router.post("/refresh")
async def refresh(
    body: RefreshRequest,
    tokens: TokenService = Depends(get_token_service),
) -> JSONResponse:
    result = await tokens.refresh(body.refresh_token)
    data = RefreshData(
        access_token=result.access_token,
        expires_in=result.expires_in,
        refresh_token=result.refresh_token,
    )
    return _respond("Token refreshed successfully", data)


@router.post("/logout")
async def logout(
    claims: dict = Depends(get_current_claims),
    tokens: TokenService = Depends(get_token_service),
) -> JSONResponse:
    await tokens.revoke(claims["sub"], record_logout=True)
    return _respond("Logged out successfully")


@router.post("/forgot-password")
async def forgot_password(
    body: ForgotPasswordRequest,
    password_reset: PasswordResetService = Depends(get_password_reset_service),
) -> JSONResponse:
    message = await password_reset.forgot_password(body.email)
    return _respond(message)


@router.post("/reset-password/{token}")
async def reset_password(
    token: str,
    body: ResetPasswordRequest,
    password_reset: PasswordResetService = Depends(get_password_reset_service),
) -> JSONResponse:
    await password_reset.reset_password(token, body.password)
    return _respond("Password reset successful. Please log in with your new password.")


@router.get("/me")
async def me(
    claims: dict = Depends(get_current_claims),
    repository: AccountRepository = Depends(get_account_repository),
) -> JSONResponse:
    account = await repository.find_by_id(claims["sub"])
    if account is None:
        log.warning("me_lookup_failed", account_id=claims["sub"])
        raise NotFoundError("User not found")
    return _respond(
        "Profile retrieved successfully",
        {"user": AccountProfile.from_account(account)},
    )
