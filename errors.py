"""
Application error hierarchy and FastAPI exception handlers.

AppError is the base for all typed errors. Services raise them; the global
exception handler converts AppError subclasses to the shared JSON envelope
``{"success": false, "message": ..., "code": ...}``.

Non-AppError exceptions bubble up as 500s (with Sentry reporting in production).
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from shared.logging import get_logger

log = get_logger(__name__)


class AppError(Exception):
    """Base application error. All typed errors inherit from this."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details

    @property
    def headers(self) -> Optional[dict[str, str]]:
        return None

    def extra(self) -> dict:
        """Additional top-level keys merged into the error payload."""
        return {}

    def to_dict(self) -> dict:
        payload: dict = {
            "success": False,
            "message": self.message,
            "code": self.error_code,
        }
        if self.field is not None:
            payload["field"] = self.field
        if self.details is not None:
            payload["details"] = self.details
        payload.update(self.extra())
        return payload


class ValidationError(AppError):
    status_code = 400
    error_code = "validation_error"


class ChallengeError(AppError):
    """Base for OTP and reset-challenge failures."""

    status_code = 400
    error_code = "challenge_error"


class NoChallengeError(ChallengeError):
    error_code = "no_challenge"


class OtpExpiredError(ChallengeError):
    error_code = "otp_expired"


class OtpMismatchError(ChallengeError):
    error_code = "otp_mismatch"


class ResetTokenInvalidError(ChallengeError):
    error_code = "invalid_or_expired_token"


class AuthenticationError(AppError):
    status_code = 401
    error_code = "authentication_error"


class InvalidCredentialsError(AuthenticationError):
    error_code = "invalid_credentials"


class TokenInvalidError(AuthenticationError):
    error_code = "token_invalid"


class TokenExpiredError(AuthenticationError):
    error_code = "token_expired"


class TokenRevokedError(AuthenticationError):
    error_code = "token_revoked"


class FederationFailedError(AuthenticationError):
    error_code = "federation_failed"


class ForbiddenError(AppError):
    status_code = 403
    error_code = "forbidden"


class NotVerifiedError(ForbiddenError):
    error_code = "not_verified"


class NotFoundError(AppError):
    status_code = 404
    error_code = "not_found"


class ConflictError(AppError):
    status_code = 409
    error_code = "conflict"


class DuplicateAccountError(ConflictError):
    error_code = "duplicate_account"


class AlreadyVerifiedError(ConflictError):
    error_code = "already_verified"


class AccountLockedError(AppError):
    """Login rejected while ``lock_until`` is in the future."""

    status_code = 423
    error_code = "account_locked"

    def __init__(self, message: str, *, lock_until: datetime, now: datetime) -> None:
        super().__init__(message)
        self.lock_until = lock_until
        self.retry_after_seconds = max(
            0, math.ceil((lock_until - now).total_seconds())
        )

    @property
    def retry_after_minutes(self) -> int:
        return math.ceil(self.retry_after_seconds / 60)

    @property
    def headers(self) -> Optional[dict[str, str]]:
        return {"Retry-After": str(self.retry_after_seconds)}

    def extra(self) -> dict:
        return {
            "retry_after_seconds": self.retry_after_seconds,
            "retry_after_minutes": self.retry_after_minutes,
            "lock_until": self.lock_until.isoformat(),
        }


class ServiceUnavailableError(AppError):
    status_code = 503
    error_code = "service_unavailable"


class ConcurrentUpdateError(ServiceUnavailableError):
    error_code = "concurrent_update"


class InternalError(AppError):
    status_code = 500
    error_code = "internal_error"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        content = exc.to_dict()
        content["timestamp"] = _timestamp()
        return JSONResponse(
            status_code=exc.status_code, content=content, headers=exc.headers
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        fields = [".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()]
        error = ValidationError("Invalid request body", details={"fields": fields})
        content = error.to_dict()
        content["timestamp"] = _timestamp()
        return JSONResponse(status_code=error.status_code, content=content)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        # Sentry integration: if sentry_sdk is initialized it will auto-capture
        # unhandled exceptions before this handler fires.
        log.error(
            "unhandled_exception",
            path=request.url.path,
            error_type=type(exc).__name__,
            exc_info=exc,
        )
        error = InternalError("An internal server error occurred.")
        content = error.to_dict()
        content["timestamp"] = _timestamp()
        return JSONResponse(status_code=500, content=content)
