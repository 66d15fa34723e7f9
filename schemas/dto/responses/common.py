"""
Common response DTOs shared across multiple endpoints.

ApiResponse      — success envelope {success, message, data, timestamp}
ErrorResponse    — standard error shape from AppError.to_dict()
HealthResponse   — GET /health
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ApiResponse(BaseModel):
    """Success envelope returned by every auth endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    data: Optional[Any] = None
    timestamp: str = Field(default_factory=_now_iso)


class ErrorResponse(BaseModel):
    """Standard error JSON body produced by the AppError exception handler."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = False
    message: str
    code: str
    timestamp: str
    field: Optional[str] = None
    details: Optional[Any] = None


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    model_config = ConfigDict(populate_by_name=True)

    status: str
    checks: dict[str, str]
