"""
Health check endpoint.

GET /health — checks account store connectivity.
Rules:
- Store reachable → "healthy" (200)
- Store failure → "unhealthy" (503) — no auth operation can run without it.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from schemas.dto.responses.common import HealthResponse
from shared.logging import get_logger

log = get_logger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> JSONResponse:
    checks: dict[str, str] = {}
    overall = "healthy"

    try:
        await request.app.state.account_repository.ping()
        checks["account_store"] = "ok"
    except Exception as e:
        log.warning("health_check_failed", check="account_store", error=str(e))
        checks["account_store"] = "error"
        overall = "unhealthy"

    status_code = 503 if overall == "unhealthy" else 200
    return JSONResponse(
        status_code=status_code,
        content=HealthResponse(status=overall, checks=checks).model_dump(),
    )
