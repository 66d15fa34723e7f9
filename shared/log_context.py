"""
FastAPI middleware for request logging and context management.

Provides:
- Request ID generation for correlation (echoed as ``X-Request-ID``)
- Client IP binding (hashed in production)
- request_completed log line with status and timing
"""

from __future__ import annotations

import time
import uuid

import structlog
from fastapi import FastAPI, Request

from shared.ip_utils import get_client_ip, hash_ip
from shared.logging import get_logger

log = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def generate_request_id() -> str:
    """Generate a unique request ID for correlation."""
    return f"req_{uuid.uuid4().hex[:12]}"


def log_request_end(
    method: str, path: str, status_code: int, duration_ms: int
) -> None:
    """Log the end of a request; level follows the status class."""
    if status_code >= 500:
        log_fn = log.error
    elif status_code >= 400:
        log_fn = log.warning
    else:
        log_fn = log.info

    log_fn(
        "request_completed",
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=duration_ms,
    )


def setup_logging_middleware(app: FastAPI, *, hash_ips: bool = False) -> None:
    """Register the request logging middleware on *app*."""

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            client_ip=hash_ip(get_client_ip(request), hashed=hash_ips),
        )

        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            duration_ms = int((time.perf_counter() - start) * 1000)
        response.headers[REQUEST_ID_HEADER] = request_id
        if request.url.path != "/health":
            log_request_end(
                request.method, request.url.path, response.status_code, duration_ms
            )
        structlog.contextvars.clear_contextvars()
        return response
