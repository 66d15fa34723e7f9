"""
Client IP resolution for FastAPI requests.

Takes an explicit ``Request`` parameter so the function is testable without
a request context.
"""

from __future__ import annotations

import hashlib

from fastapi import Request

_PROXY_HEADERS: tuple[str, ...] = (
    "CF-Connecting-IP",
    "X-Forwarded-For",
    "X-Real-IP",
)


def get_client_ip(request: Request) -> str:
    """Extract the real client IP from a FastAPI ``Request``.

    Proxy headers are checked in priority order (first address of a
    comma-separated list) before falling back to the socket peer.

    Returns:
        The resolved client IP string, or ``""`` if none can be found.
    """
    for header in _PROXY_HEADERS:
        ip_value: str | None = request.headers.get(header)
        if ip_value:
            client_ip: str = ip_value.split(",")[0].strip()
            if client_ip:
                return client_ip

    return request.client.host if request.client else ""


def hash_ip(ip_address: str, *, hashed: bool) -> str:
    """Return a 16-char SHA-256 prefix of *ip_address* when *hashed* is set.

    Production logs store the hash only; development keeps the raw address.
    """
    if hashed and ip_address:
        return hashlib.sha256(ip_address.encode()).hexdigest()[:16]
    return ip_address
