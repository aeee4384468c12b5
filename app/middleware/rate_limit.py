"""
Per-client request limits (slowapi).

Every analysis can cost several Gemini calls, so the analysis route gets the
tightest budget; the quick check only decodes a PDF sample locally and export
never leaves the process.
"""

from typing import Any, List

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

DEFAULT_RETRY_AFTER = 60

RATE_LIMITS = {
    "analysis": "5/minute",
    "check": "30/minute",
    "export": "60/minute",
}


def parse_trusted_proxies(raw: str) -> List[str]:
    """Split the comma-separated ``TRUSTED_PROXIES`` setting."""
    return [part.strip() for part in raw.split(",") if part.strip()]


def get_client_ip(request: Request) -> str:
    """Key requests by client address.

    ``X-Forwarded-For`` is honoured only when the peer itself is a configured
    trusted proxy; otherwise any client could pick its own bucket.
    """
    from app.config import get_settings

    peer = get_remote_address(request)
    if peer not in parse_trusted_proxies(get_settings().trusted_proxies):
        return peer

    forwarded = request.headers.get("X-Forwarded-For")
    if not forwarded:
        return peer
    return forwarded.split(",")[0].strip()


limiter = Limiter(key_func=get_client_ip, default_limits=["200/minute"])


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Answer 429 with the wait time in the body and in ``Retry-After``."""
    retry_after = getattr(exc, "retry_after", DEFAULT_RETRY_AFTER)

    headers = {"Retry-After": str(retry_after), "X-RateLimit-Remaining": "0"}
    limit = getattr(exc, "detail", None)
    if limit:
        headers["X-RateLimit-Limit"] = str(limit)

    return JSONResponse(
        status_code=429,
        content={
            "detail": "Rate limit exceeded",
            "message": (
                "Too many requests from this address. "
                f"Please retry after {retry_after} seconds."
            ),
            "retry_after": retry_after,
        },
        headers=headers,
    )


def get_limiter() -> Any:
    return limiter
