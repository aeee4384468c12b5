"""
Request log lines.

Each request produces one JSON line on stdout: who called which route, how it
ended, how long it took, and for the analysis routes the gate verdict or the
pipeline error kind the router reported through response headers. Uploaded
documents and model output never reach the log.
"""

import json
import logging
import sys
import time
import uuid
from typing import Any, Awaitable, Callable, Dict

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logging.basicConfig(level=logging.INFO, format="%(message)s", stream=sys.stdout)

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Router-set response header -> log field
_OUTCOME_FIELDS = {
    "X-Gate-Status": "gate_status",
    "X-Error-Kind": "error_kind",
}


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


def _base_entry(request: Request, request_id: str) -> Dict[str, Any]:
    return {
        "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "user_ip": request.client.host if request.client else "unknown",
    }


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id and log its outcome.

    The id comes from the caller's ``X-Request-ID`` when present, is stored on
    ``request.state`` for the routers and echoed back on the response.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        entry = _base_entry(request, request_id)
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            entry.update(
                status_code=500,
                processing_time_ms=_elapsed_ms(started),
                error_type=type(e).__name__,
                error=str(e),
            )
            logger.error(json.dumps(entry), exc_info=True)
            raise

        entry.update(status_code=response.status_code, processing_time_ms=_elapsed_ms(started))
        entry.update(
            {field: response.headers[header]
             for header, field in _OUTCOME_FIELDS.items()
             if header in response.headers}
        )
        logger.info(json.dumps(entry))

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def get_request_id(request: Request) -> str:
    """Id assigned by ``RequestLoggingMiddleware``, or ``"unknown"`` outside it."""
    return getattr(request.state, "request_id", "unknown")
