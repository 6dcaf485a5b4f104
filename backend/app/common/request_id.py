"""Request ID middleware and utilities."""

import re
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.logging import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
# Client-supplied ids end up in logs and audit rows
_CLIENT_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")
# Probes are too chatty to log on every hit
QUIET_PATH_SUFFIXES = ("/health", "/ready")


def get_request_id(request: Request) -> str:
    """Get request ID from request state."""
    return getattr(request.state, "request_id", "unknown")


def _resolve_request_id(request: Request) -> str:
    incoming = request.headers.get(REQUEST_ID_HEADER, "")
    if _CLIENT_REQUEST_ID.match(incoming):
        return incoming
    return uuid.uuid4().hex


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id, echo it back and log one line per request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = _resolve_request_id(request)
        request.state.request_id = request_id
        started = time.perf_counter()
        fields = {"request_id": request_id, "method": request.method, "path": request.url.path}

        try:
            response = await call_next(request)
        except Exception:
            fields["latency_ms"] = int((time.perf_counter() - started) * 1000)
            logger.exception("Request failed", extra=fields)
            raise

        response.headers[REQUEST_ID_HEADER] = request_id
        if not request.url.path.endswith(QUIET_PATH_SUFFIXES):
            fields["status_code"] = response.status_code
            fields["latency_ms"] = int((time.perf_counter() - started) * 1000)
            logger.info("Request completed", extra=fields)
        return response
