"""Security headers middleware."""

from typing import Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from app.core.config import settings

BASELINE_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
}

# Responses under these paths may carry secrets, QR codes or session cookies
NO_STORE_PATH_MARKER = "/auth/"
NO_STORE_HEADERS = {"Cache-Control": "no-store", "Pragma": "no-cache"}

HSTS_VALUE = "max-age=31536000; includeSubDomains"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add baseline security headers, plus no-store on auth routes."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers.update(BASELINE_HEADERS)
        if NO_STORE_PATH_MARKER in request.url.path:
            response.headers.update(NO_STORE_HEADERS)
        if settings.ENV == "prod" and request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = HSTS_VALUE

        return response
