"""
Security headers middleware.

WHY: OWASP recommends security headers as defense in depth (A05:
Security Misconfiguration). The API only serves JSON, so its responses
get a locked-down policy; the interactive docs keep the defaults they
need to load their assets.
"""

from typing import Callable, Dict

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


DOCS_PATHS = ("/api/docs", "/api/redoc", "/api/openapi.json")

BASE_HEADERS: Dict[str, str] = {
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=(), usb=()",
}

# JSON responses never load sub-resources
API_HEADERS: Dict[str, str] = {
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    "Cache-Control": "no-store",
    "Pragma": "no-cache",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware that adds security headers to all responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers.update(BASE_HEADERS)

        path = request.url.path
        if path.startswith("/api") and not path.startswith(DOCS_PATHS):
            response.headers.update(API_HEADERS)
        return response
