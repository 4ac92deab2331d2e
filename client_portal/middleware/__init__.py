"""
Middleware package.

WHY: Cross-cutting request concerns (security headers, request context
for audit logging, rate limiting) that apply to every route.
"""

from client_portal.middleware.security_headers import SecurityHeadersMiddleware
from client_portal.middleware.request_context import (
    RequestContextMiddleware,
    get_request_context,
    get_client_ip,
    RequestContext,
)
from client_portal.middleware.rate_limiter import (
    RateLimitMiddleware,
    RateLimiter,
    RateLimitConfig,
    RateLimitResult,
    get_rate_limiter,
    RATE_LIMITS,
)

__all__ = [
    "SecurityHeadersMiddleware",
    "RequestContextMiddleware",
    "get_request_context",
    "get_client_ip",
    "RequestContext",
    "RateLimitMiddleware",
    "RateLimiter",
    "RateLimitConfig",
    "RateLimitResult",
    "get_rate_limiter",
    "RATE_LIMITS",
]
