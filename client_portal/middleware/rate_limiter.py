"""
Rate limiting for public write endpoints.

WHAT: Redis-backed fixed-window limits on inquiry submission and comment
posting.

WHY: Inquiry submission is unauthenticated and comment posting fans out
notifications to staff. Both are cheap to call and expensive to absorb:
1. Spam inquiries pollute the sales pipeline
2. Comment floods notify every staff member
3. Both write rows that are never deleted

HOW: One counter per (endpoint, client IP). The first request of a
window creates the key with its TTL (SET NX EX), every request INCRs it.

Design decisions:
- Fail-open: If Redis is unavailable, allow requests (prevents self-DOS)
- Limits are keyed by method and path, so GET /api/comments polling is
  never limited
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple
import logging
import redis.asyncio as aioredis
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from client_portal.core.config import settings
from client_portal.core.exceptions import RateLimitExceeded
from client_portal.middleware.request_context import get_client_ip


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    """
    Limit for one endpoint.

    Attributes:
        requests_per_window: Requests allowed per client per window
        window_seconds: Window length
        key_prefix: Redis key namespace for the endpoint's counters
    """

    requests_per_window: int = 5
    window_seconds: int = 60
    key_prefix: str = "ratelimit"


# (method, path) -> limit
RATE_LIMITS: Dict[Tuple[str, str], RateLimitConfig] = {
    ("POST", "/api/inquiries"): RateLimitConfig(
        requests_per_window=5,
        window_seconds=600,
        key_prefix="ratelimit:inquiries",
    ),
    ("POST", "/api/comments"): RateLimitConfig(
        requests_per_window=30,
        window_seconds=60,
        key_prefix="ratelimit:comments",
    ),
}


@dataclass
class RateLimitResult:
    """
    Result of a rate limit check.

    remaining is -1 when Redis could not be consulted.
    """

    allowed: bool
    remaining: int
    reset_after: int
    limit: int

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_after),
        }


class RateLimiter:
    """
    Fixed-window counter on Redis.

    WHY: INCR and EXPIRE are O(1) and shared across app instances, so the
    limit holds however many workers serve the API.
    """

    def __init__(self, redis_client: aioredis.Redis):
        """
        Args:
            redis_client: Async Redis client (a mock in tests)
        """
        self._redis = redis_client

    @staticmethod
    def build_key(config: RateLimitConfig, identifier: str) -> str:
        return f"{config.key_prefix}:{identifier}"

    async def check(self, identifier: str, config: RateLimitConfig) -> RateLimitResult:
        """
        Count a request against the limit.

        Args:
            identifier: Client identifier (IP address)
            config: Limit for the endpoint being called

        Returns:
            RateLimitResult; allowed=True when Redis is unavailable
        """
        key = self.build_key(config, identifier)
        try:
            pipe = self._redis.pipeline()
            pipe.set(key, 0, ex=config.window_seconds, nx=True)
            pipe.incr(key)
            results = await pipe.execute()
            count = results[1]
        except Exception as e:
            # Fail-open: an outage must not block prospects from submitting
            logger.error(
                f"Rate limit Redis error (allowing request): {e}",
                extra={"identifier": identifier, "key_prefix": config.key_prefix},
            )
            return RateLimitResult(
                allowed=True,
                remaining=-1,
                reset_after=config.window_seconds,
                limit=config.requests_per_window,
            )

        return RateLimitResult(
            allowed=count <= config.requests_per_window,
            remaining=max(0, config.requests_per_window - count),
            reset_after=config.window_seconds,
            limit=config.requests_per_window,
        )


_rate_limiter: Optional[RateLimiter] = None


async def get_rate_limiter() -> RateLimiter:
    """Process-wide limiter, connected lazily."""
    global _rate_limiter

    if _rate_limiter is None:
        redis_client = aioredis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )
        _rate_limiter = RateLimiter(redis_client=redis_client)

    return _rate_limiter


def limit_for(method: str, path: str) -> Optional[RateLimitConfig]:
    """Limit configured for an endpoint, if any."""
    return RATE_LIMITS.get((method.upper(), path.rstrip("/") or "/"))


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Apply RATE_LIMITS before the request reaches its handler.

    Usage:
        app.add_middleware(RateLimitMiddleware)
    """

    async def dispatch(self, request: Request, call_next):
        config = limit_for(request.method, request.url.path)
        if config is None or not settings.RATE_LIMIT_ENABLED:
            return await call_next(request)

        identifier = get_client_ip(request)
        limiter = await get_rate_limiter()
        result = await limiter.check(identifier, config)

        if not result.allowed:
            logger.warning(
                f"Rate limit exceeded for {request.method} {request.url.path}",
                extra={"identifier": identifier, "limit": result.limit},
            )
            error = RateLimitExceeded(
                message=f"Rate limit exceeded. Try again in {result.reset_after} seconds.",
                retry_after=result.reset_after,
            )
            return JSONResponse(
                status_code=error.status_code,
                content=error.to_dict(),
                headers={**result.headers(), "Retry-After": str(result.reset_after)},
            )

        response = await call_next(request)
        response.headers.update(result.headers())
        return response
