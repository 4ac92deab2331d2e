"""
Unit tests for rate limiting middleware.

WHY: Inquiry submission is public and comment posting notifies every
staff member, so both need a ceiling:
1. Spam inquiries must not flood the sales pipeline
2. A runaway client must not flood staff with notifications
3. A Redis outage must never block prospects (fail-open)

Test scenarios:
- Requests under limit are allowed
- Requests over limit are blocked with 429 status
- Different endpoints have separate counters
- Polling (GET) is never limited
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from client_portal.core.config import settings
from client_portal.middleware import rate_limiter as rate_limiter_module
from client_portal.middleware.rate_limiter import (
    RATE_LIMITS,
    RateLimitConfig,
    RateLimiter,
    RateLimitMiddleware,
    RateLimitResult,
    limit_for,
)


def make_redis(count: int = 1, error: Exception = None) -> MagicMock:
    """
    Mock Redis client whose pipeline reports `count` after INCR.

    WHY: redis.asyncio pipelines queue commands synchronously and only
    await execute().
    """
    pipe = MagicMock()
    if error is not None:
        pipe.execute = AsyncMock(side_effect=error)
    else:
        pipe.execute = AsyncMock(return_value=[True, count])
    redis_client = MagicMock()
    redis_client.pipeline.return_value = pipe
    return redis_client


class TestRateLimitConfig:
    """Tests for RateLimitConfig dataclass."""

    def test_default_values(self):
        """Test default rate limit configuration."""
        config = RateLimitConfig()

        assert config.requests_per_window == 5
        assert config.window_seconds == 60
        assert config.key_prefix == "ratelimit"

    def test_inquiry_submission_limit(self):
        """
        Test the public inquiry form limit.

        WHY: An honest prospect submits once or twice; five per ten
        minutes per IP leaves room for typos without allowing spam.
        """
        config = RATE_LIMITS[("POST", "/api/inquiries")]

        assert config.requests_per_window == 5
        assert config.window_seconds == 600

    def test_limits_have_distinct_prefixes(self):
        """Each endpoint counts in its own key namespace."""
        prefixes = [config.key_prefix for config in RATE_LIMITS.values()]
        assert len(prefixes) == len(set(prefixes))


class TestLimitFor:
    """Tests for endpoint to limit lookup."""

    def test_post_inquiries_is_limited(self):
        assert limit_for("POST", "/api/inquiries") is RATE_LIMITS[("POST", "/api/inquiries")]

    def test_trailing_slash_is_ignored(self):
        assert limit_for("post", "/api/comments/") is RATE_LIMITS[("POST", "/api/comments")]

    def test_comment_polling_is_not_limited(self):
        """
        WHY: Every open thread polls GET /api/comments every few seconds;
        limiting it would break the discussion view.
        """
        assert limit_for("GET", "/api/comments") is None

    def test_other_endpoints_are_not_limited(self):
        assert limit_for("POST", "/api/proposals") is None


class TestRateLimiter:
    """Tests for the Redis fixed-window counter."""

    @pytest.mark.asyncio
    async def test_first_request_allowed(self):
        limiter = RateLimiter(make_redis(count=1))
        config = RateLimitConfig(requests_per_window=5, window_seconds=60)

        result = await limiter.check("203.0.113.7", config)

        assert result.allowed is True
        assert result.remaining == 4
        assert result.limit == 5

    @pytest.mark.asyncio
    async def test_request_at_limit_allowed(self):
        limiter = RateLimiter(make_redis(count=5))

        result = await limiter.check("203.0.113.7", RateLimitConfig(requests_per_window=5))

        assert result.allowed is True
        assert result.remaining == 0

    @pytest.mark.asyncio
    async def test_request_over_limit_blocked(self):
        limiter = RateLimiter(make_redis(count=6))

        result = await limiter.check("203.0.113.7", RateLimitConfig(requests_per_window=5))

        assert result.allowed is False
        assert result.remaining == 0

    @pytest.mark.asyncio
    async def test_window_created_with_ttl_only_once(self):
        """
        Test that the window key is created with SET NX EX.

        WHY: NX keeps later requests from extending the window, so a
        steady trickle of requests cannot lock a client out forever.
        """
        redis_client = make_redis(count=1)
        limiter = RateLimiter(redis_client)
        config = RateLimitConfig(window_seconds=600, key_prefix="ratelimit:inquiries")

        await limiter.check("203.0.113.7", config)

        pipe = redis_client.pipeline.return_value
        pipe.set.assert_called_once_with("ratelimit:inquiries:203.0.113.7", 0, ex=600, nx=True)
        pipe.incr.assert_called_once_with("ratelimit:inquiries:203.0.113.7")

    @pytest.mark.asyncio
    async def test_fail_open_on_redis_error(self):
        """
        Test that requests pass when Redis is down.

        WHY: Losing the limiter is better than losing every inquiry.
        """
        limiter = RateLimiter(make_redis(error=ConnectionError("redis down")))

        result = await limiter.check("203.0.113.7", RateLimitConfig())

        assert result.allowed is True
        assert result.remaining == -1

    def test_build_key(self):
        config = RateLimitConfig(key_prefix="ratelimit:comments")
        assert RateLimiter.build_key(config, "10.0.0.1") == "ratelimit:comments:10.0.0.1"


class TestRateLimitResult:
    def test_headers(self):
        result = RateLimitResult(allowed=True, remaining=3, reset_after=60, limit=5)

        assert result.headers() == {
            "X-RateLimit-Limit": "5",
            "X-RateLimit-Remaining": "3",
            "X-RateLimit-Reset": "60",
        }


class TestRateLimitMiddleware:
    """Tests for the middleware wired into a minimal app."""

    @pytest.fixture
    def app(self):
        app = FastAPI()
        app.add_middleware(RateLimitMiddleware)

        @app.post("/api/inquiries")
        async def submit():
            return {"ok": True}

        @app.get("/api/comments")
        async def poll():
            return []

        return app

    @pytest.fixture
    def enable_limits(self, monkeypatch):
        monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)

    async def _post(self, app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            return await ac.post("/api/inquiries", headers={"X-Real-IP": "198.51.100.4"})

    @pytest.mark.asyncio
    async def test_allowed_request_gets_headers(self, app, enable_limits):
        limiter = RateLimiter(make_redis(count=2))
        with patch.object(rate_limiter_module, "get_rate_limiter", AsyncMock(return_value=limiter)):
            response = await self._post(app)

        assert response.status_code == 200
        assert response.headers["X-RateLimit-Limit"] == "5"
        assert response.headers["X-RateLimit-Remaining"] == "3"

    @pytest.mark.asyncio
    async def test_blocked_request_returns_429(self, app, enable_limits):
        limiter = RateLimiter(make_redis(count=6))
        with patch.object(rate_limiter_module, "get_rate_limiter", AsyncMock(return_value=limiter)):
            response = await self._post(app)

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "600"
        body = response.json()
        assert body["error"] == "RateLimitExceeded"
        assert body["details"]["retry_after"] == 600

    @pytest.mark.asyncio
    async def test_counter_keyed_by_client_ip(self, app, enable_limits):
        redis_client = make_redis(count=1)
        limiter = RateLimiter(redis_client)
        with patch.object(rate_limiter_module, "get_rate_limiter", AsyncMock(return_value=limiter)):
            await self._post(app)

        redis_client.pipeline.return_value.incr.assert_called_once_with(
            "ratelimit:inquiries:198.51.100.4"
        )

    @pytest.mark.asyncio
    async def test_get_requests_bypass_limiter(self, app, enable_limits):
        get_limiter = AsyncMock()
        with patch.object(rate_limiter_module, "get_rate_limiter", get_limiter):
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
                response = await ac.get("/api/comments")

        assert response.status_code == 200
        get_limiter.assert_not_called()

    @pytest.mark.asyncio
    async def test_disabled_setting_bypasses_limiter(self, app):
        """The autouse fixture disables limits; nothing is counted."""
        get_limiter = AsyncMock()
        with patch.object(rate_limiter_module, "get_rate_limiter", get_limiter):
            response = await self._post(app)

        assert response.status_code == 200
        get_limiter.assert_not_called()
