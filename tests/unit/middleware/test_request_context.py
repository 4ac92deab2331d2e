"""
Request Context Middleware Tests.

WHAT: Unit tests for the RequestContextMiddleware.

WHY: Force edits and payment overrides are audited with the caller's IP
address, user agent and request id. These tests ensure correct behavior for:
- Client IP extraction (direct and through proxies)
- Request ID reuse and generation
- Context availability during the request only

HOW: Tests build raw Starlette requests and a minimal FastAPI app.
"""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from starlette.requests import Request

from client_portal.middleware.request_context import (
    REQUEST_ID_HEADER,
    RequestContextMiddleware,
    _request_id,
    get_client_ip,
    get_request_context,
)


def make_request(headers: dict = None, client_host: str = None) -> Request:
    """
    Create a request with specified headers and client.

    Args:
        headers: Dictionary of headers
        client_host: Client IP address

    Returns:
        Starlette Request
    """
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
    }
    if client_host:
        scope["client"] = (client_host, 12345)
    return Request(scope)


class TestGetClientIp:
    """Tests for the get_client_ip function."""

    def test_direct_connection(self):
        assert get_client_ip(make_request(client_host="192.168.1.100")) == "192.168.1.100"

    def test_x_real_ip_preferred(self):
        request = make_request(
            headers={"X-Real-IP": "203.0.113.50", "X-Forwarded-For": "198.51.100.1"},
            client_host="10.0.0.1",
        )
        assert get_client_ip(request) == "203.0.113.50"

    def test_first_forwarded_for_entry(self):
        """
        WHY: Each proxy appends its peer; the first entry is the client.
        """
        request = make_request(
            headers={"X-Forwarded-For": "203.0.113.50, 70.41.3.18, 150.172.238.178"},
            client_host="10.0.0.1",
        )
        assert get_client_ip(request) == "203.0.113.50"

    def test_unknown_without_client(self):
        assert get_client_ip(make_request()) == "unknown"


class TestRequestId:
    def test_reuses_well_formed_upstream_id(self):
        request = make_request(headers={REQUEST_ID_HEADER: "edge-1234abcd"})
        assert _request_id(request) == "edge-1234abcd"

    def test_replaces_malformed_upstream_id(self):
        """A header carrying anything but alnum and dashes is not echoed back."""
        request = make_request(headers={REQUEST_ID_HEADER: "<script>alert(1)</script>"})
        request_id = _request_id(request)

        assert request_id != "<script>alert(1)</script>"
        assert len(request_id) == 36

    def test_generates_id_when_missing(self):
        assert len(_request_id(make_request())) == 36


class TestRequestContextMiddleware:
    """Tests for context propagation through a request."""

    @pytest.fixture
    def app(self):
        app = FastAPI()
        app.add_middleware(RequestContextMiddleware)

        @app.get("/whoami")
        async def whoami():
            ctx = get_request_context()
            return {
                "request_id": ctx.request_id,
                "ip": ctx.ip_address,
                "user_agent": ctx.user_agent,
                "method": ctx.method,
                "path": ctx.path,
            }

        return app

    @pytest.mark.asyncio
    async def test_context_available_in_handler(self, app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            response = await ac.get(
                "/whoami",
                headers={"User-Agent": "portal-tests/1.0", "X-Real-IP": "203.0.113.9"},
            )

        body = response.json()
        assert body["ip"] == "203.0.113.9"
        assert body["user_agent"] == "portal-tests/1.0"
        assert body["method"] == "GET"
        assert body["path"] == "/whoami"
        assert response.headers[REQUEST_ID_HEADER] == body["request_id"]

    @pytest.mark.asyncio
    async def test_upstream_request_id_echoed(self, app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            response = await ac.get("/whoami", headers={REQUEST_ID_HEADER: "lb-42"})

        assert response.headers[REQUEST_ID_HEADER] == "lb-42"

    @pytest.mark.asyncio
    async def test_context_cleared_after_request(self, app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            await ac.get("/whoami")

        assert get_request_context() is None
