"""
Unit tests for bearer token verification.

WHAT: Token minting, verification and the revocation lookup.

WHY: Tokens come from the identity service; the portal must reject
expired, tampered, claimless and revoked tokens, and must keep serving
clients when Redis is unavailable.
"""

import pytest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

from jose import jwt
from redis.exceptions import ConnectionError as RedisConnectionError

from client_portal.core import auth as auth_module
from client_portal.core.auth import (
    REVOKED_TOKEN_KEY,
    create_access_token,
    is_token_revoked,
    verify_token,
)
from client_portal.core.config import settings
from client_portal.core.exceptions import TokenExpiredError, TokenInvalidError


def encode(claims, secret=None):
    return jwt.encode(claims, secret or settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


class TestCreateAccessToken:
    def test_user_and_role_claims(self):
        payload = verify_token(create_access_token(42, "client"))

        assert payload["user_id"] == 42
        assert payload["role"] == "client"
        assert {"exp", "iat", "nbf"} <= payload.keys()

    def test_extra_claims(self):
        payload = verify_token(create_access_token(7, "client", tenant="studio"))

        assert payload["tenant"] == "studio"

    def test_custom_lifetime(self):
        payload = verify_token(create_access_token(1, "client", expires_delta=timedelta(minutes=5)))

        assert payload["exp"] - payload["iat"] == 300


class TestVerifyToken:
    def test_expired(self):
        token = create_access_token(1, "client", expires_delta=timedelta(seconds=-10))

        with pytest.raises(TokenExpiredError):
            verify_token(token)

    def test_wrong_secret(self):
        token = encode(
            {"user_id": 1, "exp": datetime.utcnow() + timedelta(minutes=5)}, "not-the-secret"
        )

        with pytest.raises(TokenInvalidError):
            verify_token(token)

    def test_malformed(self):
        with pytest.raises(TokenInvalidError):
            verify_token("not.a.jwt")

    def test_missing_user_id(self):
        token = encode({"role": "client", "exp": datetime.utcnow() + timedelta(minutes=5)})

        with pytest.raises(TokenInvalidError, match="missing user_id"):
            verify_token(token)

    def test_role_claim_cannot_be_forged(self):
        """
        WHY: A client must not be able to promote itself by editing the
        role claim.
        """
        header, _, signature = create_access_token(5, "client").split(".")
        forged = encode({"user_id": 5, "role": "super_admin"}, "x").split(".")[1]

        with pytest.raises(TokenInvalidError):
            verify_token(f"{header}.{forged}.{signature}")


class TestRevocation:
    """Revocation lookups against a mocked Redis."""

    @pytest.fixture
    def redis_mock(self, monkeypatch):
        redis_client = AsyncMock()
        monkeypatch.setattr(auth_module, "_redis_client", redis_client)
        return redis_client

    @pytest.mark.asyncio
    async def test_revoked_token(self, redis_mock):
        redis_mock.exists.return_value = 1

        assert await is_token_revoked("revoked") is True
        redis_mock.exists.assert_awaited_once_with(REVOKED_TOKEN_KEY.format(token="revoked"))

    @pytest.mark.asyncio
    async def test_live_token(self, redis_mock):
        redis_mock.exists.return_value = 0

        assert await is_token_revoked("fresh") is False

    @pytest.mark.asyncio
    async def test_redis_outage_fails_open(self, redis_mock, caplog):
        redis_mock.exists.side_effect = RedisConnectionError("down")

        assert await is_token_revoked("any") is False
        assert "allowing token" in caplog.text
