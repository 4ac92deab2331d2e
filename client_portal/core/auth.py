"""
Bearer token verification for portal users.

WHY: Sessions are issued by the external identity service, which signs
JWTs with a shared secret and records logouts in Redis. The portal only:
1. Verifies signature, expiry and the user_id claim
2. Rejects tokens the identity service has revoked
3. Mints tokens for tests and service-to-service calls
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import redis.asyncio as aioredis
from jose import JWTError, jwt

from client_portal.core.config import settings
from client_portal.core.exceptions import TokenExpiredError, TokenInvalidError


logger = logging.getLogger(__name__)

# Key layout written by the identity service on logout
REVOKED_TOKEN_KEY = "blacklist:token:{token}"

_redis_client: Optional[aioredis.Redis] = None


async def get_redis() -> aioredis.Redis:
    """Shared Redis client, connected on first use."""
    global _redis_client
    if _redis_client is None:
        _redis_client = await aioredis.from_url(
            settings.REDIS_URL, encoding="utf-8", decode_responses=True
        )
    return _redis_client


def create_access_token(
    user_id: int,
    role: str,
    expires_delta: Optional[timedelta] = None,
    **claims: Any,
) -> str:
    """
    Mint a token the way the identity service does.

    Args:
        user_id: Portal user id
        role: Role claim (informational; the role is re-read from the DB)
        expires_delta: Lifetime, JWT_EXPIRATION_MINUTES by default
        **claims: Extra claims

    Returns:
        Signed JWT
    """
    issued_at = datetime.utcnow()
    lifetime = expires_delta or timedelta(minutes=settings.JWT_EXPIRATION_MINUTES)
    payload = {
        **claims,
        "user_id": user_id,
        "role": role,
        "iat": issued_at,
        "nbf": issued_at,
        "exp": issued_at + lifetime,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str) -> Dict[str, Any]:
    """
    Verify a bearer token and return its claims.

    Raises:
        TokenExpiredError: Token is past its exp claim
        TokenInvalidError: Bad signature, malformed, or no user_id claim
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise TokenExpiredError(message="Token has expired")
    except JWTError as e:
        raise TokenInvalidError(message="Invalid token", error=str(e))

    if not payload.get("user_id"):
        raise TokenInvalidError(message="Invalid token: missing user_id")
    return payload


async def is_token_revoked(token: str) -> bool:
    """
    Check whether the identity service revoked this token.

    WHY: Fail-open. A Redis outage must not lock every client out of the
    portal, so lookup errors are logged and the token is accepted.
    """
    try:
        redis = await get_redis()
        return await redis.exists(REVOKED_TOKEN_KEY.format(token=token)) > 0
    except (aioredis.RedisError, OSError) as e:
        logger.error(f"Token revocation lookup failed (allowing token): {e}")
        return False
