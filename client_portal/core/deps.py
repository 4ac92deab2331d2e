"""
FastAPI dependencies for authentication.

WHY: Dependencies turn the bearer token into an explicit Actor that
routes pass down into services. Authorization decisions themselves live
in client_portal.core.permissions.
"""

from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from client_portal.core.auth import is_token_revoked, verify_token
from client_portal.core.exceptions import (
    AuthenticationError,
    TokenExpiredError,
    TokenInvalidError,
)
from client_portal.core.permissions import Actor
from client_portal.db.session import get_db
from client_portal.dao.user import UserDAO


# auto_error=False so a missing header becomes our 401 envelope, not Starlette's 403
security = HTTPBearer(auto_error=False)


async def _resolve_actor(token: str, db: AsyncSession) -> Actor:
    """
    Verify a token and load its user.

    Raises:
        AuthenticationError: If the token is invalid, revoked, or the user is gone
    """
    try:
        payload = verify_token(token)
    except (TokenExpiredError, TokenInvalidError) as e:
        raise AuthenticationError(message=e.message)

    if await is_token_revoked(token):
        raise AuthenticationError(
            message="Token has been revoked",
            reason="logged_out",
        )

    user_id = payload["user_id"]

    # WHY: Role in the token might be stale; always read the current row
    user = await UserDAO(db).get_by_id(user_id)

    if not user:
        raise AuthenticationError(message="User not found", user_id=user_id)

    if not user.is_active:
        raise AuthenticationError(message="User account is inactive", user_id=user_id)

    return Actor.from_user(user)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> Actor:
    """
    Get the authenticated caller.

    Usage:
        @router.get("/protected")
        async def protected_route(actor: Actor = Depends(get_current_user)):
            ...

    Returns:
        Actor for the authenticated user

    Raises:
        AuthenticationError: If no valid token is presented
    """
    if credentials is None:
        raise AuthenticationError(message="Not authenticated")
    return await _resolve_actor(credentials.credentials, db)


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> Optional[Actor]:
    """
    Get the caller if authenticated, None otherwise.

    WHY: Inquiry submission is public, but a logged-in client's inquiry
    is linked to their account.

    Returns:
        Actor if a valid token was presented, None otherwise
    """
    if not credentials:
        return None

    try:
        return await _resolve_actor(credentials.credentials, db)
    except AuthenticationError:
        return None
