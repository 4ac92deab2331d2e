"""
User Data Access Object.

WHY: UserDAO provides database operations for User model, following
the DAO pattern for separation of concerns and testability.
"""

from typing import List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from client_portal.dao.base import BaseDAO
from client_portal.models.user import User, UserRole


class UserDAO(BaseDAO[User]):
    """Data Access Object for User model."""

    def __init__(self, session: AsyncSession):
        super().__init__(User, session)

    async def get_active_by_roles(self, roles: List[UserRole]) -> List[User]:
        """
        List active users holding any of the given roles.

        WHY: Staff notifications fan out to every active admin.

        Args:
            roles: Roles to include

        Returns:
            Matching users ordered by id
        """
        result = await self.session.execute(
            select(User)
            .where(User.role.in_(roles), User.is_active.is_(True))
            .order_by(User.id)
        )
        return list(result.scalars().all())
