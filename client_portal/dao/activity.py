"""
Activity and notification Data Access Objects.

WHAT: Persistence for the two best-effort side channels.
"""

from typing import List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from client_portal.dao.base import BaseDAO
from client_portal.models.activity import ActivityLog
from client_portal.models.notification import Notification


class ActivityLogDAO(BaseDAO[ActivityLog]):
    """Data Access Object for activity log entries."""

    def __init__(self, session: AsyncSession):
        super().__init__(ActivityLog, session)

    async def list_for_target(self, target_id: int, limit: int = 50) -> List[ActivityLog]:
        result = await self.session.execute(
            select(ActivityLog)
            .where(ActivityLog.target_id == target_id)
            .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_recent(self, limit: int = 50) -> List[ActivityLog]:
        result = await self.session.execute(
            select(ActivityLog)
            .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


class NotificationDAO(BaseDAO[Notification]):
    """Data Access Object for in-app notifications."""

    def __init__(self, session: AsyncSession):
        super().__init__(Notification, session)

    async def list_for_user(
        self, user_id: int, unread_only: bool = False, limit: int = 50
    ) -> List[Notification]:
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.is_read.is_(False))
        query = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())
