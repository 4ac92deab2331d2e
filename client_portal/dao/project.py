"""
Project Data Access Object (DAO).

WHAT: Database operations for projects created by conversion.
"""

from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from client_portal.dao.base import BaseDAO
from client_portal.models.project import Project


class ProjectDAO(BaseDAO[Project]):
    """Data Access Object for Project model."""

    def __init__(self, session: AsyncSession):
        super().__init__(Project, session)

    async def get_by_inquiry(self, inquiry_id: int) -> Optional[Project]:
        result = await self.session.execute(
            select(Project).where(Project.inquiry_id == inquiry_id)
        )
        return result.scalar_one_or_none()

    async def list_for_client(self, client_user_id: int) -> List[Project]:
        result = await self.session.execute(
            select(Project)
            .where(Project.client_user_id == client_user_id)
            .order_by(Project.created_at.desc())
        )
        return list(result.scalars().all())
