"""
Proposal Data Access Object (DAO).

WHAT: Database operations for the Proposal model.

WHY: Adds the lookups the lifecycle needs on top of BaseDAO. Status
changes go through BaseDAO.update_where so every transition is guarded
by the status it starts from.
"""

from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from client_portal.dao.base import BaseDAO
from client_portal.models.proposal import Proposal, ProposalStatus


class ProposalDAO(BaseDAO[Proposal]):
    """Data Access Object for Proposal model."""

    def __init__(self, session: AsyncSession):
        super().__init__(Proposal, session)

    async def get_by_inquiry(self, inquiry_id: int) -> Optional[Proposal]:
        """
        Get the proposal written for an inquiry.

        WHY: An inquiry has at most one proposal; revisions bump its
        version rather than creating new rows.
        """
        result = await self.session.execute(
            select(Proposal).where(Proposal.inquiry_id == inquiry_id).order_by(Proposal.id.desc()).limit(1)
        )
        return result.scalar_one_or_none()

    async def get_by_status(
        self,
        status: ProposalStatus,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Proposal]:
        result = await self.session.execute(
            select(Proposal)
            .where(Proposal.status == status)
            .order_by(Proposal.updated_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_for_inquiries(self, inquiry_ids: List[int]) -> List[Proposal]:
        """Proposals belonging to any of the given inquiries, newest first."""
        if not inquiry_ids:
            return []
        result = await self.session.execute(
            select(Proposal)
            .where(Proposal.inquiry_id.in_(inquiry_ids))
            .order_by(Proposal.updated_at.desc(), Proposal.id.desc())
        )
        return list(result.scalars().all())
