"""
Inquiry Data Access Object (DAO).

WHAT: Database operations for the Inquiry model.

WHY: Keeps inquiry numbering and listing queries in one place:
- Yearly INQ-YYYY-NNN sequence
- Owner-scoped listing for clients
- Status filtering for the staff pipeline
"""

from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from client_portal.dao.base import BaseDAO
from client_portal.models.inquiry import Inquiry, InquiryStatus


INQUIRY_NUMBER_PREFIX = "INQ"


def format_inquiry_number(year: int, sequence: int) -> str:
    """Format an inquiry number, e.g. INQ-2026-007."""
    return f"{INQUIRY_NUMBER_PREFIX}-{year}-{sequence:03d}"


def parse_inquiry_sequence(inquiry_number: str) -> int:
    """
    Extract the sequence part of an inquiry number.

    Returns:
        The trailing integer, or 0 if the number is malformed
    """
    try:
        return int(inquiry_number.rsplit("-", 1)[1])
    except (IndexError, ValueError):
        return 0


class InquiryDAO(BaseDAO[Inquiry]):
    """Data Access Object for Inquiry model."""

    def __init__(self, session: AsyncSession):
        super().__init__(Inquiry, session)

    async def next_inquiry_number(self, year: int) -> str:
        """
        Allocate the next inquiry number for a year.

        WHAT: Highest existing sequence for the year plus one.

        WHY: Numbers are read out to clients over the phone, so they stay
        short and restart each January. The unique constraint on
        inquiry_number rejects a concurrent duplicate.

        Args:
            year: Calendar year

        Returns:
            Next inquiry number, e.g. INQ-2026-001 for the first of the year
        """
        prefix = f"{INQUIRY_NUMBER_PREFIX}-{year}-"
        result = await self.session.execute(
            select(Inquiry.inquiry_number).where(Inquiry.inquiry_number.like(f"{prefix}%"))
        )
        highest = max(
            (parse_inquiry_sequence(number) for number in result.scalars().all()),
            default=0,
        )
        return format_inquiry_number(year, highest + 1)

    async def list_inquiries(
        self,
        status: Optional[InquiryStatus] = None,
        client_user_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Inquiry]:
        """
        List inquiries, newest first.

        Args:
            status: Optional status filter
            client_user_id: Restrict to one client's inquiries
            skip: Pagination offset
            limit: Pagination limit

        Returns:
            Matching inquiries
        """
        query = select(Inquiry)
        if status is not None:
            query = query.where(Inquiry.status == status)
        if client_user_id is not None:
            query = query.where(Inquiry.client_user_id == client_user_id)
        query = query.order_by(Inquiry.created_at.desc(), Inquiry.id.desc()).offset(skip).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())
