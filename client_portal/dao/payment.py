"""
Payment Data Access Object (DAO).

WHAT: Database operations for the Payment model.

WHY: Gateway callbacks only know the order id; the reminder job needs
stale pending advances. Both queries live here.
"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from client_portal.dao.base import BaseDAO
from client_portal.models.payment import Payment, PaymentStatus, PaymentType


class PaymentDAO(BaseDAO[Payment]):
    """Data Access Object for Payment model."""

    def __init__(self, session: AsyncSession):
        super().__init__(Payment, session)

    async def get_by_order_id(self, gateway_order_id: str) -> Optional[Payment]:
        result = await self.session.execute(
            select(Payment).where(Payment.gateway_order_id == gateway_order_id)
        )
        return result.scalar_one_or_none()

    async def list_for_proposal(self, proposal_id: int) -> List[Payment]:
        """Payment history for a proposal, oldest first."""
        result = await self.session.execute(
            select(Payment)
            .where(Payment.proposal_id == proposal_id)
            .order_by(Payment.created_at, Payment.id)
        )
        return list(result.scalars().all())

    async def get_open_payment(
        self, proposal_id: int, payment_type: PaymentType
    ) -> Optional[Payment]:
        """
        Get the payment row a new checkout should attach to.

        WHAT: Latest pending or failed payment of the given type.

        WHY: A failed attempt is retried on the same row so the history
        keeps one record per expected payment.
        """
        result = await self.session.execute(
            select(Payment)
            .where(
                Payment.proposal_id == proposal_id,
                Payment.payment_type == payment_type,
                Payment.status.in_([PaymentStatus.PENDING, PaymentStatus.FAILED]),
            )
            .order_by(Payment.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def has_completed(self, proposal_id: int, payment_type: PaymentType) -> bool:
        result = await self.session.execute(
            select(Payment.id)
            .where(
                Payment.proposal_id == proposal_id,
                Payment.payment_type == payment_type,
                Payment.status == PaymentStatus.COMPLETED,
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def get_stale_pending(
        self, payment_type: PaymentType, created_before: datetime
    ) -> List[Payment]:
        """Pending payments of a type created before a cutoff."""
        result = await self.session.execute(
            select(Payment)
            .where(
                Payment.payment_type == payment_type,
                Payment.status == PaymentStatus.PENDING,
                Payment.created_at < created_before,
            )
            .order_by(Payment.created_at)
        )
        return list(result.scalars().all())
