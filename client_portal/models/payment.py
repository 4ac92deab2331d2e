"""
Payment model.

WHAT: One row per expected payment against an accepted proposal.

WHY: Payments follow a two-phase pattern with the gateway:
1. A pending row is written when the proposal is accepted
2. A gateway order is attached when the client starts checkout
3. The verified callback marks the row completed (or failed)

HOW: gateway_order_id correlates our row with the gateway's order so
callbacks and webhooks can find it.
"""

import enum
from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
)

from client_portal.models.base import Base, TimestampMixin, PrimaryKeyMixin
from client_portal.models.proposal import Currency


class PaymentType(str, enum.Enum):
    ADVANCE = "advance"
    BALANCE = "balance"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class Payment(Base, PrimaryKeyMixin, TimestampMixin):
    """Payment owed or made against a proposal."""

    __tablename__ = "payments"

    proposal_id = Column(
        Integer,
        ForeignKey("proposals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payment_type = Column(
        Enum(
            PaymentType,
            name="paymenttype",
            native_enum=False,
            values_callable=lambda enum: [e.value for e in enum],
        ),
        nullable=False,
    )
    amount = Column(Integer, nullable=False)
    currency = Column(
        Enum(
            Currency,
            name="currency",
            native_enum=False,
            values_callable=lambda enum: [e.value for e in enum],
        ),
        nullable=False,
    )
    status = Column(
        Enum(
            PaymentStatus,
            name="paymentstatus",
            native_enum=False,
            values_callable=lambda enum: [e.value for e in enum],
        ),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True,
    )

    # Gateway correlation
    gateway_order_id = Column(String(100), nullable=True, unique=True, index=True)
    gateway_payment_id = Column(String(100), nullable=True)
    gateway_signature = Column(String(255), nullable=True)

    failure_reason = Column(Text, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    refunded_at = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, proposal_id={self.proposal_id}, "
            f"type={self.payment_type}, status={self.status})>"
        )
