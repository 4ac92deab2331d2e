"""
Proposal model for priced, versioned offers.

WHAT: SQLAlchemy model representing the proposal written for an inquiry.

WHY: Proposals are the business agreement with the client:
1. Define deliverables and timeline
2. Specify total price and the advance/balance split
3. Track the client's response
4. Keep a revision counter and an edit history

HOW: Deliverables and the edit history are JSON arrays. Advance and
balance amounts are persisted but always recomputed server side from
total_price and advance_percentage.
"""

import enum
from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
)

from client_portal.models.base import Base, TimestampMixin, PrimaryKeyMixin


class ProposalStatus(str, enum.Enum):
    """
    Proposal status.

    - SENT: Awaiting the client's response (initial status)
    - ACCEPTED: Client accepted; advance payment is due
    - REJECTED: Client declined; retained for history
    - CHANGES_REQUESTED: Client asked for a revision; editable
    """

    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CHANGES_REQUESTED = "changes_requested"


class Currency(str, enum.Enum):
    INR = "INR"
    USD = "USD"


ALLOWED_ADVANCE_PERCENTAGES = (40, 50, 60)


class Proposal(Base, PrimaryKeyMixin, TimestampMixin):
    """
    Proposal for an inquiry.

    Attributes:
        inquiry_id: Owning inquiry (immutable)
        status: Current proposal status
        version: Revision number, +1 per resend
        description: Scope of work
        deliverables: [{id, name, description, estimated_completion_week}]
        currency: INR or USD
        total_price: Integer minor units (paise / cents)
        advance_percentage: 40, 50 or 60
        advance_amount/balance_amount: Derived split, always sums to total
        revisions_included: Number of revision rounds included
        accepted_at/rejected_at: Client response timestamps
        feedback: Client text on reject / request-changes
        edit_history: Append-only list of edit records
        lock_version: Optimistic concurrency token, +1 on every write
    """

    __tablename__ = "proposals"

    inquiry_id = Column(
        Integer,
        ForeignKey("inquiries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status = Column(
        Enum(
            ProposalStatus,
            name="proposalstatus",
            native_enum=False,
            values_callable=lambda enum: [e.value for e in enum],
        ),
        nullable=False,
        default=ProposalStatus.SENT,
    )

    version = Column(Integer, nullable=False, default=1)

    description = Column(Text, nullable=False)
    deliverables = Column(JSON, nullable=False, default=list)

    currency = Column(
        Enum(
            Currency,
            name="currency",
            native_enum=False,
            values_callable=lambda enum: [e.value for e in enum],
        ),
        nullable=False,
        default=Currency.INR,
    )
    total_price = Column(Integer, nullable=False)
    advance_percentage = Column(Integer, nullable=False, default=50)
    advance_amount = Column(Integer, nullable=False)
    balance_amount = Column(Integer, nullable=False)
    revisions_included = Column(Integer, nullable=False, default=2)

    accepted_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    feedback = Column(Text, nullable=True)

    edit_history = Column(JSON, nullable=False, default=list)

    created_by_user_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    lock_version = Column(Integer, nullable=False, default=1)

    def __repr__(self) -> str:
        return f"<Proposal(id={self.id}, inquiry_id={self.inquiry_id}, status={self.status}, v{self.version})>"
