"""
Activity log model.

WHAT: Human-oriented record of what happened in the portal.

WHY: The activity log powers the staff dashboard timeline:
1. Who submitted, proposed, accepted, paid
2. Readable without joining to live user rows
3. Never blocks the action it describes

HOW: actor_name is a snapshot. Details are free-form JSON.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from client_portal.models.base import Base


class ActivityType(str, Enum):
    """Activity event types."""

    INQUIRY_SUBMITTED = "inquiry.submitted"
    INQUIRY_STATUS_CHANGED = "inquiry.status_changed"
    PROPOSAL_CREATED = "proposal.created"
    PROPOSAL_UPDATED = "proposal.updated"
    PROPOSAL_FORCE_EDITED = "proposal.force_edited"
    PROPOSAL_RESENT = "proposal.resent"
    PROPOSAL_ACCEPTED = "proposal.accepted"
    PROPOSAL_REJECTED = "proposal.rejected"
    PROPOSAL_CHANGES_REQUESTED = "proposal.changes_requested"
    PAYMENT_COMPLETED = "payment.completed"
    PAYMENT_FAILED = "payment.failed"
    PAYMENT_REFUNDED = "payment.refunded"
    INQUIRY_CONVERTED = "inquiry.converted"
    COMMENT_ADDED = "comment.added"


class ActivityLog(Base):
    """Activity log entry."""

    __tablename__ = "activity_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    actor_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    actor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    target_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, index=True
    )

    def __repr__(self) -> str:
        return f"<ActivityLog(id={self.id}, type={self.type}, target_id={self.target_id})>"
