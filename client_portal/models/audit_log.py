"""
Audit Log Model.

WHAT: SQLAlchemy model for privileged and financial events.

WHY: Some actions must leave a trail that outlives the entities they
touch:
- Force edits of locked proposals (actor, previous status, justification)
- Manual payment completion and refunds
- Payment verification failures

HOW: Append-only table. JSON columns keep before/after values and
free-form context. Request IP and user agent come from the request
context middleware.
"""

import enum
from sqlalchemy import Column, Integer, String, Enum, ForeignKey, Text, JSON

from client_portal.models.base import Base, TimestampMixin, PrimaryKeyMixin


class AuditAction(str, enum.Enum):
    """Enumeration of auditable actions."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    STATUS_CHANGE = "STATUS_CHANGE"
    ADMIN_OVERRIDE = "ADMIN_OVERRIDE"
    PAYMENT_VERIFIED = "PAYMENT_VERIFIED"
    PAYMENT_VERIFICATION_FAILED = "PAYMENT_VERIFICATION_FAILED"
    PAYMENT_REFUNDED = "PAYMENT_REFUNDED"


class AuditLog(Base, PrimaryKeyMixin, TimestampMixin):
    """
    Immutable audit log entry.

    Fields:
    - actor_user_id: Who performed the action (nullable for gateway callbacks)
    - action: What type of event occurred
    - resource_type / resource_id: What it happened to
    - changes: Before/after values
    - extra_data: Additional context (justification, order ids, ...)
    - ip_address / user_agent: Request origin
    """

    __tablename__ = "audit_logs"

    actor_user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    action = Column(
        Enum(AuditAction, name="auditaction", native_enum=False),
        nullable=False,
        index=True,
    )

    resource_type = Column(String(100), nullable=False, index=True)
    resource_id = Column(Integer, nullable=True, index=True)

    changes = Column(JSON, nullable=True)
    # NOTE: Named 'extra_data' because 'metadata' is reserved by SQLAlchemy
    extra_data = Column(JSON, nullable=True)

    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<AuditLog(id={self.id}, action={self.action}, "
            f"resource={self.resource_type}:{self.resource_id})>"
        )
