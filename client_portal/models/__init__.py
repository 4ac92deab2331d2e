"""
Database models package.

WHY: Centralizing model imports ensures Alembic can discover all models
for migration generation and makes it easier to import models elsewhere.
"""

from client_portal.models.base import Base, TimestampMixin, PrimaryKeyMixin
from client_portal.models.user import User, UserRole, STAFF_ROLES
from client_portal.models.inquiry import Inquiry, InquiryStatus, TERMINAL_INQUIRY_STATUSES
from client_portal.models.proposal import (
    Proposal,
    ProposalStatus,
    Currency,
    ALLOWED_ADVANCE_PERCENTAGES,
)
from client_portal.models.payment import Payment, PaymentStatus, PaymentType
from client_portal.models.project import Project, ProjectStatus
from client_portal.models.comment import Comment, Attachment, COMMENT_MAX_LENGTH
from client_portal.models.activity import ActivityLog, ActivityType
from client_portal.models.notification import Notification
from client_portal.models.audit_log import AuditLog, AuditAction

__all__ = [
    "Base",
    "TimestampMixin",
    "PrimaryKeyMixin",
    "User",
    "UserRole",
    "STAFF_ROLES",
    "Inquiry",
    "InquiryStatus",
    "TERMINAL_INQUIRY_STATUSES",
    "Proposal",
    "ProposalStatus",
    "Currency",
    "ALLOWED_ADVANCE_PERCENTAGES",
    "Payment",
    "PaymentStatus",
    "PaymentType",
    "Project",
    "ProjectStatus",
    "Comment",
    "Attachment",
    "COMMENT_MAX_LENGTH",
    "ActivityLog",
    "ActivityType",
    "Notification",
    "AuditLog",
    "AuditAction",
]
