"""
Data Access Object (DAO) package.

WHY: DAOs provide a clean separation between database operations and business logic,
making the codebase more testable and maintainable.
"""

from client_portal.dao.base import BaseDAO
from client_portal.dao.user import UserDAO
from client_portal.dao.inquiry import InquiryDAO
from client_portal.dao.proposal import ProposalDAO
from client_portal.dao.payment import PaymentDAO
from client_portal.dao.project import ProjectDAO
from client_portal.dao.comment import CommentDAO, AttachmentDAO
from client_portal.dao.activity import ActivityLogDAO, NotificationDAO
from client_portal.dao.audit_log import AuditLogDAO

__all__ = [
    "BaseDAO",
    "UserDAO",
    "InquiryDAO",
    "ProposalDAO",
    "PaymentDAO",
    "ProjectDAO",
    "CommentDAO",
    "AttachmentDAO",
    "ActivityLogDAO",
    "NotificationDAO",
    "AuditLogDAO",
]
