"""
User model.

WHY: Users are provisioned by the external identity service and mirrored
here so that roles, display names and ownership checks can be resolved
inside a database transaction.
"""

import enum
from sqlalchemy import Column, String, Enum, Boolean

from client_portal.models.base import Base, TimestampMixin, PrimaryKeyMixin


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    WHY: Enum ensures only valid roles can be assigned. Three staff tiers
    plus the client role drive every permission decision in the portal.
    """

    SUPER_ADMIN = "super_admin"
    PROJECT_MANAGER = "project_manager"
    TEAM_MEMBER = "team_member"
    CLIENT = "client"


STAFF_ROLES = frozenset(
    {UserRole.SUPER_ADMIN, UserRole.PROJECT_MANAGER, UserRole.TEAM_MEMBER}
)


class User(Base, PrimaryKeyMixin, TimestampMixin):
    """User account mirrored from the identity service."""

    __tablename__ = "users"

    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)

    # Default CLIENT role ensures least-privilege access
    role = Column(
        Enum(
            UserRole,
            name="userrole",
            native_enum=False,
            values_callable=lambda enum: [e.value for e in enum],
        ),
        nullable=False,
        default=UserRole.CLIENT,
    )

    # WHY: is_active allows suspending users without losing audit trail
    is_active = Column(Boolean, default=True, nullable=False)

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
