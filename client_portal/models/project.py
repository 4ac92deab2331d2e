"""
Project model.

WHAT: The live project an inquiry becomes once its advance is paid.

WHY: Conversion needs a concrete record to point
inquiry.converted_to_project_id at. Delivery tracking lives outside
this service; the project only keeps what it was sold as.
"""

import enum
from sqlalchemy import Column, Enum, ForeignKey, Integer, JSON, String

from client_portal.models.base import Base, TimestampMixin, PrimaryKeyMixin


class ProjectStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Project(Base, PrimaryKeyMixin, TimestampMixin):
    """Project created from a paid inquiry."""

    __tablename__ = "projects"

    name = Column(String(255), nullable=False)
    inquiry_id = Column(
        Integer, ForeignKey("inquiries.id", ondelete="SET NULL"), nullable=True, index=True
    )
    proposal_id = Column(
        Integer, ForeignKey("proposals.id", ondelete="SET NULL"), nullable=True
    )
    client_user_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    # Copied from the accepted proposal; deliverable ids are preserved
    deliverables = Column(JSON, nullable=False, default=list)
    status = Column(
        Enum(
            ProjectStatus,
            name="projectstatus",
            native_enum=False,
            values_callable=lambda enum: [e.value for e in enum],
        ),
        nullable=False,
        default=ProjectStatus.ACTIVE,
    )

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, name={self.name}, status={self.status})>"
