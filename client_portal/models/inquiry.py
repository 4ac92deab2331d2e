"""
Inquiry model for prospective client requests.

WHAT: SQLAlchemy model for an inquiry submitted through the public
style quiz / contact form.

WHY: The inquiry is the root of the sales lifecycle:
1. Captures a snapshot of who asked and what they want
2. Tracks the negotiation status up to conversion
3. Points at the single proposal written for it
4. Records which project it became once paid

HOW: Status is a string-backed enum; transitions are validated by the
inquiry state machine service, never by the model itself.
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


class InquiryStatus(str, enum.Enum):
    """
    Inquiry lifecycle status.

    Happy path:
        new -> reviewing -> proposal_sent -> (negotiating -> proposal_sent)*
        -> accepted -> project_setup -> payment_pending -> paid -> converted

    Terminal: converted, rejected, archived.
    """

    NEW = "new"
    REVIEWING = "reviewing"
    PROPOSAL_SENT = "proposal_sent"
    NEGOTIATING = "negotiating"
    ACCEPTED = "accepted"
    PROJECT_SETUP = "project_setup"
    PAYMENT_PENDING = "payment_pending"
    PAID = "paid"
    CONVERTED = "converted"
    REJECTED = "rejected"
    ARCHIVED = "archived"


TERMINAL_INQUIRY_STATUSES = frozenset(
    {InquiryStatus.CONVERTED, InquiryStatus.REJECTED, InquiryStatus.ARCHIVED}
)


class Inquiry(Base, PrimaryKeyMixin, TimestampMixin):
    """
    Prospective client inquiry.

    Attributes:
        inquiry_number: Human readable id, INQ-YYYY-NNN, never changes
        status: Current lifecycle status
        contact_*: Contact snapshot captured at submission
        niche/audience/style/mood/duration: Quiz answers
        recommended_video_type: Video type suggested by the quiz
        client_user_id: Owning client account, when known
        proposal_id: The proposal written for this inquiry
        converted_to_project_id/converted_at: Set together on conversion
        assigned_to_admin_id: Staff member handling the inquiry
    """

    __tablename__ = "inquiries"

    inquiry_number = Column(String(20), unique=True, nullable=False, index=True)

    status = Column(
        Enum(
            InquiryStatus,
            name="inquirystatus",
            native_enum=False,
            values_callable=lambda enum: [e.value for e in enum],
        ),
        nullable=False,
        default=InquiryStatus.NEW,
        index=True,
    )

    # Contact snapshot
    contact_name = Column(String(255), nullable=False)
    contact_email = Column(String(255), nullable=False, index=True)
    company_name = Column(String(255), nullable=True)
    contact_phone = Column(String(50), nullable=True)
    project_notes = Column(Text, nullable=True)

    # Quiz answers
    niche = Column(String(255), nullable=True)
    audience = Column(String(255), nullable=True)
    style = Column(String(255), nullable=True)
    mood = Column(String(255), nullable=True)
    duration = Column(String(100), nullable=True)
    recommended_video_type = Column(String(255), nullable=True)

    # Ownership and lifecycle links
    client_user_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    assigned_to_admin_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    # WHY: No FK constraint; proposals reference inquiries, and a cycle
    # between the two tables would complicate inserts
    proposal_id = Column(Integer, nullable=True)
    converted_to_project_id = Column(Integer, nullable=True)
    converted_at = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<Inquiry(id={self.id}, number={self.inquiry_number}, status={self.status})>"
