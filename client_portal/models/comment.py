"""
Proposal comment and attachment models.

WHAT: The discussion thread that runs alongside a proposal.

WHY: Clients and staff negotiate scope in the thread. It is append-mostly:
- Comments are never deleted (the thread is the audit trail)
- Authors may edit a comment only until someone replies after it
- Attachments are registered only after their bytes reached storage

HOW: user_name is a snapshot taken at write time so the thread shows
the name as it was when the comment was posted.
"""

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Integer,
    String,
    Text,
)

from client_portal.models.base import Base, TimestampMixin, PrimaryKeyMixin


COMMENT_MAX_LENGTH = 10000


class Comment(Base, PrimaryKeyMixin, TimestampMixin):
    """Comment in a proposal thread."""

    __tablename__ = "proposal_comments"

    proposal_id = Column(
        Integer,
        ForeignKey("proposals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    user_name = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    is_edited = Column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<Comment(id={self.id}, proposal_id={self.proposal_id}, user_id={self.user_id})>"


class Attachment(Base, PrimaryKeyMixin, TimestampMixin):
    """File attached to a proposal comment."""

    __tablename__ = "comment_attachments"

    comment_id = Column(
        Integer,
        ForeignKey("proposal_comments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    file_name = Column(String(255), nullable=False)
    file_type = Column(String(100), nullable=False)
    file_size = Column(Integer, nullable=False)
    storage_key = Column(String(500), nullable=False, unique=True)
    uploaded_by = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    def __repr__(self) -> str:
        return f"<Attachment(id={self.id}, comment_id={self.comment_id}, file_name={self.file_name})>"
