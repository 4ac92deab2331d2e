"""
Comment and attachment Data Access Objects.

WHAT: Database operations for proposal threads.

WHY: The thread is read incrementally by polling clients, so ordering
and the `since` watermark filter must be identical everywhere.
"""

from datetime import datetime
from typing import Any, List, Optional
from sqlalchemy import and_, exists, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from client_portal.dao.base import BaseDAO
from client_portal.models.comment import Comment, Attachment


class CommentDAO(BaseDAO[Comment]):
    """Data Access Object for proposal comments."""

    def __init__(self, session: AsyncSession):
        super().__init__(Comment, session)

    async def list_for_proposal(
        self,
        proposal_id: int,
        since: Optional[datetime] = None,
    ) -> List[Comment]:
        """
        List a proposal's comments in thread order.

        Args:
            proposal_id: Proposal whose thread to read
            since: Only comments created at or after this timestamp

        Returns:
            Comments ordered by (created_at, id) ascending
        """
        query = select(Comment).where(Comment.proposal_id == proposal_id)
        if since is not None:
            query = query.where(Comment.created_at >= since)
        query = query.order_by(Comment.created_at, Comment.id)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def update_if_last(self, comment: Comment, **values: Any) -> Optional[Comment]:
        """
        Update a comment only while nothing follows it in its thread.

        WHAT: One UPDATE ... WHERE NOT EXISTS (later comment), using the
        same (created_at, id) order as the thread listing.

        WHY: A reply committed by another session after the caller read
        the thread still blocks the edit.

        Returns:
            The refreshed comment, or None if a later comment exists
        """
        later = aliased(Comment)
        reply_exists = exists().where(
            later.proposal_id == comment.proposal_id,
            or_(
                later.created_at > comment.created_at,
                and_(later.created_at == comment.created_at, later.id > comment.id),
            ),
        )
        statement = (
            update(Comment)
            .where(Comment.id == comment.id, ~reply_exists)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        result = await self.session.execute(statement)
        if result.rowcount == 0:
            return None
        await self.session.refresh(comment)
        return comment


class AttachmentDAO(BaseDAO[Attachment]):
    """Data Access Object for comment attachments."""

    def __init__(self, session: AsyncSession):
        super().__init__(Attachment, session)

    async def list_for_comment(self, comment_id: int) -> List[Attachment]:
        result = await self.session.execute(
            select(Attachment)
            .where(Attachment.comment_id == comment_id)
            .order_by(Attachment.created_at, Attachment.id)
        )
        return list(result.scalars().all())
