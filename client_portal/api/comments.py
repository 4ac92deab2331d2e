"""
Proposal comment API endpoints.

WHAT: The discussion thread attached to each proposal.

WHY: Clients and staff negotiate scope in the thread. The portal polls
GET /comments with a `since` watermark, so the list endpoint returns a
plain array ordered oldest first.
"""

from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from client_portal.core.deps import get_current_user
from client_portal.core.permissions import Actor
from client_portal.db.session import get_db
from client_portal.schemas.comment import CommentCreate, CommentResponse, CommentUpdate
from client_portal.services.comment_service import CommentService


router = APIRouter(prefix="/comments", tags=["comments"])


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored timestamps are naive UTC; align an aware watermark with them."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@router.get("", response_model=List[CommentResponse], summary="Fetch a proposal's comments")
async def list_comments(
    proposal_id: int = Query(..., alias="proposalId", gt=0),
    since: Optional[datetime] = Query(
        default=None,
        description="Watermark; comments from a short overlap window before it onwards",
    ),
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> List[CommentResponse]:
    comments = await CommentService(db).list_comments(proposal_id, actor, since=_naive_utc(since))
    return [CommentResponse.model_validate(c) for c in comments]


@router.post(
    "",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Post a comment",
)
async def create_comment(
    data: CommentCreate,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> CommentResponse:
    """
    Append a comment to a proposal's thread.

    Raises:
        AuthorizationError (403): Caller cannot see this proposal
        ValidationError (400): Empty or oversized content
    """
    comment = await CommentService(db).create_comment(data.proposal_id, actor, data.content)
    return CommentResponse.model_validate(comment)


@router.put("/{comment_id}", response_model=CommentResponse, summary="Edit a comment")
async def edit_comment(
    comment_id: int,
    data: CommentUpdate,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> CommentResponse:
    """
    Edit one of your own comments.

    Raises:
        AuthorizationError (403): Not the author
        CommentLockedError (409): Someone has replied since
    """
    comment = await CommentService(db).edit_comment(comment_id, actor, data.content)
    return CommentResponse.model_validate(comment)


@router.delete(
    "/{comment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a comment (not supported)",
)
async def delete_comment(
    comment_id: int,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> None:
    """Always answers 501; comments are part of the proposal's record."""
    await CommentService(db).delete_comment(comment_id, actor)
