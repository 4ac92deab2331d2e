"""
Comment Service.

WHAT: Business logic for proposal discussion threads and their
attachments.

WHY: The thread is the negotiation record between the studio and the
client, so it is append-mostly:
1. Comments are never deleted
2. A comment can only be edited by its author, and only until someone
   posts after it
3. Attachments are registered only once the bytes are in storage

HOW: Coordinates CommentDAO / AttachmentDAO with the storage client.
Ordering is always (created_at, id) ascending so every reader sees the
same thread.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from client_portal.core.config import settings
from client_portal.core.exceptions import (
    AttachmentNotFoundError,
    AuthorizationError,
    CommentLockedError,
    CommentNotFoundError,
    NotImplementedFeatureError,
    StorageError,
    ValidationError,
)
from client_portal.core.permissions import Action, Actor, require
from client_portal.dao.comment import AttachmentDAO, CommentDAO
from client_portal.models.activity import ActivityType
from client_portal.models.comment import COMMENT_MAX_LENGTH, Attachment, Comment
from client_portal.models.inquiry import Inquiry
from client_portal.services.activity_service import ActivityService
from client_portal.services.notification_service import (
    NotificationPayload,
    NotificationService,
    NotificationType,
)
from client_portal.services.proposal_service import ProposalService
from client_portal.services.storage import (
    StorageService,
    attachment_scope,
    build_storage_key,
)

logger = logging.getLogger(__name__)

ALLOWED_ATTACHMENT_TYPES = frozenset(
    {
        "image/png",
        "image/jpeg",
        "image/webp",
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "text/plain",
    }
)
MAX_FILE_NAME_LENGTH = 255
PREVIEW_LENGTH = 120


def has_subsequent_replies(comments: Sequence[Any], comment_id: int) -> bool:
    """
    Check whether anything was posted after a comment in its thread.

    WHAT: Sorts the full thread by (created_at, id) and looks for any
    entry after the given comment.

    WHY: Computed from the complete ordered list every time; a cached
    flag could miss a reply that arrived since it was set.

    Args:
        comments: Every comment of the thread, in any order
        comment_id: Comment to check

    Returns:
        True if a later comment exists. False if the comment is last or
        not in the list.
    """
    ordered = sorted(comments, key=lambda c: (c.created_at, c.id))
    for index, comment in enumerate(ordered):
        if comment.id == comment_id:
            return index < len(ordered) - 1
    return False


def validate_content(content: Optional[str]) -> str:
    """
    Trim and bound comment text.

    Raises:
        ValidationError: Empty, or longer than COMMENT_MAX_LENGTH
    """
    cleaned = (content or "").strip()
    if not cleaned:
        raise ValidationError(message="Comment cannot be empty", field="content")
    if len(cleaned) > COMMENT_MAX_LENGTH:
        raise ValidationError(
            message=f"Comment cannot exceed {COMMENT_MAX_LENGTH} characters",
            field="content",
        )
    return cleaned


def validate_attachment(file_name: Optional[str], file_type: Optional[str], file_size: Any) -> None:
    """
    Check attachment metadata against the allow-list and limits.

    Raises:
        ValidationError: With one {field, message} item per problem
    """
    errors = []
    name = (file_name or "").strip()
    if not name:
        errors.append({"field": "file_name", "message": "File name is required"})
    elif len(name) > MAX_FILE_NAME_LENGTH:
        errors.append(
            {
                "field": "file_name",
                "message": f"File name cannot exceed {MAX_FILE_NAME_LENGTH} characters",
            }
        )
    if file_type not in ALLOWED_ATTACHMENT_TYPES:
        errors.append({"field": "file_type", "message": "File type is not allowed"})
    max_size = settings.MAX_ATTACHMENT_SIZE_BYTES
    if not isinstance(file_size, int) or isinstance(file_size, bool) or not 0 < file_size <= max_size:
        errors.append(
            {
                "field": "file_size",
                "message": f"File size must be between 1 byte and {max_size // (1024 * 1024)}MB",
            }
        )
    if errors:
        raise ValidationError(message="Invalid attachment", errors=errors)


class CommentService:
    """
    Service for proposal comments and attachments.

    Attributes:
        comment_dao: CommentDAO bound to the request session
        attachment_dao: AttachmentDAO bound to the request session
        storage: Object storage client, required for attachment operations
    """

    def __init__(
        self,
        session: AsyncSession,
        storage: Optional[StorageService] = None,
        notifications: Optional[NotificationService] = None,
        activity: Optional[ActivityService] = None,
    ):
        self.session = session
        self.comment_dao = CommentDAO(session)
        self.attachment_dao = AttachmentDAO(session)
        self.proposals = ProposalService(session)
        self.storage = storage
        self.notifications = notifications or NotificationService(session)
        self.activity = activity or ActivityService(session)

    async def _authorize_thread(self, proposal_id: int, actor: Actor) -> Inquiry:
        _, inquiry = await self.proposals.get_with_inquiry(proposal_id)
        require(actor, Action.COMMENT, inquiry)
        return inquiry

    async def _get_comment(self, comment_id: int) -> Comment:
        comment = await self.comment_dao.get_by_id(comment_id)
        if comment is None:
            raise CommentNotFoundError(comment_id=comment_id)
        return comment

    # =========================================================================
    # Comments
    # =========================================================================

    async def list_comments(
        self, proposal_id: int, actor: Actor, since: Optional[datetime] = None
    ) -> List[Comment]:
        """
        Fetch a proposal's thread.

        Args:
            proposal_id: Proposal whose thread to read
            actor: Calling user
            since: Watermark; comments from COMMENT_POLL_OVERLAP_SECONDS
                before it onwards are returned

        Returns:
            Comments ordered by (created_at, id) ascending

        WHY: created_at is stamped at flush but becomes visible at commit,
        so a comment can appear after a newer one was already served.
        The overlap re-serves recent comments; pollers dedup by id.
        """
        await self._authorize_thread(proposal_id, actor)
        if since is not None:
            since = since - timedelta(seconds=settings.COMMENT_POLL_OVERLAP_SECONDS)
        return await self.comment_dao.list_for_proposal(proposal_id, since=since)

    async def create_comment(self, proposal_id: int, actor: Actor, content: Optional[str]) -> Comment:
        """
        Append a comment to a proposal's thread.

        The author's name is stored as a snapshot. The other side of the
        conversation is notified best-effort.

        Raises:
            AuthorizationError: Caller may not comment on this proposal
            ValidationError: Empty or oversized content
        """
        inquiry = await self._authorize_thread(proposal_id, actor)
        cleaned = validate_content(content)

        comment = await self.comment_dao.create(
            proposal_id=proposal_id,
            user_id=actor.id,
            user_name=actor.name,
            content=cleaned,
            is_edited=False,
        )
        logger.info(
            f"Comment {comment.id} added to proposal {proposal_id}",
            extra={"proposal_id": proposal_id, "actor_id": actor.id},
        )

        await self.activity.record(
            ActivityType.COMMENT_ADDED,
            actor,
            target_id=proposal_id,
            details={"comment_id": comment.id},
        )
        payload = NotificationPayload(
            type=NotificationType.NEW_COMMENT,
            title=f"New comment from {actor.name}",
            message=cleaned[:PREVIEW_LENGTH],
            target_entity_id=proposal_id,
        )
        if actor.is_staff:
            if inquiry.client_user_id is not None:
                await self.notifications.notify(inquiry.client_user_id, payload)
        else:
            await self.notifications.notify_users(
                await self.notifications.staff_user_ids(exclude_user_id=actor.id), payload
            )
        return comment

    async def edit_comment(self, comment_id: int, actor: Actor, content: Optional[str]) -> Comment:
        """
        Edit a comment.

        Raises:
            CommentNotFoundError: Unknown comment
            AuthorizationError: Caller is not the author
            CommentLockedError: A later comment exists in the thread
            ValidationError: Empty or oversized content
        """
        comment = await self._get_comment(comment_id)
        if comment.user_id != actor.id:
            raise AuthorizationError(comment_id=comment_id, user_id=actor.id)
        cleaned = validate_content(content)

        thread = await self.comment_dao.list_for_proposal(comment.proposal_id)
        if has_subsequent_replies(thread, comment.id):
            raise CommentLockedError(comment_id=comment.id)

        if cleaned == comment.content:
            return comment
        updated = await self.comment_dao.update_if_last(comment, content=cleaned, is_edited=True)
        if updated is None:
            raise CommentLockedError(comment_id=comment.id)
        logger.info(f"Comment {comment.id} edited", extra={"comment_id": comment.id})
        return updated

    async def delete_comment(self, comment_id: int, actor: Actor) -> None:
        """
        Comments cannot be deleted; the thread is kept as an audit trail.

        Raises:
            NotImplementedFeatureError: Always
        """
        raise NotImplementedFeatureError(
            message="Deleting comments is not supported", comment_id=comment_id
        )

    # =========================================================================
    # Attachments
    # =========================================================================

    def _require_storage(self) -> StorageService:
        if self.storage is None:
            raise StorageError(message="File storage is not configured")
        return self.storage

    async def authorize_upload(
        self,
        proposal_id: int,
        actor: Actor,
        file_name: Optional[str],
        file_type: Optional[str],
        file_size: Any,
    ) -> Dict[str, str]:
        """
        Issue a presigned upload URL for a new attachment.

        Returns:
            {"upload_url": ..., "key": ...}, key scoped under the proposal

        Raises:
            AuthorizationError: Caller may not comment on this proposal
            ValidationError: Disallowed type, size or name
            StorageError: URL could not be generated
        """
        await self._authorize_thread(proposal_id, actor)
        validate_attachment(file_name, file_type, file_size)
        storage = self._require_storage()

        key = build_storage_key(proposal_id, file_name.strip())
        upload_url = storage.presign_upload(key, file_type)
        logger.info(
            f"Upload authorized for {key}", extra={"proposal_id": proposal_id, "actor_id": actor.id}
        )
        return {"upload_url": upload_url, "key": key}

    async def register_attachment(
        self,
        comment_id: int,
        actor: Actor,
        file_name: Optional[str],
        file_type: Optional[str],
        file_size: Any,
        storage_key: str,
    ) -> Attachment:
        """
        Record an uploaded file against a comment.

        Raises:
            CommentNotFoundError: Unknown comment
            AuthorizationError: Caller may not comment on this proposal
            ValidationError: Bad metadata, key outside the proposal's
                scope, or the object was never uploaded
        """
        comment = await self._get_comment(comment_id)
        await self._authorize_thread(comment.proposal_id, actor)
        validate_attachment(file_name, file_type, file_size)

        if not storage_key or not storage_key.startswith(attachment_scope(comment.proposal_id)):
            raise ValidationError(
                message="Storage key does not belong to this proposal", field="storage_key"
            )
        if not self._require_storage().object_exists(storage_key):
            raise ValidationError(
                message="File has not been uploaded", field="storage_key"
            )

        attachment = await self.attachment_dao.create(
            comment_id=comment.id,
            file_name=file_name.strip(),
            file_type=file_type,
            file_size=file_size,
            storage_key=storage_key,
            uploaded_by=actor.id,
        )
        logger.info(
            f"Attachment {attachment.id} registered on comment {comment.id}",
            extra={"comment_id": comment.id, "storage_key": storage_key},
        )
        return attachment

    async def list_attachments(self, comment_id: int, actor: Actor) -> List[Attachment]:
        comment = await self._get_comment(comment_id)
        await self._authorize_thread(comment.proposal_id, actor)
        return await self.attachment_dao.list_for_comment(comment.id)

    async def get_download_url(self, attachment_id: int, actor: Actor) -> str:
        """
        Presigned download URL for an attachment.

        Raises:
            AttachmentNotFoundError: Unknown attachment
            AuthorizationError: Caller may not read this thread
        """
        attachment = await self.attachment_dao.get_by_id(attachment_id)
        if attachment is None:
            raise AttachmentNotFoundError(attachment_id=attachment_id)
        comment = await self._get_comment(attachment.comment_id)
        await self._authorize_thread(comment.proposal_id, actor)
        return self._require_storage().presign_download(attachment.storage_key, attachment.file_name)
