"""
Notification Service for lifecycle events.

WHAT: Delivers in-app notifications to portal users and mirrors
staff-facing ones to Slack.

WHY: Clients need to hear about new proposals and replies; staff need
to hear about client responses and payments. Delivery is fire-and-forget:
a failed notification never fails the action that caused it.

HOW: notify() writes a Notification row; notify_staff() fans out to
every active super admin and project manager and posts one Slack message.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from client_portal.core.config import settings
from client_portal.dao.activity import NotificationDAO
from client_portal.dao.user import UserDAO
from client_portal.models.notification import Notification
from client_portal.models.user import UserRole
from client_portal.services.slack_service import SlackService, StaffAlert

logger = logging.getLogger(__name__)


class NotificationType:
    """Notification type identifiers shown by the portal UI."""

    INQUIRY_SUBMITTED = "inquiry_submitted"
    PROPOSAL_SENT = "proposal_sent"
    PROPOSAL_ACCEPTED = "proposal_accepted"
    PROPOSAL_REJECTED = "proposal_rejected"
    PROPOSAL_CHANGES_REQUESTED = "proposal_changes_requested"
    PAYMENT_RECEIVED = "payment_received"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_REMINDER = "payment_reminder"
    NEW_COMMENT = "new_comment"


@dataclass(frozen=True)
class NotificationPayload:
    """Content of one notification."""

    type: str
    title: str
    message: str
    target_entity_id: Optional[int] = None


NOTIFIED_STAFF_ROLES = [UserRole.SUPER_ADMIN, UserRole.PROJECT_MANAGER]


class NotificationService:
    """
    Fire-and-forget notification sink.

    Attributes:
        slack_service: Channel for staff notifications
        base_url: Portal URL used for action links
    """

    def __init__(
        self,
        session: AsyncSession,
        slack_service: Optional[SlackService] = None,
        base_url: Optional[str] = None,
    ):
        self.dao = NotificationDAO(session)
        self.user_dao = UserDAO(session)
        self.slack_service = slack_service or SlackService()
        self.base_url = base_url or settings.FRONTEND_URL

    def proposal_url(self, proposal_id: int) -> str:
        return f"{self.base_url}/proposals/{proposal_id}"

    async def notify(self, user_id: int, payload: NotificationPayload) -> Optional[Notification]:
        """
        Notify one user.

        Returns:
            Created notification, or None if delivery failed
        """
        try:
            return await self.dao.create(
                user_id=user_id,
                type=payload.type,
                title=payload.title,
                message=payload.message,
                target_entity_id=payload.target_entity_id,
            )
        except Exception as e:
            logger.error(
                f"Failed to notify user {user_id} ({payload.type}): {e}",
                exc_info=True,
            )
            return None

    async def notify_users(
        self, user_ids: Iterable[int], payload: NotificationPayload
    ) -> List[Notification]:
        """Notify several users, skipping duplicates and failures."""
        delivered = []
        for user_id in dict.fromkeys(uid for uid in user_ids if uid is not None):
            notification = await self.notify(user_id, payload)
            if notification is not None:
                delivered.append(notification)
        return delivered

    async def staff_user_ids(self, exclude_user_id: Optional[int] = None) -> List[int]:
        """IDs of staff who receive lifecycle notifications."""
        try:
            staff = await self.user_dao.get_active_by_roles(NOTIFIED_STAFF_ROLES)
        except Exception as e:
            logger.error(f"Failed to load staff for notifications: {e}", exc_info=True)
            return []
        return [user.id for user in staff if user.id != exclude_user_id]

    async def notify_staff(
        self,
        payload: NotificationPayload,
        exclude_user_id: Optional[int] = None,
        link_url: Optional[str] = None,
    ) -> List[Notification]:
        """
        Notify every super admin and project manager, and post to Slack.

        Args:
            payload: Notification content
            exclude_user_id: Staff member who triggered the event
            link_url: Optional link for the Slack button

        Returns:
            Delivered in-app notifications
        """
        delivered = await self.notify_users(
            await self.staff_user_ids(exclude_user_id), payload
        )
        await self.slack_service.send_safe(
            StaffAlert(title=payload.title, message=payload.message, link_url=link_url)
        )
        return delivered

    async def list_for_user(self, user_id: int, unread_only: bool = False) -> List[Notification]:
        return await self.dao.list_for_user(user_id, unread_only=unread_only)
