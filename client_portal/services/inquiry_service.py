"""
Inquiry Service.

WHAT: Business logic for inquiry submission, listing, contact edits and
status transitions.

WHY: The service layer:
1. Validates public submissions before anything is stored
2. Allocates the yearly inquiry number
3. Scopes reads to what the caller may see
4. Applies state machine transitions as a single guarded write

HOW: Coordinates InquiryDAO with the inquiry state machine and the
permission evaluator. Side channels (activity, notifications) are
best-effort.
"""

import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from client_portal.core.exceptions import (
    ConflictError,
    InquiryNotFoundError,
    InvalidStateTransitionError,
    ValidationError,
)
from client_portal.core.permissions import Action, Actor, can, require
from client_portal.dao.inquiry import InquiryDAO
from client_portal.models.activity import ActivityType
from client_portal.models.inquiry import Inquiry, InquiryStatus
from client_portal.models.user import UserRole
from client_portal.services import inquiry_state
from client_portal.services.activity_service import ActivityService
from client_portal.services.inquiry_state import InquiryEvent
from client_portal.services.notification_service import (
    NotificationPayload,
    NotificationService,
    NotificationType,
)

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^[\d\s\-\+\(\)]+$")
MIN_PHONE_DIGITS = 10

CONTACT_FIELDS = (
    "contact_name",
    "contact_email",
    "company_name",
    "contact_phone",
    "project_notes",
)
QUIZ_FIELDS = ("niche", "audience", "style", "mood", "duration", "recommended_video_type")


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def validate_contact(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """
    Validate and normalize contact snapshot fields.

    Args:
        data: Contact fields (snake_case)
        partial: Only validate the fields present (contact edits)

    Returns:
        Normalized fields: trimmed strings, lower-cased email

    Raises:
        ValidationError: With one {field, message} item per problem
    """
    errors = []
    cleaned: Dict[str, Any] = {}

    if not partial or "contact_name" in data:
        name = _clean(data.get("contact_name"))
        if not name:
            errors.append({"field": "contact_name", "message": "Name is required"})
        cleaned["contact_name"] = name

    if not partial or "contact_email" in data:
        email = _clean(data.get("contact_email"))
        if not email:
            errors.append({"field": "contact_email", "message": "Email is required"})
        elif not EMAIL_PATTERN.match(email):
            errors.append({"field": "contact_email", "message": "Invalid email format"})
        cleaned["contact_email"] = email.lower() if email else email

    if "contact_phone" in data:
        phone = _clean(data.get("contact_phone"))
        if phone:
            digits = re.sub(r"\D", "", phone)
            if not PHONE_PATTERN.match(phone) or len(digits) < MIN_PHONE_DIGITS:
                errors.append(
                    {
                        "field": "contact_phone",
                        "message": f"Phone number must contain at least {MIN_PHONE_DIGITS} digits",
                    }
                )
        cleaned["contact_phone"] = phone

    for field in ("company_name", "project_notes"):
        if field in data:
            cleaned[field] = _clean(data.get(field))

    if errors:
        raise ValidationError(message="Invalid contact details", errors=errors)
    return cleaned


class InquiryService:
    """
    Service for inquiry operations.

    Attributes:
        dao: InquiryDAO bound to the request session
        activity: Best-effort activity recorder
        notifications: Best-effort notification sink
    """

    def __init__(
        self,
        session: AsyncSession,
        activity: Optional[ActivityService] = None,
        notifications: Optional[NotificationService] = None,
    ):
        self.session = session
        self.dao = InquiryDAO(session)
        self.activity = activity or ActivityService(session)
        self.notifications = notifications or NotificationService(session)

    # =========================================================================
    # Reads
    # =========================================================================

    async def get(self, inquiry_id: int) -> Inquiry:
        """
        Load an inquiry without permission checks.

        Raises:
            InquiryNotFoundError: If no inquiry has this id
        """
        inquiry = await self.dao.get_by_id(inquiry_id)
        if inquiry is None:
            raise InquiryNotFoundError(inquiry_id=inquiry_id)
        return inquiry

    async def get_inquiry(self, inquiry_id: int, actor: Actor) -> Inquiry:
        """
        Load an inquiry the actor may view.

        Raises:
            InquiryNotFoundError: Unknown id
            AuthorizationError: Client viewing someone else's inquiry
        """
        inquiry = await self.get(inquiry_id)
        require(actor, Action.VIEW_INQUIRY, inquiry)
        return inquiry

    async def list_inquiries(
        self,
        actor: Actor,
        status: Optional[InquiryStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Inquiry]:
        """
        List inquiries visible to the actor.

        Staff see every inquiry; clients see the ones they own.
        """
        require(actor, Action.VIEW_INQUIRY)
        client_user_id = None if actor.is_staff else actor.id
        return await self.dao.list_inquiries(
            status=status, client_user_id=client_user_id, skip=skip, limit=limit
        )

    async def count_inquiries(
        self, actor: Actor, status: Optional[InquiryStatus] = None
    ) -> int:
        """Total behind list_inquiries, for pagination."""
        require(actor, Action.VIEW_INQUIRY)
        filters = {} if status is None else {"status": status}
        if not actor.is_staff:
            filters["client_user_id"] = actor.id
        return await self.dao.count(**filters)

    # =========================================================================
    # Submission and contact edits
    # =========================================================================

    async def create_inquiry(self, data: Dict[str, Any], actor: Optional[Actor] = None) -> Inquiry:
        """
        Store a public inquiry submission.

        WHAT: Validates contact details, assigns the next INQ-YYYY-NNN
        number and stores the inquiry in status `new`.

        Args:
            data: Contact fields and quiz answers (snake_case)
            actor: Authenticated submitter, if any. A client submitter
                becomes the inquiry's owner.

        Returns:
            Created inquiry

        Raises:
            ValidationError: Missing name, malformed email or phone
            ConflictError: Inquiry number allocated concurrently
        """
        contact = validate_contact(data)
        quiz = {field: _clean(data.get(field)) for field in QUIZ_FIELDS}

        inquiry_number = await self.dao.next_inquiry_number(datetime.utcnow().year)
        client_user_id = actor.id if actor and actor.role == UserRole.CLIENT else None

        try:
            inquiry = await self.dao.create(
                inquiry_number=inquiry_number,
                status=InquiryStatus.NEW,
                client_user_id=client_user_id,
                **contact,
                **quiz,
            )
        except IntegrityError as e:
            logger.warning(f"Inquiry number collision on {inquiry_number}: {e}")
            raise ConflictError(
                message="Could not allocate an inquiry number, please retry",
                inquiry_number=inquiry_number,
            ) from e

        logger.info(
            f"Inquiry {inquiry.inquiry_number} submitted",
            extra={"inquiry_id": inquiry.id, "client_user_id": client_user_id},
        )

        await self.activity.record(
            ActivityType.INQUIRY_SUBMITTED,
            actor,
            target_id=inquiry.id,
            details={
                "inquiry_number": inquiry.inquiry_number,
                "video_type": inquiry.recommended_video_type,
            },
            actor_name=None if actor else inquiry.contact_name,
        )
        await self.notifications.notify_staff(
            NotificationPayload(
                type=NotificationType.INQUIRY_SUBMITTED,
                title=f"New inquiry {inquiry.inquiry_number}",
                message=f"{inquiry.contact_name} submitted an inquiry"
                + (f" for {inquiry.recommended_video_type}" if inquiry.recommended_video_type else ""),
                target_entity_id=inquiry.id,
            )
        )
        return inquiry

    async def update_contact(
        self, inquiry_id: int, actor: Actor, changes: Dict[str, Any]
    ) -> Inquiry:
        """
        Edit the contact snapshot.

        Only the owning client or a super admin may edit, and only while
        the inquiry is still `new`.

        Raises:
            AuthorizationError: Caller may not edit this inquiry
            ConflictError: Inquiry has left the `new` status
            ValidationError: Invalid contact values
        """
        inquiry = await self.get(inquiry_id)
        require(actor, Action.EDIT_INQUIRY_CONTACT, inquiry)

        if inquiry.status != InquiryStatus.NEW:
            raise ConflictError(
                message="Contact details can only be edited while the inquiry is new",
                current_status=InquiryStatus(inquiry.status).value,
            )

        values = validate_contact(
            {k: v for k, v in changes.items() if k in CONTACT_FIELDS}, partial=True
        )
        if not values:
            return inquiry

        updated = await self.dao.update_where(
            inquiry.id, {"status": InquiryStatus.NEW}, **values
        )
        if updated is None:
            raise ConflictError(
                message="Inquiry changed while editing contact details",
                inquiry_id=inquiry.id,
            )
        return updated

    # =========================================================================
    # Transitions
    # =========================================================================

    async def transition(
        self,
        inquiry: Inquiry,
        event: InquiryEvent,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Inquiry:
        """
        Apply a state machine event to an inquiry.

        WHAT: Status and side payload are written in one UPDATE guarded
        by the status the event was planned against.

        Args:
            inquiry: Inquiry as last read
            event: Event to apply
            payload: Side payload the event requires

        Returns:
            Updated inquiry

        Raises:
            InvalidStateTransitionError: Illegal event, or the status
                changed concurrently
            ValidationError: Missing or unexpected side payload
            ConflictError: Resend naming a different proposal
        """
        payload = payload or {}
        current = InquiryStatus(inquiry.status)
        values = inquiry_state.plan_transition(current, event, payload)

        if event == InquiryEvent.PROPOSAL_RESENT and payload["proposal_id"] != inquiry.proposal_id:
            raise ConflictError(
                message="Resent proposal does not belong to this inquiry",
                inquiry_id=inquiry.id,
                proposal_id=payload["proposal_id"],
            )

        updated = await self.dao.update_where(inquiry.id, {"status": current}, **values)
        if updated is None:
            raise InvalidStateTransitionError(
                message="Inquiry status changed concurrently",
                inquiry_id=inquiry.id,
                event=event.value,
            )

        logger.info(
            f"Inquiry {inquiry.inquiry_number}: {current.value} -> {values['status'].value}",
            extra={"inquiry_id": inquiry.id, "event": event.value},
        )
        return updated

    async def apply_admin_event(
        self, inquiry_id: int, actor: Actor, event: InquiryEvent
    ) -> Inquiry:
        """
        Apply a pipeline action triggered by staff.

        Events tied to proposals and payments are driven by the lifecycle
        orchestrator and cannot be triggered here.

        Raises:
            AuthorizationError: Caller may not manage inquiry status
            ValidationError: Event is not a manual pipeline action
            InvalidStateTransitionError: Event invalid from current status
        """
        inquiry = await self.get(inquiry_id)
        require(actor, Action.MANAGE_INQUIRY_STATUS, inquiry)

        if event not in inquiry_state.MANUAL_EVENTS:
            raise ValidationError(
                message=f"'{event.value}' cannot be triggered manually",
                field="event",
            )

        previous = InquiryStatus(inquiry.status)
        updated = await self.transition(inquiry, event)
        await self.activity.record(
            ActivityType.INQUIRY_STATUS_CHANGED,
            actor,
            target_id=inquiry.id,
            details={
                "from": previous.value,
                "to": InquiryStatus(updated.status).value,
                "event": event.value,
            },
        )
        return updated

    def visible_events(self, inquiry: Inquiry, actor: Actor) -> List[str]:
        """Manual pipeline events the actor could trigger right now."""
        if not can(actor, Action.MANAGE_INQUIRY_STATUS, inquiry):
            return []
        return [
            event.value
            for event in inquiry_state.allowed_events(inquiry.status)
            if event in inquiry_state.MANUAL_EVENTS
        ]
