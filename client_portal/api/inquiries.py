"""
Inquiry API endpoints.

WHAT: Public submission of inquiries and their management by staff.

WHY: The inquiry is where every engagement starts:
1. Prospects submit the quiz and contact form without an account
2. Clients follow their own inquiries through the pipeline
3. Staff move inquiries through review and negotiation

HOW: Thin FastAPI handlers. Validation, authorization and transitions
live in InquiryService; the request session commits on success.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from client_portal.core.deps import get_current_user, get_optional_user
from client_portal.core.permissions import Actor
from client_portal.db.session import get_db
from client_portal.models.inquiry import Inquiry, InquiryStatus
from client_portal.schemas.inquiry import (
    InquiryContactUpdate,
    InquiryCreate,
    InquiryListResponse,
    InquiryResponse,
    InquiryStatusAction,
)
from client_portal.services.inquiry_service import InquiryService


router = APIRouter(prefix="/inquiries", tags=["inquiries"])


def _to_response(
    inquiry: Inquiry, service: InquiryService, actor: Optional[Actor]
) -> InquiryResponse:
    response = InquiryResponse.model_validate(inquiry)
    if actor is not None:
        response.allowed_events = service.visible_events(inquiry, actor)
    return response


@router.post(
    "",
    response_model=InquiryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit an inquiry",
    description="Public endpoint. A signed-in client becomes the inquiry's owner.",
)
async def create_inquiry(
    data: InquiryCreate,
    actor: Optional[Actor] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
) -> InquiryResponse:
    """
    Submit a new inquiry.

    WHY: Submission is public so the marketing quiz can post directly.
    The endpoint is rate limited per client IP by RateLimitMiddleware.

    Raises:
        ValidationError (400): Missing or malformed contact details
        ConflictError (409): Inquiry number collision, safe to retry
    """
    service = InquiryService(db)
    inquiry = await service.create_inquiry(data.model_dump(), actor=actor)
    return _to_response(inquiry, service, actor)


@router.get(
    "",
    response_model=InquiryListResponse,
    summary="List inquiries",
)
async def list_inquiries(
    status_filter: Optional[InquiryStatus] = Query(default=None, alias="status"),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> InquiryListResponse:
    """
    List inquiries, newest first.

    Staff see all inquiries; clients see only their own.
    """
    service = InquiryService(db)
    inquiries = await service.list_inquiries(actor, status=status_filter, skip=skip, limit=limit)
    total = await service.count_inquiries(actor, status=status_filter)
    return InquiryListResponse(
        items=[_to_response(i, service, actor) for i in inquiries],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get("/{inquiry_id}", response_model=InquiryResponse, summary="Get an inquiry")
async def get_inquiry(
    inquiry_id: int,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> InquiryResponse:
    service = InquiryService(db)
    inquiry = await service.get_inquiry(inquiry_id, actor)
    return _to_response(inquiry, service, actor)


@router.patch(
    "/{inquiry_id}/contact",
    response_model=InquiryResponse,
    summary="Update contact details",
)
async def update_contact(
    inquiry_id: int,
    data: InquiryContactUpdate,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> InquiryResponse:
    """
    Edit the contact snapshot of a new inquiry.

    Raises:
        AuthorizationError (403): Not the owner or a super admin
        ConflictError (409): Inquiry is past the `new` status
    """
    service = InquiryService(db)
    inquiry = await service.update_contact(
        inquiry_id, actor, data.model_dump(exclude_unset=True)
    )
    return _to_response(inquiry, service, actor)


@router.post(
    "/{inquiry_id}/status",
    response_model=InquiryResponse,
    summary="Apply a pipeline action",
)
async def apply_status_event(
    inquiry_id: int,
    data: InquiryStatusAction,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> InquiryResponse:
    """
    Move an inquiry through the pipeline (start review, archive, ...).

    Raises:
        ValidationError (400): Event is driven by proposals or payments
        InvalidStateTransitionError (409): Event not allowed from the
            current status
    """
    service = InquiryService(db)
    inquiry = await service.apply_admin_event(inquiry_id, actor, data.event)
    return _to_response(inquiry, service, actor)
