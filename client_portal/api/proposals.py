"""
Proposal API endpoints.

WHAT: Proposal creation, edits, resend and the client's responses.

WHY: Proposals are the business agreement with the client:
1. Staff send a priced offer for an inquiry
2. The client accepts, rejects or asks for changes
3. Revisions are edited and resent with a new version number
4. Super admins can force edit a locked proposal, with an audit trail

HOW: Every write that also moves the inquiry goes through the
LifecycleOrchestrator so both entities change in one transaction.
Responses include the caller's allowed actions so the UI shows the
right buttons.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from client_portal.core.deps import get_current_user
from client_portal.core.permissions import Actor, allowed_proposal_actions
from client_portal.db.session import get_db
from client_portal.models.inquiry import Inquiry
from client_portal.models.proposal import Proposal, ProposalStatus
from client_portal.schemas.proposal import (
    ProposalCreate,
    ProposalForceEdit,
    ProposalListResponse,
    ProposalPermissions,
    ProposalResend,
    ProposalRespond,
    ProposalResponse,
    ProposalUpdate,
)
from client_portal.services.lifecycle import LifecycleOrchestrator
from client_portal.services.payment_gateway import RazorpayGateway, get_payment_gateway
from client_portal.services.proposal_service import ProposalService


router = APIRouter(prefix="/proposals", tags=["proposals"])


def _to_response(
    proposal: Proposal, inquiry: Optional[Inquiry], actor: Actor
) -> ProposalResponse:
    """
    Convert a Proposal model to its response schema.

    WHY: The permission flags are resolved per caller so the client and
    staff views of the same proposal differ only in what they may do.
    """
    response = ProposalResponse.model_validate(proposal)
    if inquiry is not None:
        response.inquiry_number = inquiry.inquiry_number
        response.permissions = ProposalPermissions(
            **allowed_proposal_actions(actor, ProposalStatus(proposal.status), inquiry)
        )
    return response


async def _reload(db: AsyncSession, proposal_id: int, actor: Actor) -> ProposalResponse:
    proposal, inquiry = await ProposalService(db).get_with_inquiry(proposal_id)
    return _to_response(proposal, inquiry, actor)


def _orchestrator(
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
) -> LifecycleOrchestrator:
    return LifecycleOrchestrator(db, gateway=gateway)


@router.post(
    "",
    response_model=ProposalResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create and send a proposal",
)
async def create_proposal(
    data: ProposalCreate,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    lifecycle: LifecycleOrchestrator = Depends(_orchestrator),
) -> ProposalResponse:
    """
    Create the proposal for an inquiry.

    WHAT: The proposal starts as `sent` (version 1) and the inquiry moves
    to `proposal_sent`. Advance and balance amounts are computed here.

    Raises:
        AuthorizationError (403): Only super admins create proposals
        ConflictError (409): Inquiry already has a proposal or cannot
            receive one in its status
        ValidationError (400): Invalid content, one error per field
    """
    values = data.model_dump(exclude={"inquiry_id"})
    proposal = await lifecycle.create_proposal(data.inquiry_id, actor, values)
    return await _reload(db, proposal.id, actor)


@router.get("", response_model=ProposalListResponse, summary="List proposals")
async def list_proposals(
    inquiry_id: Optional[int] = Query(default=None, alias="inquiryId"),
    status_filter: Optional[ProposalStatus] = Query(default=None, alias="status"),
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ProposalListResponse:
    """
    List proposals visible to the caller.

    Pass inquiryId to fetch a single inquiry's proposal.
    """
    proposals = await ProposalService(db).list_proposals(
        actor, inquiry_id=inquiry_id, status=status_filter
    )
    return ProposalListResponse(
        items=[_to_response(p, None, actor) for p in proposals],
        total=len(proposals),
    )


@router.get("/{proposal_id}", response_model=ProposalResponse, summary="Get a proposal")
async def get_proposal(
    proposal_id: int,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ProposalResponse:
    proposal, inquiry = await ProposalService(db).get_proposal(proposal_id, actor)
    return _to_response(proposal, inquiry, actor)


@router.put("/{proposal_id}", response_model=ProposalResponse, summary="Edit a proposal")
async def update_proposal(
    proposal_id: int,
    data: ProposalUpdate,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ProposalResponse:
    """
    Edit a proposal the client sent back for changes.

    Raises:
        ConflictError (409): Proposal is locked in its status, or was
            modified since expectedLockVersion
    """
    await ProposalService(db).update(
        proposal_id, actor, data.changes(), data.expected_lock_version
    )
    return await _reload(db, proposal_id, actor)


@router.post(
    "/{proposal_id}/force-edit",
    response_model=ProposalResponse,
    summary="Force edit a locked proposal",
)
async def force_edit_proposal(
    proposal_id: int,
    data: ProposalForceEdit,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ProposalResponse:
    """
    Super admin edit regardless of status; recorded in the audit log.

    Raises:
        AuthorizationError (403): Caller is not a super admin
        ValidationError (400): Missing justification
    """
    await ProposalService(db).force_edit(
        proposal_id, actor, data.changes(), data.justification, data.expected_lock_version
    )
    return await _reload(db, proposal_id, actor)


@router.post(
    "/{proposal_id}/resend",
    response_model=ProposalResponse,
    summary="Resend a revised proposal",
)
async def resend_proposal(
    proposal_id: int,
    data: Optional[ProposalResend] = None,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    lifecycle: LifecycleOrchestrator = Depends(_orchestrator),
) -> ProposalResponse:
    expected = data.expected_lock_version if data else None
    await lifecycle.resend_proposal(proposal_id, actor, expected)
    return await _reload(db, proposal_id, actor)


@router.post(
    "/{proposal_id}/accept",
    response_model=ProposalResponse,
    summary="Accept a proposal",
)
async def accept_proposal(
    proposal_id: int,
    data: Optional[ProposalRespond] = None,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    lifecycle: LifecycleOrchestrator = Depends(_orchestrator),
) -> ProposalResponse:
    """
    Client accepts the proposal.

    WHAT: The inquiry moves to `accepted` and a pending advance payment
    is created; checkout starts from /payments/create-order.

    Raises:
        InvalidStateTransitionError (409): Proposal is not awaiting a response
    """
    expected = data.expected_lock_version if data else None
    await lifecycle.accept_proposal(proposal_id, actor, expected)
    return await _reload(db, proposal_id, actor)


@router.post(
    "/{proposal_id}/reject",
    response_model=ProposalResponse,
    summary="Reject a proposal",
)
async def reject_proposal(
    proposal_id: int,
    data: ProposalRespond,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    lifecycle: LifecycleOrchestrator = Depends(_orchestrator),
) -> ProposalResponse:
    await lifecycle.reject_proposal(
        proposal_id, actor, data.feedback, data.expected_lock_version
    )
    return await _reload(db, proposal_id, actor)


@router.post(
    "/{proposal_id}/request-changes",
    response_model=ProposalResponse,
    summary="Request changes to a proposal",
)
async def request_changes(
    proposal_id: int,
    data: ProposalRespond,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    lifecycle: LifecycleOrchestrator = Depends(_orchestrator),
) -> ProposalResponse:
    await lifecycle.request_changes(
        proposal_id, actor, data.feedback, data.expected_lock_version
    )
    return await _reload(db, proposal_id, actor)
