"""
Proposal Service.

WHAT: Single-entity proposal operations: reads, normal edits and
audited force edits.

WHY: Edits are where concurrent staff sessions collide. Every write here:
1. Re-validates the whole proposal and recomputes pricing
2. Is guarded by the status and lock_version it was based on
3. Appends an edit_history entry in the same write

HOW: Cross-entity operations (create, resend, client responses) live in
the lifecycle orchestrator; this service only touches the proposal row.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from client_portal.core.exceptions import (
    ProposalNotFoundError,
    StaleProposalError,
    ValidationError,
)
from client_portal.core.permissions import Action, Actor, require
from client_portal.dao.inquiry import InquiryDAO
from client_portal.dao.proposal import ProposalDAO
from client_portal.models.activity import ActivityType
from client_portal.models.inquiry import Inquiry
from client_portal.models.proposal import Proposal, ProposalStatus
from client_portal.services import proposal_state
from client_portal.services.activity_service import ActivityService
from client_portal.services.audit import AuditService

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


def current_content(proposal: Proposal) -> Dict[str, Any]:
    """Editable fields of a proposal as plain values."""
    return {field: _jsonable(getattr(proposal, field)) for field in proposal_state.EDITABLE_FIELDS}


def diff_content(before: Dict[str, Any], after: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Field level diff of two content dicts.

    Returns:
        {field: {"before": old, "after": new}} for changed fields only
    """
    changes = {}
    for field, new_value in after.items():
        old_value = before.get(field)
        if _jsonable(old_value) != _jsonable(new_value):
            changes[field] = {"before": _jsonable(old_value), "after": _jsonable(new_value)}
    return changes


def history_entry(
    actor: Actor,
    previous_status: ProposalStatus,
    fields: List[str],
    forced: bool = False,
    reason: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "at": datetime.utcnow().isoformat(),
        "actor_id": actor.id,
        "actor_name": actor.name,
        "previous_status": ProposalStatus(previous_status).value,
        "forced": forced,
        "reason": reason,
        "fields": fields,
    }


class ProposalService:
    """
    Service for proposal reads and edits.

    Attributes:
        dao: ProposalDAO bound to the request session
        audit: Audit trail for force edits
        activity: Best-effort activity recorder
    """

    def __init__(
        self,
        session: AsyncSession,
        audit: Optional[AuditService] = None,
        activity: Optional[ActivityService] = None,
    ):
        self.session = session
        self.dao = ProposalDAO(session)
        self.inquiry_dao = InquiryDAO(session)
        self.audit = audit or AuditService(session)
        self.activity = activity or ActivityService(session)

    # =========================================================================
    # Reads
    # =========================================================================

    async def get(self, proposal_id: int) -> Proposal:
        proposal = await self.dao.get_by_id(proposal_id)
        if proposal is None:
            raise ProposalNotFoundError(proposal_id=proposal_id)
        return proposal

    async def get_with_inquiry(self, proposal_id: int) -> Tuple[Proposal, Inquiry]:
        """
        Load a proposal and the inquiry it belongs to.

        Raises:
            ProposalNotFoundError: Unknown proposal, or its inquiry is gone
        """
        proposal = await self.get(proposal_id)
        inquiry = await self.inquiry_dao.get_by_id(proposal.inquiry_id)
        if inquiry is None:
            raise ProposalNotFoundError(
                message="Proposal's inquiry not found", proposal_id=proposal_id
            )
        return proposal, inquiry

    async def get_proposal(self, proposal_id: int, actor: Actor) -> Tuple[Proposal, Inquiry]:
        """
        Load a proposal the actor may view.

        Raises:
            ProposalNotFoundError: Unknown id
            AuthorizationError: Client viewing someone else's proposal
        """
        proposal, inquiry = await self.get_with_inquiry(proposal_id)
        require(actor, Action.VIEW_PROPOSAL, inquiry)
        return proposal, inquiry

    async def list_proposals(
        self,
        actor: Actor,
        inquiry_id: Optional[int] = None,
        status: Optional[ProposalStatus] = None,
    ) -> List[Proposal]:
        """
        List proposals visible to the actor.

        Args:
            actor: Calling user
            inquiry_id: Restrict to one inquiry's proposal
            status: Optional status filter
        """
        if inquiry_id is not None:
            inquiry = await self.inquiry_dao.get_by_id(inquiry_id)
            if inquiry is None:
                return []
            require(actor, Action.VIEW_PROPOSAL, inquiry)
            proposal = await self.dao.get_by_inquiry(inquiry_id)
            proposals = [proposal] if proposal else []
        elif actor.is_staff:
            require(actor, Action.VIEW_PROPOSAL)
            if status is not None:
                return await self.dao.get_by_status(status)
            proposals = await self.dao.get_all()
        else:
            require(actor, Action.VIEW_PROPOSAL)
            inquiries = await self.inquiry_dao.list_inquiries(client_user_id=actor.id)
            proposals = await self.dao.list_for_inquiries([i.id for i in inquiries])

        if status is not None:
            proposals = [p for p in proposals if p.status == status]
        return proposals

    # =========================================================================
    # Edits
    # =========================================================================

    def _merge(self, proposal: Proposal, changes: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """
        Overlay changes on the current content and re-validate everything.

        Client supplied advance/balance amounts are not editable fields and
        are dropped here; pricing is always recomputed.

        Returns:
            (validated column values, field diff)
        """
        before = current_content(proposal)
        merged = dict(before)
        merged.update({k: v for k, v in changes.items() if k in proposal_state.EDITABLE_FIELDS})
        values = proposal_state.validate_content(merged)
        return values, diff_content(before, {field: values[field] for field in before})

    async def _write_edit(
        self,
        proposal: Proposal,
        values: Dict[str, Any],
        entry: Dict[str, Any],
        expected_lock_version: Optional[int],
    ) -> Proposal:
        """
        Persist an edit guarded by status and lock version.

        Raises:
            StaleProposalError: Proposal changed since the caller read it
        """
        lock_version = (
            expected_lock_version if expected_lock_version is not None else proposal.lock_version
        )
        if lock_version != proposal.lock_version:
            raise StaleProposalError(
                proposal_id=proposal.id,
                expected_lock_version=lock_version,
                current_lock_version=proposal.lock_version,
            )

        updated = await self.dao.update_where(
            proposal.id,
            {"status": proposal.status, "lock_version": lock_version},
            **values,
            edit_history=list(proposal.edit_history or []) + [entry],
            lock_version=lock_version + 1,
        )
        if updated is None:
            raise StaleProposalError(proposal_id=proposal.id, expected_lock_version=lock_version)
        return updated

    async def update(
        self,
        proposal_id: int,
        actor: Actor,
        changes: Dict[str, Any],
        expected_lock_version: Optional[int] = None,
    ) -> Proposal:
        """
        Normal edit of a proposal.

        WHAT: Allowed for super admins and project managers while the
        proposal is `changes_requested`.

        Args:
            proposal_id: Proposal to edit
            actor: Editing staff member
            changes: Editable fields to change (snake_case)
            expected_lock_version: lock_version the edit was based on

        Returns:
            Updated proposal

        Raises:
            AuthorizationError: Role may not edit proposals
            ConflictError: Proposal is locked in its current status
            StaleProposalError: Concurrent modification
            ValidationError: Invalid resulting content
        """
        proposal, inquiry = await self.get_with_inquiry(proposal_id)
        require(actor, Action.EDIT_PROPOSAL, inquiry)
        proposal_state.check_normal_edit(proposal.status)

        values, changed = self._merge(proposal, changes)
        if not changed:
            return proposal

        entry = history_entry(actor, proposal.status, sorted(changed))
        updated = await self._write_edit(proposal, values, entry, expected_lock_version)

        logger.info(
            f"Proposal {proposal.id} edited by user {actor.id}",
            extra={"proposal_id": proposal.id, "fields": sorted(changed)},
        )
        await self.activity.record(
            ActivityType.PROPOSAL_UPDATED,
            actor,
            target_id=proposal.id,
            details={"fields": sorted(changed)},
        )
        return updated

    async def force_edit(
        self,
        proposal_id: int,
        actor: Actor,
        changes: Dict[str, Any],
        justification: Optional[str],
        expected_lock_version: Optional[int] = None,
    ) -> Proposal:
        """
        Force edit a proposal regardless of its edit lock.

        WHAT: Super admin only. The status is left unchanged. The edit is
        written to the audit log (actor, previous status, justification,
        field diff) and to the proposal's edit history with forced=True.

        Raises:
            AuthorizationError: Caller is not a super admin
            ValidationError: Missing justification or invalid content
            StaleProposalError: Concurrent modification
        """
        proposal, inquiry = await self.get_with_inquiry(proposal_id)
        require(actor, Action.FORCE_EDIT_PROPOSAL, inquiry)

        reason = (justification or "").strip()
        if not reason:
            raise ValidationError(
                message="A justification is required to force edit a proposal",
                field="justification",
            )

        values, changed = self._merge(proposal, changes)
        if not changed:
            return proposal

        previous_status = ProposalStatus(proposal.status)
        entry = history_entry(actor, previous_status, sorted(changed), forced=True, reason=reason)
        updated = await self._write_edit(proposal, values, entry, expected_lock_version)

        logger.warning(
            f"Proposal {proposal.id} force edited by user {actor.id} in status {previous_status.value}",
            extra={"proposal_id": proposal.id, "actor_id": actor.id},
        )
        await self.audit.log_force_edit(
            actor_user_id=actor.id,
            proposal_id=proposal.id,
            previous_status=previous_status.value,
            justification=reason,
            changes=changed,
        )
        await self.activity.record(
            ActivityType.PROPOSAL_FORCE_EDITED,
            actor,
            target_id=proposal.id,
            details={
                "fields": sorted(changed),
                "previous_status": previous_status.value,
                "justification": reason,
            },
        )
        return updated
