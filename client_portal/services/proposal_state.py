"""
Proposal state machine and edit lock.

WHAT: Transition table, edit-lock policy and content validation for
proposals.

WHY: A proposal is a priced offer the client is looking at. Once it is
sent the client's view must not change underneath them, so:
1. Only a proposal sent back for changes is open for normal edits
2. Any other edit is a force edit (super admin, justified, audited)
3. Resending bumps the version in the same write as the status change

HOW: Pure functions and tables. ProposalService applies the results.
"""

import uuid
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from client_portal.core.exceptions import (
    ConflictError,
    InvalidStateTransitionError,
    ValidationError,
)
from client_portal.models.proposal import Currency, ProposalStatus
from client_portal.services.pricing import compute_pricing


class ProposalEvent(str, Enum):
    """Events that move a proposal between statuses."""

    ACCEPT = "accept"
    REJECT = "reject"
    REQUEST_CHANGES = "request_changes"
    RESEND = "resend"


P = ProposalStatus

TRANSITIONS: Dict[Tuple[ProposalStatus, ProposalEvent], ProposalStatus] = {
    (P.SENT, ProposalEvent.ACCEPT): P.ACCEPTED,
    (P.SENT, ProposalEvent.REJECT): P.REJECTED,
    (P.SENT, ProposalEvent.REQUEST_CHANGES): P.CHANGES_REQUESTED,
    (P.CHANGES_REQUESTED, ProposalEvent.RESEND): P.SENT,
}

FEEDBACK_REQUIRED = frozenset({ProposalEvent.REJECT, ProposalEvent.REQUEST_CHANGES})

# status -> (normal edit allowed, force edit allowed)
EDIT_LOCK: Dict[ProposalStatus, Tuple[bool, bool]] = {
    P.SENT: (False, True),
    P.ACCEPTED: (False, True),
    P.REJECTED: (False, True),
    P.CHANGES_REQUESTED: (True, True),
}

_LOCK_REASONS = {
    P.SENT: "awaiting the client's response",
    P.ACCEPTED: "the client has accepted it",
    P.REJECTED: "the client has rejected it",
}

EDITABLE_FIELDS = (
    "description",
    "deliverables",
    "currency",
    "total_price",
    "advance_percentage",
    "revisions_included",
)


def next_status(current: ProposalStatus, event: ProposalEvent) -> ProposalStatus:
    """
    Look up the status an event leads to.

    Raises:
        InvalidStateTransitionError: If the event is not valid from `current`
    """
    target = TRANSITIONS.get((ProposalStatus(current), event))
    if target is None:
        raise InvalidStateTransitionError(
            message=f"Cannot {event.value.replace('_', ' ')} a proposal in status '{ProposalStatus(current).value}'",
            current_status=ProposalStatus(current).value,
            event=event.value,
        )
    return target


def require_feedback(event: ProposalEvent, feedback: Optional[str]) -> Optional[str]:
    """
    Normalize client feedback, enforcing it where the event needs it.

    Returns:
        Trimmed feedback or None

    Raises:
        ValidationError: If the event requires feedback and none was given
    """
    cleaned = feedback.strip() if feedback else None
    if event in FEEDBACK_REQUIRED and not cleaned:
        raise ValidationError(message="Feedback is required", field="feedback")
    return cleaned or None


def check_normal_edit(status: ProposalStatus) -> None:
    """
    Enforce the edit lock for a normal edit.

    Raises:
        ConflictError: If the proposal's status locks normal edits
    """
    normal_allowed, _ = EDIT_LOCK[ProposalStatus(status)]
    if not normal_allowed:
        raise ConflictError(
            message=f"Proposal is locked because {_LOCK_REASONS[ProposalStatus(status)]}",
            current_status=ProposalStatus(status).value,
        )


def normalize_deliverables(deliverables: Any) -> Tuple[List[Dict[str, Any]], List[Dict[str, str]]]:
    """
    Validate and normalize a deliverable list.

    Returns:
        (normalized deliverables, field errors). Missing ids are generated;
        given ids are preserved so projects can reference them later.
    """
    errors: List[Dict[str, str]] = []
    if not isinstance(deliverables, list) or not deliverables:
        return [], [{"field": "deliverables", "message": "At least one deliverable is required"}]

    normalized = []
    for index, item in enumerate(deliverables):
        prefix = f"deliverables.{index}"
        if not isinstance(item, dict):
            errors.append({"field": prefix, "message": "Deliverable must be an object"})
            continue
        name = (item.get("name") or "").strip()
        description = (item.get("description") or "").strip()
        week = item.get("estimated_completion_week")
        if not name:
            errors.append({"field": f"{prefix}.name", "message": "Deliverable name is required"})
        if not description:
            errors.append(
                {"field": f"{prefix}.description", "message": "Deliverable description is required"}
            )
        if not isinstance(week, int) or isinstance(week, bool) or week < 1:
            errors.append(
                {
                    "field": f"{prefix}.estimated_completion_week",
                    "message": "Estimated completion week must be at least 1",
                }
            )
        normalized.append(
            {
                "id": str(item.get("id") or uuid.uuid4().hex[:12]),
                "name": name,
                "description": description,
                "estimated_completion_week": week,
            }
        )
    return normalized, errors


def validate_content(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a full set of proposal fields and derive pricing.

    WHAT: Collects every field error before raising so the form can
    show them all at once.

    Args:
        data: description, deliverables, currency, total_price,
            advance_percentage, revisions_included

    Returns:
        Column values ready to persist, including advance_amount and
        balance_amount recomputed from total_price and advance_percentage

    Raises:
        ValidationError: With one {field, message} item per problem
    """
    errors: List[Dict[str, str]] = []

    description = (data.get("description") or "").strip()
    if not description:
        errors.append({"field": "description", "message": "Description is required"})

    deliverables, deliverable_errors = normalize_deliverables(data.get("deliverables"))
    errors.extend(deliverable_errors)

    currency = data.get("currency", Currency.INR)
    try:
        currency = Currency(currency)
    except ValueError:
        errors.append({"field": "currency", "message": "Currency must be INR or USD"})

    revisions = data.get("revisions_included", 2)
    if not isinstance(revisions, int) or isinstance(revisions, bool) or revisions < 0:
        errors.append(
            {"field": "revisions_included", "message": "Revisions included must be 0 or more"}
        )

    pricing = None
    try:
        pricing = compute_pricing(data.get("total_price"), data.get("advance_percentage"))
    except ValidationError as e:
        errors.extend(e.errors)

    if errors:
        raise ValidationError(message="Proposal validation failed", errors=errors)

    return {
        "description": description,
        "deliverables": deliverables,
        "currency": currency,
        "revisions_included": revisions,
        **pricing.as_columns(),
    }
