"""
Inquiry state machine.

WHAT: The explicit transition table for inquiry statuses and the side
payload each transition must carry.

WHY: Every inquiry status change in the portal goes through this table.
A transition that is not listed here is rejected before anything is
written, and a transition that needs a side payload (proposal id,
converted project) cannot be written without it.

HOW: Pure functions. InquiryService applies the planned column values
with a status-guarded UPDATE.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Tuple

from client_portal.core.exceptions import InvalidStateTransitionError, ValidationError
from client_portal.models.inquiry import InquiryStatus, TERMINAL_INQUIRY_STATUSES


class InquiryEvent(str, Enum):
    """Events that move an inquiry between statuses."""

    START_REVIEW = "start_review"
    PROPOSAL_CREATED = "proposal_created"
    CHANGES_REQUESTED = "changes_requested"
    PROPOSAL_ACCEPTED = "proposal_accepted"
    PROPOSAL_RESENT = "proposal_resent"
    START_PROJECT_SETUP = "start_project_setup"
    REQUEST_PAYMENT = "request_payment"
    PAYMENT_RECORDED = "payment_recorded"
    ADVANCE_PAID = "advance_paid"
    REJECT = "reject"
    ARCHIVE = "archive"


S = InquiryStatus
E = InquiryEvent

_NON_TERMINAL = [status for status in InquiryStatus if status not in TERMINAL_INQUIRY_STATUSES]

TRANSITIONS: Dict[Tuple[InquiryStatus, InquiryEvent], InquiryStatus] = {
    (S.NEW, E.START_REVIEW): S.REVIEWING,
    (S.NEW, E.PROPOSAL_CREATED): S.PROPOSAL_SENT,
    (S.REVIEWING, E.PROPOSAL_CREATED): S.PROPOSAL_SENT,
    (S.PROPOSAL_SENT, E.CHANGES_REQUESTED): S.NEGOTIATING,
    (S.PROPOSAL_SENT, E.PROPOSAL_ACCEPTED): S.ACCEPTED,
    (S.NEGOTIATING, E.PROPOSAL_RESENT): S.PROPOSAL_SENT,
    (S.ACCEPTED, E.START_PROJECT_SETUP): S.PROJECT_SETUP,
    (S.PROJECT_SETUP, E.REQUEST_PAYMENT): S.PAYMENT_PENDING,
    (S.PAYMENT_PENDING, E.PAYMENT_RECORDED): S.PAID,
    (S.ACCEPTED, E.ADVANCE_PAID): S.CONVERTED,
    (S.PROJECT_SETUP, E.ADVANCE_PAID): S.CONVERTED,
    (S.PAYMENT_PENDING, E.ADVANCE_PAID): S.CONVERTED,
    (S.PAID, E.ADVANCE_PAID): S.CONVERTED,
}
for _status in _NON_TERMINAL:
    TRANSITIONS[(_status, E.REJECT)] = S.REJECTED
    TRANSITIONS[(_status, E.ARCHIVE)] = S.ARCHIVED

# Side payload each event must write together with the status
REQUIRED_PAYLOAD: Dict[InquiryEvent, FrozenSet[str]] = {
    E.PROPOSAL_CREATED: frozenset({"proposal_id"}),
    E.PROPOSAL_RESENT: frozenset({"proposal_id"}),
    E.ADVANCE_PAID: frozenset({"converted_to_project_id", "converted_at"}),
}

# Events staff may trigger directly from the inquiry pipeline
MANUAL_EVENTS = frozenset(
    {
        E.START_REVIEW,
        E.START_PROJECT_SETUP,
        E.REQUEST_PAYMENT,
        E.PAYMENT_RECORDED,
        E.REJECT,
        E.ARCHIVE,
    }
)


def next_status(current: InquiryStatus, event: InquiryEvent) -> InquiryStatus:
    """
    Look up the status an event leads to.

    Raises:
        InvalidStateTransitionError: If the event is not valid from `current`
    """
    target = TRANSITIONS.get((InquiryStatus(current), event))
    if target is None:
        raise InvalidStateTransitionError(
            message=f"Cannot apply '{event.value}' to an inquiry in status '{InquiryStatus(current).value}'",
            current_status=InquiryStatus(current).value,
            event=event.value,
        )
    return target


def allowed_events(current: InquiryStatus) -> List[InquiryEvent]:
    """Events valid from a status, in declaration order."""
    return [event for event in InquiryEvent if (InquiryStatus(current), event) in TRANSITIONS]


def validate_payload(event: InquiryEvent, payload: Dict[str, Any]) -> None:
    """
    Check that a transition carries exactly its required side payload.

    Raises:
        ValidationError: On missing, empty or unexpected payload fields
    """
    required = REQUIRED_PAYLOAD.get(event, frozenset())
    errors = []
    for field in sorted(required):
        if payload.get(field) is None:
            errors.append({"field": field, "message": f"{field} is required for {event.value}"})
    for field in sorted(set(payload) - required):
        errors.append({"field": field, "message": f"{field} is not allowed for {event.value}"})
    if "converted_at" in payload and payload["converted_at"] is not None:
        if not isinstance(payload["converted_at"], datetime):
            errors.append({"field": "converted_at", "message": "converted_at must be a datetime"})
    if errors:
        raise ValidationError(message="Incomplete transition data", errors=errors)


def plan_transition(
    current: InquiryStatus, event: InquiryEvent, payload: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Compute the full column update for a transition.

    Args:
        current: Inquiry's current status
        event: Event to apply
        payload: Side payload for the event

    Returns:
        Column values (status plus payload) to write in one UPDATE

    Raises:
        InvalidStateTransitionError: Illegal event for the current status
        ValidationError: Incomplete or unexpected side payload
    """
    target = next_status(current, event)
    validate_payload(event, payload)
    return {"status": target, **payload}
