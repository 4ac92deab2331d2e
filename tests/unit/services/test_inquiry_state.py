"""
Unit tests for the inquiry state machine.

WHY: The transition table is the single gate for inquiry status
changes. Anything missing from it must be rejected before a write.
"""

import pytest
from datetime import datetime

from client_portal.core.exceptions import InvalidStateTransitionError, ValidationError
from client_portal.models.inquiry import InquiryStatus, TERMINAL_INQUIRY_STATUSES
from client_portal.services.inquiry_state import (
    MANUAL_EVENTS,
    InquiryEvent,
    allowed_events,
    next_status,
    plan_transition,
    validate_payload,
)


S = InquiryStatus
E = InquiryEvent


class TestNextStatus:
    """Tests for the transition table."""

    @pytest.mark.parametrize(
        "current, event, target",
        [
            (S.NEW, E.START_REVIEW, S.REVIEWING),
            (S.NEW, E.PROPOSAL_CREATED, S.PROPOSAL_SENT),
            (S.REVIEWING, E.PROPOSAL_CREATED, S.PROPOSAL_SENT),
            (S.PROPOSAL_SENT, E.CHANGES_REQUESTED, S.NEGOTIATING),
            (S.NEGOTIATING, E.PROPOSAL_RESENT, S.PROPOSAL_SENT),
            (S.PROPOSAL_SENT, E.PROPOSAL_ACCEPTED, S.ACCEPTED),
            (S.ACCEPTED, E.START_PROJECT_SETUP, S.PROJECT_SETUP),
            (S.PROJECT_SETUP, E.REQUEST_PAYMENT, S.PAYMENT_PENDING),
            (S.PAYMENT_PENDING, E.PAYMENT_RECORDED, S.PAID),
            (S.ACCEPTED, E.ADVANCE_PAID, S.CONVERTED),
            (S.PAID, E.ADVANCE_PAID, S.CONVERTED),
        ],
    )
    def test_legal_transition(self, current, event, target):
        assert next_status(current, event) == target

    @pytest.mark.parametrize(
        "current, event",
        [
            (S.NEW, E.PROPOSAL_ACCEPTED),
            (S.REVIEWING, E.ADVANCE_PAID),
            (S.NEGOTIATING, E.PROPOSAL_ACCEPTED),
            (S.PROPOSAL_SENT, E.PROPOSAL_CREATED),
        ],
    )
    def test_illegal_transition(self, current, event):
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            next_status(current, event)

        assert exc_info.value.status_code == 409
        assert exc_info.value.context["current_status"] == current.value

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_INQUIRY_STATUSES, key=lambda s: s.value))
    def test_terminal_statuses_have_no_exits(self, terminal):
        assert allowed_events(terminal) == []

    @pytest.mark.parametrize(
        "status", [s for s in InquiryStatus if s not in TERMINAL_INQUIRY_STATUSES]
    )
    def test_reject_and_archive_from_any_open_status(self, status):
        assert next_status(status, E.REJECT) == S.REJECTED
        assert next_status(status, E.ARCHIVE) == S.ARCHIVED

    def test_accepts_plain_string_status(self):
        """Statuses read back from the database may be plain strings."""
        assert next_status("new", E.START_REVIEW) == S.REVIEWING


class TestPayload:
    """Side payload that must travel with a transition."""

    def test_proposal_created_requires_proposal_id(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_payload(E.PROPOSAL_CREATED, {})

        assert exc_info.value.errors[0]["field"] == "proposal_id"

    def test_conversion_requires_both_fields(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_payload(E.ADVANCE_PAID, {"converted_to_project_id": 4})

        assert [e["field"] for e in exc_info.value.errors] == ["converted_at"]

    def test_unexpected_field_rejected(self):
        with pytest.raises(ValidationError):
            validate_payload(E.START_REVIEW, {"proposal_id": 1})

    def test_converted_at_must_be_datetime(self):
        with pytest.raises(ValidationError):
            validate_payload(
                E.ADVANCE_PAID, {"converted_to_project_id": 4, "converted_at": "yesterday"}
            )

    def test_plan_transition_merges_payload(self):
        now = datetime.utcnow()
        values = plan_transition(
            S.ACCEPTED, E.ADVANCE_PAID, {"converted_to_project_id": 9, "converted_at": now}
        )

        assert values == {
            "status": S.CONVERTED,
            "converted_to_project_id": 9,
            "converted_at": now,
        }

    def test_plan_checks_status_before_payload(self):
        """An illegal event is reported as a conflict, not a payload error."""
        with pytest.raises(InvalidStateTransitionError):
            plan_transition(S.CONVERTED, E.ADVANCE_PAID, {})


class TestManualEvents:
    def test_lifecycle_events_are_not_manual(self):
        """
        WHY: Proposal and payment events must come from the orchestrator,
        which writes the linked entities in the same transaction.
        """
        for event in (E.PROPOSAL_CREATED, E.PROPOSAL_ACCEPTED, E.ADVANCE_PAID, E.PROPOSAL_RESENT):
            assert event not in MANUAL_EVENTS

    def test_allowed_events_from_new(self):
        assert allowed_events(S.NEW) == [E.START_REVIEW, E.PROPOSAL_CREATED, E.REJECT, E.ARCHIVE]
