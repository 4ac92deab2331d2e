"""
Unit tests for the permission evaluator.

WHAT: Role grants, client ownership and the proposal button flags.

WHY: Every lifecycle route defers to these predicates. They are pure,
so the whole matrix is tested without a database.
"""

import pytest
from types import SimpleNamespace

from client_portal.core.config import settings
from client_portal.core.exceptions import AuthorizationError
from client_portal.core.permissions import (
    Action,
    Actor,
    allowed_proposal_actions,
    can,
    owns_inquiry,
    require,
)
from client_portal.models.proposal import ProposalStatus
from client_portal.models.user import UserRole


def make_actor(role: UserRole, id: int = 1) -> Actor:
    return Actor(id=id, role=role, email=f"{role.value}@example.com", name=role.value)


SUPER_ADMIN = make_actor(UserRole.SUPER_ADMIN, 1)
PROJECT_MANAGER = make_actor(UserRole.PROJECT_MANAGER, 2)
TEAM_MEMBER = make_actor(UserRole.TEAM_MEMBER, 3)
CLIENT = make_actor(UserRole.CLIENT, 10)
OTHER_CLIENT = make_actor(UserRole.CLIENT, 11)

OWNED_INQUIRY = SimpleNamespace(client_user_id=10)
UNOWNED_INQUIRY = SimpleNamespace(client_user_id=None)


class TestRoleGrants:
    """Staff role matrix."""

    @pytest.mark.parametrize(
        "action",
        [
            Action.CREATE_PROPOSAL,
            Action.FORCE_EDIT_PROPOSAL,
            Action.RESEND_PROPOSAL,
            Action.MANAGE_PAYMENTS,
            Action.MANAGE_INQUIRY_STATUS,
        ],
    )
    def test_super_admin_only_actions(self, action):
        assert can(SUPER_ADMIN, action) is True
        assert can(PROJECT_MANAGER, action) is False
        assert can(TEAM_MEMBER, action) is False
        assert can(CLIENT, action, OWNED_INQUIRY) is False

    def test_project_manager_can_edit_but_not_send(self):
        assert can(PROJECT_MANAGER, Action.EDIT_PROPOSAL) is True
        assert can(PROJECT_MANAGER, Action.CREATE_PROPOSAL) is False

    def test_team_member_is_read_and_comment_only(self):
        assert can(TEAM_MEMBER, Action.VIEW_PROPOSAL) is True
        assert can(TEAM_MEMBER, Action.COMMENT) is True
        assert can(TEAM_MEMBER, Action.EDIT_PROPOSAL) is False

    def test_staff_cannot_respond_for_client(self):
        """
        WHY: Accepting a proposal commits the client to pay; only the
        client can do it.
        """
        for staff in (SUPER_ADMIN, PROJECT_MANAGER, TEAM_MEMBER):
            assert can(staff, Action.RESPOND_TO_PROPOSAL, OWNED_INQUIRY) is False

    def test_anonymous_denied(self):
        assert can(None, Action.VIEW_INQUIRY) is False


class TestOwnership:
    """Client grants are narrowed to inquiries the client owns."""

    def test_owner_allowed(self):
        assert can(CLIENT, Action.RESPOND_TO_PROPOSAL, OWNED_INQUIRY) is True

    def test_other_client_denied(self):
        assert can(OTHER_CLIENT, Action.RESPOND_TO_PROPOSAL, OWNED_INQUIRY) is False

    def test_unowned_inquiry_open_by_default(self):
        assert owns_inquiry(CLIENT, UNOWNED_INQUIRY, strict=False) is True

    def test_unowned_inquiry_closed_when_strict(self, monkeypatch):
        monkeypatch.setattr(settings, "STRICT_INQUIRY_OWNERSHIP", True)

        assert can(CLIENT, Action.VIEW_INQUIRY, UNOWNED_INQUIRY) is False

    def test_staff_not_subject_to_ownership(self):
        assert can(TEAM_MEMBER, Action.VIEW_INQUIRY, OWNED_INQUIRY) is True


class TestRequire:
    def test_raises_generic_forbidden(self):
        with pytest.raises(AuthorizationError) as exc_info:
            require(TEAM_MEMBER, Action.FORCE_EDIT_PROPOSAL)

        assert exc_info.value.status_code == 403
        assert exc_info.value.message == "Forbidden"

    def test_passes_silently(self):
        require(SUPER_ADMIN, Action.FORCE_EDIT_PROPOSAL)


class TestAllowedProposalActions:
    """Button flags shown with a proposal."""

    def test_client_on_sent_proposal(self):
        flags = allowed_proposal_actions(CLIENT, ProposalStatus.SENT, OWNED_INQUIRY)

        assert flags["can_accept"] is True
        assert flags["can_reject"] is True
        assert flags["can_request_changes"] is True
        assert flags["can_edit"] is False
        assert flags["can_comment"] is True

    def test_client_on_accepted_proposal(self):
        flags = allowed_proposal_actions(CLIENT, ProposalStatus.ACCEPTED, OWNED_INQUIRY)

        assert flags["can_accept"] is False
        assert flags["can_reject"] is False

    def test_manager_edit_only_when_changes_requested(self):
        assert allowed_proposal_actions(PROJECT_MANAGER, ProposalStatus.SENT)["can_edit"] is False
        assert (
            allowed_proposal_actions(PROJECT_MANAGER, ProposalStatus.CHANGES_REQUESTED)["can_edit"]
            is True
        )

    def test_super_admin_force_edit_in_any_status(self):
        for status in ProposalStatus:
            assert allowed_proposal_actions(SUPER_ADMIN, status)["can_force_edit"] is True

    def test_resend_only_for_super_admin_after_changes(self):
        assert allowed_proposal_actions(SUPER_ADMIN, ProposalStatus.CHANGES_REQUESTED)["can_resend"] is True
        assert allowed_proposal_actions(SUPER_ADMIN, ProposalStatus.SENT)["can_resend"] is False
        assert (
            allowed_proposal_actions(PROJECT_MANAGER, ProposalStatus.CHANGES_REQUESTED)["can_resend"]
            is False
        )
