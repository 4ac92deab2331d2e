"""
Unit tests for ProposalService.

WHAT: Normal edits, force edits and visibility.

WHY: Edits are where concurrent staff sessions collide and where a sent
proposal could change under the client's eyes. Every test here checks
what was written as well as what was raised.
"""

import pytest

from client_portal.core.exceptions import (
    AuthorizationError,
    ConflictError,
    StaleProposalError,
    ValidationError,
)
from client_portal.dao.audit_log import AuditLogDAO
from client_portal.models.audit_log import AuditAction
from client_portal.models.proposal import ProposalStatus
from client_portal.services.proposal_service import ProposalService, diff_content
from tests.factories import InquiryFactory, ProposalFactory, UserFactory, actor_for


class TestDiffContent:
    def test_only_changed_fields(self):
        assert diff_content(
            {"total_price": 100, "description": "A"},
            {"total_price": 200, "description": "A"},
        ) == {"total_price": {"before": 100, "after": 200}}


class TestNormalEdit:
    """Tests for ProposalService.update."""

    @pytest.mark.asyncio
    async def test_edit_when_changes_requested(self, db_session):
        manager = await UserFactory.create_project_manager(db_session)
        _, proposal = await ProposalFactory.create_sent(
            db_session, status=ProposalStatus.CHANGES_REQUESTED
        )

        updated = await ProposalService(db_session).update(
            proposal.id, actor_for(manager), {"total_price": 120001, "advance_percentage": 40}
        )

        assert updated.total_price == 120001
        assert updated.advance_amount == 48000
        assert updated.balance_amount == 72001
        assert updated.status == ProposalStatus.CHANGES_REQUESTED
        assert updated.lock_version == 2

    @pytest.mark.asyncio
    async def test_edit_appends_history(self, db_session):
        manager = await UserFactory.create_project_manager(db_session)
        _, proposal = await ProposalFactory.create_sent(
            db_session, status=ProposalStatus.CHANGES_REQUESTED
        )

        updated = await ProposalService(db_session).update(
            proposal.id, actor_for(manager), {"description": "Shorter explainer"}
        )

        assert len(updated.edit_history) == 1
        entry = updated.edit_history[0]
        assert entry["actor_id"] == manager.id
        assert entry["fields"] == ["description"]
        assert entry["forced"] is False
        assert entry["previous_status"] == "changes_requested"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status", [ProposalStatus.SENT, ProposalStatus.ACCEPTED, ProposalStatus.REJECTED]
    )
    async def test_locked_statuses_reject_edit(self, db_session, status):
        admin = await UserFactory.create_super_admin(db_session)
        _, proposal = await ProposalFactory.create_sent(db_session, status=status)

        with pytest.raises(ConflictError):
            await ProposalService(db_session).update(
                proposal.id, actor_for(admin), {"total_price": 1}
            )

        await db_session.refresh(proposal)
        assert proposal.total_price == 150000
        assert proposal.lock_version == 1

    @pytest.mark.asyncio
    async def test_team_member_forbidden(self, db_session):
        member = await UserFactory.create_team_member(db_session)
        _, proposal = await ProposalFactory.create_sent(
            db_session, status=ProposalStatus.CHANGES_REQUESTED
        )

        with pytest.raises(AuthorizationError):
            await ProposalService(db_session).update(
                proposal.id, actor_for(member), {"total_price": 1000}
            )

    @pytest.mark.asyncio
    async def test_stale_lock_version(self, db_session):
        """
        Test that an edit based on an old read is refused.

        WHY: Two staff editing at once must not silently overwrite each
        other's changes.
        """
        manager = await UserFactory.create_project_manager(db_session)
        _, proposal = await ProposalFactory.create_sent(
            db_session, status=ProposalStatus.CHANGES_REQUESTED, lock_version=3
        )

        with pytest.raises(StaleProposalError):
            await ProposalService(db_session).update(
                proposal.id, actor_for(manager), {"total_price": 99000}, expected_lock_version=2
            )

    @pytest.mark.asyncio
    async def test_invalid_content_lists_fields(self, db_session):
        manager = await UserFactory.create_project_manager(db_session)
        _, proposal = await ProposalFactory.create_sent(
            db_session, status=ProposalStatus.CHANGES_REQUESTED
        )

        with pytest.raises(ValidationError) as exc_info:
            await ProposalService(db_session).update(
                proposal.id,
                actor_for(manager),
                {"advance_percentage": 70, "deliverables": []},
            )

        fields = {e["field"] for e in exc_info.value.errors}
        assert fields == {"advance_percentage", "deliverables"}

    @pytest.mark.asyncio
    async def test_no_op_edit_keeps_version(self, db_session):
        manager = await UserFactory.create_project_manager(db_session)
        _, proposal = await ProposalFactory.create_sent(
            db_session, status=ProposalStatus.CHANGES_REQUESTED
        )

        updated = await ProposalService(db_session).update(
            proposal.id, actor_for(manager), {"total_price": 150000}
        )

        assert updated.lock_version == 1
        assert updated.edit_history == []


class TestForceEdit:
    """Tests for ProposalService.force_edit."""

    @pytest.mark.asyncio
    async def test_force_edit_sent_proposal(self, db_session):
        admin = await UserFactory.create_super_admin(db_session)
        _, proposal = await ProposalFactory.create_sent(db_session)

        updated = await ProposalService(db_session).force_edit(
            proposal.id,
            actor_for(admin),
            {"total_price": 140000},
            justification="Agreed discount on call",
        )

        assert updated.status == ProposalStatus.SENT
        assert updated.total_price == 140000
        assert updated.advance_amount == 70000
        entry = updated.edit_history[-1]
        assert entry["forced"] is True
        assert entry["reason"] == "Agreed discount on call"

    @pytest.mark.asyncio
    async def test_force_edit_is_audited(self, db_session):
        admin = await UserFactory.create_super_admin(db_session)
        _, proposal = await ProposalFactory.create_sent(
            db_session, status=ProposalStatus.ACCEPTED
        )

        await ProposalService(db_session).force_edit(
            proposal.id,
            actor_for(admin),
            {"revisions_included": 3},
            justification="Extra revision promised",
        )

        logs = await AuditLogDAO(db_session).get_by_resource("proposal", proposal.id)
        assert len(logs) == 1
        assert logs[0].action == AuditAction.ADMIN_OVERRIDE
        assert logs[0].actor_user_id == admin.id
        assert logs[0].extra_data == {
            "previous_status": "accepted",
            "justification": "Extra revision promised",
        }
        assert logs[0].changes == {"revisions_included": {"before": 2, "after": 3}}

    @pytest.mark.asyncio
    async def test_justification_required(self, db_session):
        admin = await UserFactory.create_super_admin(db_session)
        _, proposal = await ProposalFactory.create_sent(db_session)

        with pytest.raises(ValidationError) as exc_info:
            await ProposalService(db_session).force_edit(
                proposal.id, actor_for(admin), {"total_price": 1000}, justification="  "
            )

        assert exc_info.value.errors[0]["field"] == "justification"

    @pytest.mark.asyncio
    async def test_project_manager_cannot_force(self, db_session):
        manager = await UserFactory.create_project_manager(db_session)
        _, proposal = await ProposalFactory.create_sent(db_session)

        with pytest.raises(AuthorizationError):
            await ProposalService(db_session).force_edit(
                proposal.id, actor_for(manager), {"total_price": 1000}, justification="Because"
            )


class TestListProposals:
    @pytest.mark.asyncio
    async def test_client_sees_own_only(self, db_session):
        client = await UserFactory.create_client(db_session)
        _, mine = await ProposalFactory.create_sent(db_session, client=client)
        await ProposalFactory.create_sent(db_session)

        proposals = await ProposalService(db_session).list_proposals(actor_for(client))

        assert [p.id for p in proposals] == [mine.id]

    @pytest.mark.asyncio
    async def test_staff_status_filter(self, db_session):
        member = await UserFactory.create_team_member(db_session)
        await ProposalFactory.create_sent(db_session)
        _, accepted = await ProposalFactory.create_sent(db_session, status=ProposalStatus.ACCEPTED)

        proposals = await ProposalService(db_session).list_proposals(
            actor_for(member), status=ProposalStatus.ACCEPTED
        )

        assert [p.id for p in proposals] == [accepted.id]

    @pytest.mark.asyncio
    async def test_by_inquiry_without_proposal(self, db_session):
        member = await UserFactory.create_team_member(db_session)
        inquiry = await InquiryFactory.create(db_session)

        assert await ProposalService(db_session).list_proposals(
            actor_for(member), inquiry_id=inquiry.id
        ) == []
