"""
Integration tests for the inquiry API.

WHAT: Public submission, listing, contact edits and pipeline actions
over HTTP.

WHY: Submission is the only unauthenticated write in the portal. These
tests check that:
1. Anonymous and signed-in submissions both work, and only the latter
   are owned
2. Validation errors come back with camelCase field names
3. Clients only ever see their own inquiries (OWASP A01)
"""

import re
from datetime import datetime

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from client_portal.models.inquiry import InquiryStatus
from tests.factories import InquiryFactory, UserFactory, auth_headers


SUBMISSION = {
    "contactName": "  Priya Sharma ",
    "contactEmail": "Priya@Example.com",
    "companyName": "Acme Analytics",
    "contactPhone": "+91 98765 43210",
    "niche": "Technology",
    "videoType": "Explainer Video",
    "projectNotes": "Need a 90s explainer",
}


class TestSubmitInquiry:
    """Tests for POST /api/inquiries."""

    @pytest.mark.asyncio
    async def test_anonymous_submission(self, client: AsyncClient):
        response = await client.post("/api/inquiries", json=SUBMISSION)

        assert response.status_code == 201
        body = response.json()
        assert re.fullmatch(rf"INQ-{datetime.utcnow().year}-\d{{3,}}", body["inquiryNumber"])
        assert body["status"] == "new"
        assert body["contactName"] == "Priya Sharma"
        assert body["contactEmail"] == "priya@example.com"
        assert body["recommendedVideoType"] == "Explainer Video"
        assert body["clientUserId"] is None
        assert body["allowedEvents"] == []

    @pytest.mark.asyncio
    async def test_signed_in_client_owns_submission(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        owner = await UserFactory.create_client(db_session)

        response = await client.post(
            "/api/inquiries", json=SUBMISSION, headers=auth_headers(owner)
        )

        assert response.status_code == 201
        assert response.json()["clientUserId"] == owner.id

    @pytest.mark.asyncio
    async def test_sequential_numbers(self, client: AsyncClient):
        first = await client.post("/api/inquiries", json=SUBMISSION)
        second = await client.post("/api/inquiries", json=SUBMISSION)

        first_seq = int(first.json()["inquiryNumber"].rsplit("-", 1)[1])
        second_seq = int(second.json()["inquiryNumber"].rsplit("-", 1)[1])
        assert second_seq == first_seq + 1

    @pytest.mark.asyncio
    async def test_missing_name_reports_camel_case_field(self, client: AsyncClient):
        payload = {k: v for k, v in SUBMISSION.items() if k != "contactName"}

        response = await client.post("/api/inquiries", json=payload)

        assert response.status_code == 400
        fields = [e["field"] for e in response.json()["details"]["errors"]]
        assert "contactName" in fields

    @pytest.mark.asyncio
    async def test_short_phone_rejected(self, client: AsyncClient):
        response = await client.post(
            "/api/inquiries", json={**SUBMISSION, "contactPhone": "12345"}
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "ValidationError"
        assert body["details"]["errors"][0]["field"] == "contactPhone"


class TestListInquiries:
    """Tests for GET /api/inquiries."""

    @pytest.mark.asyncio
    async def test_requires_authentication(self, client: AsyncClient):
        response = await client.get("/api/inquiries")

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_client_sees_only_own(self, client: AsyncClient, db_session: AsyncSession):
        owner = await UserFactory.create_client(db_session)
        other = await UserFactory.create_client(db_session)
        mine = await InquiryFactory.create(db_session, client=owner)
        await InquiryFactory.create(db_session, client=other)

        response = await client.get("/api/inquiries", headers=auth_headers(owner))

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert [i["id"] for i in body["items"]] == [mine.id]

    @pytest.mark.asyncio
    async def test_staff_filter_by_status(self, client: AsyncClient, db_session: AsyncSession):
        pm = await UserFactory.create_project_manager(db_session)
        await InquiryFactory.create(db_session)
        reviewing = await InquiryFactory.create(db_session, status=InquiryStatus.REVIEWING)

        response = await client.get(
            "/api/inquiries",
            params={"status": "reviewing", "limit": 10},
            headers=auth_headers(pm),
        )

        body = response.json()
        assert body["total"] == 1
        assert body["limit"] == 10
        assert body["items"][0]["id"] == reviewing.id

    @pytest.mark.asyncio
    async def test_foreign_inquiry_forbidden(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        owner = await UserFactory.create_client(db_session)
        intruder = await UserFactory.create_client(db_session)
        inquiry = await InquiryFactory.create(db_session, client=owner)

        response = await client.get(
            f"/api/inquiries/{inquiry.id}", headers=auth_headers(intruder)
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_inquiry(self, client: AsyncClient, db_session: AsyncSession):
        admin = await UserFactory.create_super_admin(db_session)

        response = await client.get("/api/inquiries/99999", headers=auth_headers(admin))

        assert response.status_code == 404


class TestContactAndStatus:
    """Tests for contact edits and manual pipeline actions."""

    @pytest.mark.asyncio
    async def test_owner_updates_contact(self, client: AsyncClient, db_session: AsyncSession):
        owner = await UserFactory.create_client(db_session)
        inquiry = await InquiryFactory.create(db_session, client=owner)

        response = await client.patch(
            f"/api/inquiries/{inquiry.id}/contact",
            json={"contactPhone": "+1 (415) 555-0100"},
            headers=auth_headers(owner),
        )

        assert response.status_code == 200
        assert response.json()["contactPhone"] == "+1 (415) 555-0100"

    @pytest.mark.asyncio
    async def test_contact_locked_after_review_starts(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        owner = await UserFactory.create_client(db_session)
        inquiry = await InquiryFactory.create(
            db_session, client=owner, status=InquiryStatus.REVIEWING
        )

        response = await client.patch(
            f"/api/inquiries/{inquiry.id}/contact",
            json={"companyName": "Other Co"},
            headers=auth_headers(owner),
        )

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_admin_starts_review(self, client: AsyncClient, db_session: AsyncSession):
        admin = await UserFactory.create_super_admin(db_session)
        inquiry = await InquiryFactory.create(db_session)

        response = await client.post(
            f"/api/inquiries/{inquiry.id}/status",
            json={"event": "start_review"},
            headers=auth_headers(admin),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "reviewing"
        assert "start_review" not in body["allowedEvents"]
        assert "archive" in body["allowedEvents"]

    @pytest.mark.asyncio
    async def test_lifecycle_event_cannot_be_triggered(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        admin = await UserFactory.create_super_admin(db_session)
        inquiry = await InquiryFactory.create(db_session, status=InquiryStatus.ACCEPTED)

        response = await client.post(
            f"/api/inquiries/{inquiry.id}/status",
            json={"event": "advance_paid"},
            headers=auth_headers(admin),
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_invalid_transition(self, client: AsyncClient, db_session: AsyncSession):
        admin = await UserFactory.create_super_admin(db_session)
        inquiry = await InquiryFactory.create(db_session, status=InquiryStatus.ARCHIVED)

        response = await client.post(
            f"/api/inquiries/{inquiry.id}/status",
            json={"event": "start_review"},
            headers=auth_headers(admin),
        )

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_team_member_cannot_change_status(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        member = await UserFactory.create_team_member(db_session)
        inquiry = await InquiryFactory.create(db_session)

        response = await client.post(
            f"/api/inquiries/{inquiry.id}/status",
            json={"event": "start_review"},
            headers=auth_headers(member),
        )

        assert response.status_code == 403
