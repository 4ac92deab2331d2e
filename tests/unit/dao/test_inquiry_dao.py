"""
Unit tests for InquiryDAO.

WHAT: Yearly inquiry numbering and owner-scoped listing.
"""

import pytest

from client_portal.dao.inquiry import (
    InquiryDAO,
    format_inquiry_number,
    parse_inquiry_sequence,
)
from client_portal.models.inquiry import InquiryStatus
from tests.factories import InquiryFactory, UserFactory


class TestInquiryNumberFormat:
    def test_format_pads_to_three_digits(self):
        assert format_inquiry_number(2026, 7) == "INQ-2026-007"

    def test_format_beyond_999(self):
        assert format_inquiry_number(2026, 1234) == "INQ-2026-1234"

    @pytest.mark.parametrize(
        "number, expected",
        [("INQ-2026-007", 7), ("INQ-2026-1234", 1234), ("garbage", 0), ("INQ-2026-x", 0)],
    )
    def test_parse(self, number, expected):
        assert parse_inquiry_sequence(number) == expected


class TestNextInquiryNumber:
    @pytest.mark.asyncio
    async def test_first_of_year(self, db_session):
        assert await InquiryDAO(db_session).next_inquiry_number(1999) == "INQ-1999-001"

    @pytest.mark.asyncio
    async def test_follows_highest_not_count(self, db_session):
        await InquiryFactory.create(db_session, inquiry_number="INQ-1998-002")
        await InquiryFactory.create(db_session, inquiry_number="INQ-1998-009")

        assert await InquiryDAO(db_session).next_inquiry_number(1998) == "INQ-1998-010"

    @pytest.mark.asyncio
    async def test_restarts_each_year(self, db_session):
        await InquiryFactory.create(db_session, inquiry_number="INQ-1997-041")

        assert await InquiryDAO(db_session).next_inquiry_number(1996) == "INQ-1996-001"


class TestListInquiries:
    @pytest.mark.asyncio
    async def test_newest_first(self, db_session):
        first = await InquiryFactory.create(db_session)
        second = await InquiryFactory.create(db_session)

        found = await InquiryDAO(db_session).list_inquiries()

        assert [i.id for i in found] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_client_and_status_filters(self, db_session):
        client = await UserFactory.create_client(db_session)
        mine = await InquiryFactory.create(db_session, client=client)
        await InquiryFactory.create(db_session, client=client, status=InquiryStatus.REJECTED)
        await InquiryFactory.create(db_session)

        found = await InquiryDAO(db_session).list_inquiries(
            status=InquiryStatus.NEW, client_user_id=client.id
        )

        assert [i.id for i in found] == [mine.id]
