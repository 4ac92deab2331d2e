"""
Audit Service Tests.

WHAT: Unit tests for the AuditService.

WHY: Force edits, payment verifications and refunds must leave a durable
record of who did what and from where. These tests ensure:
- Context is correctly captured from request middleware
- Named helpers write the expected action and resource
- Errors in logging don't break business operations

HOW: Tests use pytest async fixtures with mock sessions.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.ext.asyncio import AsyncSession

from client_portal.services.audit import AuditService
from client_portal.models.audit_log import AuditLog, AuditAction
from client_portal.middleware.request_context import RequestContext, _request_context


@pytest.fixture
def mock_session():
    """Create a mock database session."""
    return AsyncMock(spec=AsyncSession)


@pytest.fixture
def service(mock_session):
    """AuditService with a mocked DAO."""
    service = AuditService(mock_session)
    service.dao = AsyncMock()
    service.dao.create = AsyncMock(return_value=MagicMock(spec=AuditLog))
    return service


@pytest.fixture
def request_context():
    """Set up a request context for testing."""
    ctx = RequestContext(
        request_id="test-request-id",
        ip_address="192.168.1.100",
        user_agent="TestBrowser/1.0",
        path="/api/proposals/3/force-edit",
        method="POST",
    )
    token = _request_context.set(ctx)
    yield ctx
    _request_context.reset(token)


class TestAuditServiceContextExtraction:
    """Tests for context extraction from request middleware."""

    def test_get_context_with_middleware(self, mock_session, request_context):
        """
        Test context extraction when middleware has set context.

        WHY: Service should automatically get IP/user-agent from context.
        """
        ip, ua = AuditService(mock_session)._get_context()

        assert ip == "192.168.1.100"
        assert ua == "TestBrowser/1.0"

    def test_get_context_without_middleware(self, mock_session):
        """
        Test context extraction outside a request.

        WHY: Webhooks and background jobs have no client to attribute.
        """
        token = _request_context.set(None)
        try:
            ip, ua = AuditService(mock_session)._get_context()
        finally:
            _request_context.reset(token)

        assert ip is None
        assert ua is None


@pytest.mark.asyncio
class TestAuditServiceLogEvent:
    """Tests for the generic log_event method."""

    async def test_log_event_creates_audit_log(self, service, request_context):
        result = await service.log_event(
            action=AuditAction.STATUS_CHANGE,
            resource_type="inquiry",
            actor_user_id=123,
            resource_id=9,
        )

        assert result is not None
        call_kwargs = service.dao.create.call_args.kwargs
        assert call_kwargs["ip_address"] == "192.168.1.100"
        assert call_kwargs["user_agent"] == "TestBrowser/1.0"
        assert call_kwargs["actor_user_id"] == 123
        assert call_kwargs["action"] == AuditAction.STATUS_CHANGE

    async def test_log_event_handles_exception_gracefully(self, service):
        """
        Test that exceptions don't propagate from logging.

        WHY: Audit logging failures should never break business operations.
        """
        service.dao.create = AsyncMock(side_effect=Exception("DB error"))

        result = await service.log_event(action=AuditAction.UPDATE, resource_type="proposal")

        assert result is None


@pytest.mark.asyncio
class TestAuditServiceLifecycleEvents:
    """Tests for the named lifecycle helpers."""

    async def test_log_force_edit(self, service):
        changes = {"total_price": {"before": 150000, "after": 140000}}

        await service.log_force_edit(
            actor_user_id=1,
            proposal_id=3,
            previous_status="sent",
            justification="Agreed discount",
            changes=changes,
        )

        call_kwargs = service.dao.create.call_args.kwargs
        assert call_kwargs["action"] == AuditAction.ADMIN_OVERRIDE
        assert call_kwargs["resource_type"] == "proposal"
        assert call_kwargs["resource_id"] == 3
        assert call_kwargs["changes"] == changes
        assert call_kwargs["extra_data"] == {
            "previous_status": "sent",
            "justification": "Agreed discount",
        }

    async def test_log_payment_event(self, service):
        await service.log_payment_event(
            AuditAction.PAYMENT_VERIFICATION_FAILED,
            payment_id=8,
            extra_data={"order_id": "order_1"},
        )

        call_kwargs = service.dao.create.call_args.kwargs
        assert call_kwargs["action"] == AuditAction.PAYMENT_VERIFICATION_FAILED
        assert call_kwargs["resource_type"] == "payment"
        assert call_kwargs["resource_id"] == 8
        assert call_kwargs["actor_user_id"] is None
