"""
Unit tests for the exception hierarchy and handlers.

WHAT: Status code mapping, context filtering and the wire envelope.

WHY: Clients branch on the status code and on details.errors; a wrong
code or a leaked signature is a contract break.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from client_portal.core.exceptions import (
    AppException,
    AuthenticationError,
    AuthorizationError,
    CommentLockedError,
    ConflictError,
    ExternalServiceError,
    InquiryNotFoundError,
    InvalidStateTransitionError,
    NetworkError,
    NotImplementedFeatureError,
    PaymentGatewayError,
    PaymentVerificationError,
    RateLimitExceeded,
    ResourceNotFoundError,
    StaleProposalError,
    StorageError,
    TokenExpiredError,
    ValidationError,
)
from client_portal.core.exception_handlers import app_exception_handler, camel_field


class TestAppException:
    """Test base exception behavior."""

    def test_default_message(self):
        exc = AppException()
        assert exc.message == "An unexpected error occurred"
        assert exc.status_code == 500

    def test_custom_status_code(self):
        exc = AppException(message="Teapot", status_code=418)
        assert exc.status_code == 418

    def test_to_dict_basic(self):
        exc = AppException(message="Boom", proposal_id=7)
        assert exc.to_dict() == {
            "error": "AppException",
            "message": "Boom",
            "status_code": 500,
            "details": {"proposal_id": 7},
        }

    def test_to_dict_filters_sensitive_data(self):
        """
        Verify secrets never reach the response body.

        WHY: Payment verification errors carry gateway context; the
        signature itself must not be echoed back.
        """
        exc = AppException(message="Bad", signature="abc", secret="s", token="t", order_id="order_1")
        details = exc.to_dict()["details"]

        assert details == {"order_id": "order_1"}

    def test_to_dict_no_context(self):
        assert AppException().to_dict()["details"] is None


class TestStatusCodes:
    """Every family maps to its documented status."""

    @pytest.mark.parametrize(
        "exc_class, status_code",
        [
            (AuthenticationError, 401),
            (TokenExpiredError, 401),
            (AuthorizationError, 403),
            (ValidationError, 400),
            (ResourceNotFoundError, 404),
            (InquiryNotFoundError, 404),
            (ConflictError, 409),
            (InvalidStateTransitionError, 409),
            (StaleProposalError, 409),
            (CommentLockedError, 409),
            (NotImplementedFeatureError, 501),
            (ExternalServiceError, 502),
            (PaymentGatewayError, 502),
            (StorageError, 502),
            (PaymentVerificationError, 400),
            (NetworkError, 503),
            (RateLimitExceeded, 429),
        ],
    )
    def test_status_code(self, exc_class, status_code):
        assert exc_class().status_code == status_code

    def test_authorization_error_message_is_generic(self):
        """
        WHY: A refused caller must not learn which rule refused them.
        """
        assert AuthorizationError(action="force_edit_proposal").message == "Forbidden"


class TestValidationError:
    def test_field_shortcut(self):
        exc = ValidationError(message="Feedback is required", field="feedback")

        assert exc.errors == [{"field": "feedback", "message": "Feedback is required"}]
        assert exc.to_dict()["details"]["errors"] == exc.errors

    def test_error_list(self):
        errors = [
            {"field": "total_price", "message": "Total price must be a positive integer amount"},
            {"field": "description", "message": "Description is required"},
        ]
        exc = ValidationError(message="Proposal validation failed", errors=errors)

        assert exc.errors == errors


class TestNetworkError:
    def test_marked_retryable(self):
        """
        WHY: Clients offer a retry button only for transient failures.
        """
        assert NetworkError().to_dict()["details"]["retryable"] is True


class TestCamelField:
    def test_simple_field(self):
        assert camel_field("contact_email") == "contactEmail"

    def test_nested_path(self):
        assert (
            camel_field("deliverables.0.estimated_completion_week")
            == "deliverables.0.estimatedCompletionWeek"
        )


class TestExceptionHandlerIntegration:
    """Test exception handler integration with FastAPI."""

    @pytest.fixture
    def client(self):
        app = FastAPI()
        app.add_exception_handler(AppException, app_exception_handler)

        @app.get("/invalid-proposal")
        async def invalid_proposal():
            raise ValidationError(
                message="Proposal validation failed",
                errors=[{"field": "advance_percentage", "message": "Advance percentage must be one of 40, 50 or 60"}],
            )

        @app.get("/stale")
        async def stale():
            raise StaleProposalError(proposal_id=3, current_lock_version=4)

        return TestClient(app)

    def test_validation_error_fields_are_camel_case(self, client):
        response = client.get("/invalid-proposal")

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "ValidationError"
        assert data["details"]["errors"][0]["field"] == "advancePercentage"

    def test_context_keys_are_camel_case(self, client):
        response = client.get("/stale")

        assert response.status_code == 409
        assert response.json()["details"] == {"proposalId": 3, "currentLockVersion": 4}
