"""
Custom exception hierarchy for structured error handling.

WHY: Custom exceptions provide:
1. Consistent error handling across the API
2. HTTP status code mapping for FastAPI
3. Structured error responses with contextual data
4. No sensitive data leaks in error messages

The lifecycle engine raises five families of errors: validation (400),
permission (401/403), not found (404), conflict (409) and collaborator
failures (502/503). Everything else is an unexpected 500.
"""

from typing import Any, Dict, List, Optional


class AppException(Exception):
    """
    Base exception class for all application exceptions.

    WHY: Centralizing exception handling in a base class ensures consistent
    error responses, HTTP status code mapping, and prevents sensitive data
    leaks in error messages.
    """

    status_code: int = 500
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        """
        Initialize exception with message and context.

        Args:
            message: Human-readable error message
            status_code: HTTP status code (overrides class default)
            **context: Additional context for debugging (filtered in to_dict)
        """
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize exception to dictionary for JSON response.

        Returns:
            Dictionary with error details (sensitive fields filtered out)
        """
        sensitive_fields = {"password", "token", "secret", "key", "api_key", "signature"}
        filtered_context = {
            k: v for k, v in self.context.items() if k.lower() not in sensitive_fields
        }

        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "status_code": self.status_code,
            "details": filtered_context if filtered_context else None,
        }


# ============================================================================
# Authentication & Authorization
# ============================================================================


class AuthenticationError(AppException):
    """
    Raised when the caller is not authenticated.

    HTTP Status: 401 Unauthorized
    """

    status_code = 401
    default_message = "Authentication failed"


class TokenExpiredError(AuthenticationError):
    """Raised when a JWT has expired."""

    default_message = "Token has expired"


class TokenInvalidError(AuthenticationError):
    """Raised when a JWT is malformed or its signature does not verify."""

    default_message = "Token is invalid"


class AuthorizationError(AppException):
    """
    Raised when an authenticated user may not perform an action.

    WHY: The message stays generic. Callers learn that they were refused,
    never which rule refused them.

    HTTP Status: 403 Forbidden
    """

    status_code = 403
    default_message = "Forbidden"


# ============================================================================
# Validation
# ============================================================================


class ValidationError(AppException):
    """
    Raised when input validation fails.

    WHAT: Carries a list of {field, message} items so the client can
    highlight every offending field at once.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    default_message = "Validation failed"

    def __init__(
        self,
        message: Optional[str] = None,
        errors: Optional[List[Dict[str, str]]] = None,
        field: Optional[str] = None,
        **context: Any,
    ):
        """
        Args:
            message: Summary message
            errors: Field-level errors as {"field", "message"} dicts
            field: Shortcut for a single-field error; `message` is reused
            **context: Additional context
        """
        if errors is None and field is not None:
            errors = [{"field": field, "message": message or self.default_message}]
        self.errors = errors or []
        super().__init__(message, errors=self.errors, **context)


# ============================================================================
# Resource Exceptions
# ============================================================================


class ResourceNotFoundError(AppException):
    """
    Raised when a requested resource doesn't exist.

    HTTP Status: 404 Not Found
    """

    status_code = 404
    default_message = "Resource not found"


class InquiryNotFoundError(ResourceNotFoundError):
    default_message = "Inquiry not found"


class ProposalNotFoundError(ResourceNotFoundError):
    default_message = "Proposal not found"


class PaymentNotFoundError(ResourceNotFoundError):
    default_message = "Payment not found"


class CommentNotFoundError(ResourceNotFoundError):
    default_message = "Comment not found"


class AttachmentNotFoundError(ResourceNotFoundError):
    default_message = "Attachment not found"


# ============================================================================
# Conflicts
# ============================================================================


class ConflictError(AppException):
    """
    Raised when an operation conflicts with the current state of an entity.

    WHY: Covers illegal state-machine events, edit-locked proposals,
    stale writes and locked comments. The entity is never mutated when
    this is raised.

    HTTP Status: 409 Conflict
    """

    status_code = 409
    default_message = "Operation conflicts with current state"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when an event is not valid from the entity's current status.

    HTTP Status: 409 Conflict
    """

    default_message = "Invalid state transition"


class StaleProposalError(ConflictError):
    """Raised when a proposal was modified since the caller last read it."""

    default_message = "Proposal was modified by someone else; reload and try again"


class CommentLockedError(ConflictError):
    """Raised when editing a comment that already has a later reply."""

    default_message = "Comment cannot be edited after a reply has been posted"


# ============================================================================
# Unsupported operations
# ============================================================================


class NotImplementedFeatureError(AppException):
    """
    Raised for operations that exist in the API but are deliberately unsupported.

    HTTP Status: 501 Not Implemented
    """

    status_code = 501
    default_message = "This operation is not implemented"


# ============================================================================
# External Service Exceptions
# ============================================================================


class ExternalServiceError(AppException):
    """
    Base exception for external service failures.

    HTTP Status: 502 Bad Gateway
    """

    status_code = 502
    default_message = "External service error"


class PaymentGatewayError(ExternalServiceError):
    """Raised when the payment gateway rejects or fails a request."""

    default_message = "Payment processing error"


class PaymentVerificationError(ExternalServiceError):
    """
    Raised when a payment callback fails signature verification.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    default_message = "Payment verification failed"


class StorageError(ExternalServiceError):
    """Raised when object storage rejects or fails a request."""

    default_message = "File storage error"


class SlackNotificationError(ExternalServiceError):
    """Raised when a Slack webhook call fails."""

    default_message = "Failed to send Slack notification"


class NetworkError(AppException):
    """
    Raised when a collaborator is unreachable or times out.

    WHY: Unlike a gateway error the request may succeed if repeated,
    so the response carries retryable=True.

    HTTP Status: 503 Service Unavailable
    """

    status_code = 503
    default_message = "Upstream service is unreachable, please retry"

    def __init__(self, message: Optional[str] = None, **context: Any):
        super().__init__(message, retryable=True, **context)


# ============================================================================
# Rate Limiting
# ============================================================================


class RateLimitExceeded(AppException):
    """
    Raised when a client exceeds the request rate limit.

    HTTP Status: 429 Too Many Requests
    """

    status_code = 429
    default_message = "Too many requests. Please try again later."
