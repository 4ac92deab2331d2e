"""
Audit logging service.

WHAT: Service layer for creating audit log entries with request context.

WHY: Privileged overrides and money movements need a durable record of
who did what, from where, and why. This service provides:
- A generic log_event() that never raises
- Named helpers for the events the lifecycle produces
- Automatic IP / user agent capture from the request middleware

HOW: Wraps AuditLogDAO and reads RequestContextMiddleware's context var.
"""

import logging
from typing import Optional, Dict, Any

from sqlalchemy.ext.asyncio import AsyncSession

from client_portal.dao.audit_log import AuditLogDAO
from client_portal.models.audit_log import AuditLog, AuditAction
from client_portal.middleware.request_context import get_request_context


# Logger for audit service errors (not audit events themselves)
logger = logging.getLogger(__name__)


class AuditService:
    """
    Service for creating audit log entries.

    Example:
        audit = AuditService(db)
        await audit.log_force_edit(actor.id, proposal.id, "sent", "Typo in price", {...})
    """

    def __init__(self, session: AsyncSession):
        self.dao = AuditLogDAO(session)
        self._session = session

    def _get_context(self) -> tuple[Optional[str], Optional[str]]:
        """
        Get IP address and user agent from request context.

        Returns:
            Tuple of (ip_address, user_agent), both None outside a request
        """
        ctx = get_request_context()
        if ctx:
            return ctx.ip_address, ctx.user_agent
        return None, None

    async def log_event(
        self,
        action: AuditAction,
        resource_type: str,
        actor_user_id: Optional[int] = None,
        resource_id: Optional[int] = None,
        changes: Optional[Dict[str, Any]] = None,
        extra_data: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """
        Log a generic audit event.

        Args:
            action: Type of event
            resource_type: Category of affected resource
            actor_user_id: User who performed the action
            resource_id: Specific resource ID
            changes: Before/after values for mutations
            extra_data: Additional context

        Returns:
            Created AuditLog or None if logging failed

        Note:
            This method never raises. A failed audit write is reported to
            the application log and the business operation continues.
        """
        try:
            ip_address, user_agent = self._get_context()
            return await self.dao.create(
                actor_user_id=actor_user_id,
                action=action,
                resource_type=resource_type,
                resource_id=resource_id,
                changes=changes,
                extra_data=extra_data,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        except Exception as e:
            logger.error(f"Failed to create audit log: {e}", exc_info=True)
            return None

    async def log_force_edit(
        self,
        actor_user_id: int,
        proposal_id: int,
        previous_status: str,
        justification: str,
        changes: Dict[str, Any],
    ) -> Optional[AuditLog]:
        """
        Record a force edit of a locked proposal.

        Args:
            actor_user_id: Super admin who forced the edit
            proposal_id: Edited proposal
            previous_status: Proposal status at the time of the edit
            justification: Reason given by the admin
            changes: {field: {"before": ..., "after": ...}}
        """
        return await self.log_event(
            action=AuditAction.ADMIN_OVERRIDE,
            resource_type="proposal",
            actor_user_id=actor_user_id,
            resource_id=proposal_id,
            changes=changes,
            extra_data={
                "previous_status": previous_status,
                "justification": justification,
            },
        )

    async def log_payment_event(
        self,
        action: AuditAction,
        payment_id: int,
        actor_user_id: Optional[int] = None,
        changes: Optional[Dict[str, Any]] = None,
        extra_data: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """
        Record a payment verification, override or refund.

        Args:
            action: PAYMENT_VERIFIED, PAYMENT_VERIFICATION_FAILED,
                PAYMENT_REFUNDED or ADMIN_OVERRIDE
            payment_id: Affected payment
            actor_user_id: Acting user (None for gateway callbacks)
            changes: Status before/after
            extra_data: Order ids, reasons
        """
        return await self.log_event(
            action=action,
            resource_type="payment",
            actor_user_id=actor_user_id,
            resource_id=payment_id,
            changes=changes,
            extra_data=extra_data,
        )
