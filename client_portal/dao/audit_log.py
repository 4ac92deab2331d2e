"""
Audit Log Data Access Object (DAO).

WHAT: Data access layer for audit log operations.

WHY: Audit entries are append-only. This DAO deliberately does not
extend BaseDAO so there is no update path to misuse.
"""

from typing import Optional, List, Dict, Any
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from client_portal.models.audit_log import AuditLog, AuditAction


class AuditLogDAO:
    """Data Access Object for audit log operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        action: AuditAction,
        resource_type: str,
        actor_user_id: Optional[int] = None,
        resource_id: Optional[int] = None,
        changes: Optional[Dict[str, Any]] = None,
        extra_data: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditLog:
        """
        Create a new audit log entry.

        Args:
            action: Type of event
            resource_type: Category of affected resource ("proposal", "payment")
            actor_user_id: User who performed the action
            resource_id: Specific resource ID
            changes: Before/after values
            extra_data: Additional context
            ip_address: Client IP address
            user_agent: Client browser/application info

        Returns:
            Created AuditLog instance
        """
        log = AuditLog(
            action=action,
            resource_type=resource_type,
            actor_user_id=actor_user_id,
            resource_id=resource_id,
            changes=changes,
            extra_data=extra_data,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.session.add(log)
        await self.session.flush()
        await self.session.refresh(log)
        return log

    async def get_by_resource(
        self,
        resource_type: str,
        resource_id: int,
        action: Optional[AuditAction] = None,
    ) -> List[AuditLog]:
        """
        Get audit history for one resource, oldest first.

        Args:
            resource_type: Resource category
            resource_id: Resource ID
            action: Optional action filter

        Returns:
            Matching audit entries
        """
        query = select(AuditLog).where(
            AuditLog.resource_type == resource_type,
            AuditLog.resource_id == resource_id,
        )
        if action is not None:
            query = query.where(AuditLog.action == action)
        query = query.order_by(AuditLog.created_at, AuditLog.id)

        result = await self.session.execute(query)
        return list(result.scalars().all())
