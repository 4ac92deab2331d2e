"""
Activity log service.

WHAT: Records human-readable lifecycle events for the staff timeline.

WHY: The timeline is a convenience, not a source of truth. Recording
must never fail or slow down the action being recorded.

HOW: record() swallows and logs every error. Actor names are stored as
snapshots.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from client_portal.core.permissions import Actor
from client_portal.dao.activity import ActivityLogDAO
from client_portal.models.activity import ActivityLog, ActivityType

logger = logging.getLogger(__name__)

SYSTEM_ACTOR_NAME = "System"


class ActivityService:
    """Best-effort activity recorder."""

    def __init__(self, session: AsyncSession):
        self.dao = ActivityLogDAO(session)

    async def record(
        self,
        type: ActivityType,
        actor: Optional[Actor],
        target_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        actor_name: Optional[str] = None,
    ) -> Optional[ActivityLog]:
        """
        Record an activity.

        Args:
            type: What happened
            actor: Who did it (None for system and anonymous events)
            target_id: Entity the event is about
            details: Event-specific context
            actor_name: Name override, used for anonymous submitters

        Returns:
            Created entry, or None if recording failed
        """
        try:
            return await self.dao.create(
                type=type.value,
                actor_id=actor.id if actor else None,
                actor_name=actor_name or (actor.name if actor else SYSTEM_ACTOR_NAME),
                target_id=target_id,
                details=details or {},
            )
        except Exception as e:
            logger.error(
                f"Failed to record activity {type.value}: {e}",
                exc_info=True,
                extra={"target_id": target_id},
            )
            return None

    async def list_for_target(self, target_id: int, limit: int = 50) -> List[ActivityLog]:
        return await self.dao.list_for_target(target_id, limit=limit)

    async def list_recent(self, limit: int = 50) -> List[ActivityLog]:
        return await self.dao.list_recent(limit=limit)
