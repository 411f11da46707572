from typing import Optional, Dict, Any, List
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from refurbops.models.activity_log import ActivityLog


class AuditService:
    """
    Activity recorder for workflow transitions.

    Entries are added to the caller's session so they commit (or roll back)
    together with the transition they describe.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[uuid.UUID] = None,
        user_id: Optional[uuid.UUID] = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None,
    ) -> ActivityLog:
        """
        Append an activity log entry.

        Args:
            action: The action performed (STARTED_REPAIR, DISPATCHED, etc.)
            entity_type: Type of entity (DEVICE, REPAIR_JOB, SPARE_PART, ...)
            entity_id: ID of the affected entity
            user_id: ID of the actor
            old_values: Previous values
            new_values: New values
            description: Human-readable description

        Returns:
            The created ActivityLog entry
        """
        entry = ActivityLog(
            action=action.value if hasattr(action, "value") else action,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            old_values=old_values,
            new_values=new_values,
            description=description,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def log_status_change(
        self,
        action: str,
        entity_type: str,
        entity_id: uuid.UUID,
        old_status: str,
        new_status: str,
        user_id: Optional[uuid.UUID] = None,
        description: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> ActivityLog:
        """Log a status transition."""
        new_values: Dict[str, Any] = {"status": new_status}
        if extra:
            new_values.update(extra)
        return await self.log(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            old_values={"status": old_status},
            new_values=new_values,
            description=description or f"{entity_type} {old_status} -> {new_status}",
        )

    async def get_entity_history(
        self,
        entity_type: str,
        entity_id: uuid.UUID,
    ) -> List[ActivityLog]:
        """Get the activity trail for one entity, oldest first."""
        result = await self.db.execute(
            select(ActivityLog)
            .where(
                ActivityLog.entity_type == entity_type,
                ActivityLog.entity_id == entity_id,
            )
            .order_by(ActivityLog.created_at.asc())
        )
        return list(result.scalars().all())
