import uuid
import enum
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column

from refurbops.database import Base
from refurbops.db_types import UUIDType, JSONType


class ActivityAction(str, enum.Enum):
    CREATED_INWARD = "CREATED_INWARD"
    RECEIVED_DEVICE = "RECEIVED_DEVICE"
    QUEUED_INSPECTION = "QUEUED_INSPECTION"
    COMPLETED_INSPECTION = "COMPLETED_INSPECTION"
    ISSUED_SPARES = "ISSUED_SPARES"
    STARTED_REPAIR = "STARTED_REPAIR"
    SENT_TO_PAINT = "SENT_TO_PAINT"
    COMPLETED_PAINT = "COMPLETED_PAINT"
    COMPLETED_REPAIR = "COMPLETED_REPAIR"
    COMPLETED_QC = "COMPLETED_QC"
    SENT_FOR_REWORK = "SENT_FOR_REWORK"
    MOVED_STOCK = "MOVED_STOCK"
    READY_FOR_DISPATCH = "READY_FOR_DISPATCH"
    DISPATCHED = "DISPATCHED"
    SCRAPPED = "SCRAPPED"
    RECEIVED_SPARES = "RECEIVED_SPARES"
    ADJUSTED_SPARES = "ADJUSTED_SPARES"


class ActivityLog(Base):
    """
    Append-only audit trail entry.
    Written in the same transaction as the transition it records; never
    updated or deleted.
    """
    __tablename__ = "activity_logs"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    # Who performed the action
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    # Entity being modified
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    # Entity types: DEVICE, REPAIR_JOB, INWARD_BATCH, SPARE_PART
    entity_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True, index=True)

    # Change tracking
    old_values: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    new_values: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<ActivityLog(action='{self.action}', entity='{self.entity_type}', id='{self.entity_id}')>"
