"""Notification records: the deduplication point for TAT and aging alerts."""
import uuid
import enum
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, DateTime, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from refurbops.database import Base
from refurbops.db_types import UUIDType, JSONType


class NotificationRecordStatus(str, enum.Enum):
    PENDING = "PENDING"  # Claimed by a dispatcher run, delivery in flight
    SENT = "SENT"
    FAILED = "FAILED"  # Some recipients unconfirmed; the next scan retries only those


class NotificationRecord(Base):
    """
    One row per (entity, classification, deadline) alert.

    The unique constraint makes the claim a conditional insert: overlapping
    scanner runs cannot both deliver the same alert. ``delivered_to`` holds the
    addresses that confirmed delivery, so a retry only goes to the rest.
    """
    __tablename__ = "notification_records"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, comment="REPAIR_JOB, PURCHASE_ORDER")
    entity_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)
    classification: Mapped[str] = mapped_column(String(50), nullable=False, comment="APPROACHING, BREACHED")
    due_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=NotificationRecordStatus.PENDING.value, comment="PENDING, SENT, FAILED"
    )
    recipients: Mapped[Optional[list]] = mapped_column(JSONType, default=list)
    delivered_to: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)

    claimed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint(
            "entity_type", "entity_id", "classification", "due_at",
            name="uq_notification_records_alert",
        ),
        Index("ix_notification_records_entity", "entity_type", "entity_id"),
    )

    def __repr__(self) -> str:
        return f"<NotificationRecord({self.entity_type}:{self.entity_id} {self.classification} {self.status})>"
