"""Spare parts master and the append-only stock movement ledger."""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import String, Integer, Boolean, DateTime, ForeignKey, Text, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from refurbops.database import Base
from refurbops.db_types import UUIDType


class SparePart(Base):
    __tablename__ = "spare_parts"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    part_code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(String(255))

    min_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    bin_location: Mapped[Optional[str]] = mapped_column(String(50))  # RACK-SHELF-POSITION

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )

    def __repr__(self):
        return f"<SparePart {self.part_code}>"


class StockMovementType(str, Enum):
    """Stock movement type enum."""
    RECEIPT = "RECEIPT"  # Goods received
    ISSUE = "ISSUE"  # Issued against a repair job
    ADJUSTMENT_PLUS = "ADJUSTMENT_PLUS"
    ADJUSTMENT_MINUS = "ADJUSTMENT_MINUS"


class StockMovement(Base):
    """Stock movement ledger. Rows are never updated or deleted."""

    __tablename__ = "stock_movements"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    part_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType, ForeignKey("spare_parts.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    movement_type: Mapped[str] = mapped_column(
        String(50), nullable=False, index=True,
        comment="RECEIPT, ISSUE, ADJUSTMENT_PLUS, ADJUSTMENT_MINUS",
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)  # Positive for in, negative for out
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)

    # Related documents
    reference_type: Mapped[Optional[str]] = mapped_column(String(50))  # REPAIR_JOB, RECEIPT, ...
    reference_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, index=True)

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType, ForeignKey("users.id", ondelete="SET NULL")
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )

    part: Mapped["SparePart"] = relationship()

    __table_args__ = (
        CheckConstraint("balance_after >= 0", name="ck_stock_movements_balance_non_negative"),
    )

    def __repr__(self):
        return f"<StockMovement {self.movement_type} {self.quantity:+d}>"
