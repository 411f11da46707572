import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, Integer, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from refurbops.database import Base
from refurbops.db_types import UUIDType


class PurchaseOrder(Base):
    """Supplier purchase order for incoming devices; aged when left unaddressed."""
    __tablename__ = "purchase_orders"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    po_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    supplier_code: Mapped[Optional[str]] = mapped_column(String(50))
    expected_devices: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_addressed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)

    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType, ForeignKey("users.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<PurchaseOrder {self.po_number}>"
