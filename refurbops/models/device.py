"""
Device and inward batch models.

A device is one physical unit identified by an immutable barcode. Devices are
owned by the inward batch that received them.
"""
import uuid
import enum
from datetime import datetime, timezone
from typing import Optional, List, TYPE_CHECKING

from sqlalchemy import String, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from refurbops.database import Base
from refurbops.db_types import UUIDType

if TYPE_CHECKING:
    from refurbops.models.repair_job import RepairJob
    from refurbops.models.quality_control import QCRecord


class DeviceCategory(str, enum.Enum):
    LAPTOP = "LAPTOP"
    DESKTOP = "DESKTOP"
    WORKSTATION = "WORKSTATION"
    SERVER = "SERVER"
    MONITOR = "MONITOR"
    STORAGE = "STORAGE"
    NETWORKING_CARD = "NETWORKING_CARD"


# Barcode prefix per category
CATEGORY_PREFIXES = {
    DeviceCategory.LAPTOP: "L",
    DeviceCategory.DESKTOP: "D",
    DeviceCategory.WORKSTATION: "W",
    DeviceCategory.SERVER: "S",
    DeviceCategory.MONITOR: "M",
    DeviceCategory.STORAGE: "ST",
    DeviceCategory.NETWORKING_CARD: "N",
}


class Ownership(str, enum.Enum):
    REFURB_STOCK = "REFURB_STOCK"
    RENTAL_RETURN = "RENTAL_RETURN"


class InwardType(str, enum.Enum):
    REFURB_PURCHASE = "REFURB_PURCHASE"
    RENTAL_RETURN = "RENTAL_RETURN"


class DeviceStatus(str, enum.Enum):
    """Device workflow stages. Transitions live in services.state_machine."""
    RECEIVED = "RECEIVED"
    PENDING_INSPECTION = "PENDING_INSPECTION"
    WAITING_FOR_SPARES = "WAITING_FOR_SPARES"
    READY_FOR_REPAIR = "READY_FOR_REPAIR"
    UNDER_REPAIR = "UNDER_REPAIR"
    IN_PAINT = "IN_PAINT"
    AWAITING_QC = "AWAITING_QC"
    QC_PASSED = "QC_PASSED"
    QC_FAILED = "QC_FAILED"
    READY_FOR_STOCK = "READY_FOR_STOCK"
    READY_FOR_DISPATCH = "READY_FOR_DISPATCH"
    DISPATCHED = "DISPATCHED"
    SCRAPPED = "SCRAPPED"


class Grade(str, enum.Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"


class InwardBatch(Base):
    """A receipt of devices (purchase or rental return)."""
    __tablename__ = "inward_batches"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    batch_id: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)
    inward_type: Mapped[str] = mapped_column(
        String(50), nullable=False, comment="REFURB_PURCHASE, RENTAL_RETURN"
    )

    po_invoice_no: Mapped[Optional[str]] = mapped_column(String(100))
    supplier: Mapped[Optional[str]] = mapped_column(String(200))
    customer: Mapped[Optional[str]] = mapped_column(String(200))
    rental_ref: Mapped[Optional[str]] = mapped_column(String(100))

    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType, ForeignKey("users.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )

    devices: Mapped[List["Device"]] = relationship(back_populates="inward_batch")

    def __repr__(self) -> str:
        return f"<InwardBatch {self.batch_id}>"


class Device(Base):
    __tablename__ = "devices"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    barcode: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)

    inward_batch_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType, ForeignKey("inward_batches.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    category: Mapped[str] = mapped_column(String(50), nullable=False)
    brand: Mapped[str] = mapped_column(String(100), nullable=False)
    model: Mapped[str] = mapped_column(String(200), nullable=False)
    config: Mapped[Optional[str]] = mapped_column(Text)
    serial: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    ownership: Mapped[str] = mapped_column(
        String(50), nullable=False, default=Ownership.REFURB_STOCK.value
    )

    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=DeviceStatus.RECEIVED.value,
        index=True,
        comment="RECEIVED, PENDING_INSPECTION, WAITING_FOR_SPARES, READY_FOR_REPAIR, UNDER_REPAIR, "
                "IN_PAINT, AWAITING_QC, QC_PASSED, QC_FAILED, READY_FOR_STOCK, READY_FOR_DISPATCH, "
                "DISPATCHED, SCRAPPED",
    )
    grade: Mapped[Optional[str]] = mapped_column(String(5))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    inward_batch: Mapped["InwardBatch"] = relationship(back_populates="devices")
    repair_jobs: Mapped[List["RepairJob"]] = relationship(
        back_populates="device", order_by="RepairJob.created_at.desc()"
    )
    qc_records: Mapped[List["QCRecord"]] = relationship(
        back_populates="device", order_by="QCRecord.created_at.desc()"
    )

    def __repr__(self) -> str:
        return f"<Device {self.barcode} ({self.status})>"
