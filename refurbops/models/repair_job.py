import uuid
import enum
from datetime import datetime, timezone
from typing import Optional, TYPE_CHECKING

from sqlalchemy import String, DateTime, ForeignKey, Text, Integer, Boolean, Index, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from refurbops.database import Base
from refurbops.db_types import UUIDType, JSONType

if TYPE_CHECKING:
    from refurbops.models.device import Device


class RepairJobStatus(str, enum.Enum):
    """Repair job stages. Transitions live in services.state_machine."""
    WAITING_FOR_SPARES = "WAITING_FOR_SPARES"
    READY_FOR_REPAIR = "READY_FOR_REPAIR"
    UNDER_REPAIR = "UNDER_REPAIR"
    IN_PAINT = "IN_PAINT"
    COMPLETED = "COMPLETED"  # Repair done, device awaiting QC
    CLOSED = "CLOSED"  # Device dispatched
    SCRAPPED = "SCRAPPED"


TERMINAL_JOB_STATUSES = (RepairJobStatus.CLOSED.value, RepairJobStatus.SCRAPPED.value)

_OPEN_JOB_CLAUSE = "status NOT IN ('CLOSED', 'SCRAPPED')"


class RepairJob(Base):
    """One repair engagement for a device."""
    __tablename__ = "repair_jobs"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    job_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)

    device_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType, ForeignKey("devices.id", ondelete="RESTRICT"), nullable=False
    )

    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
        comment="WAITING_FOR_SPARES, READY_FOR_REPAIR, UNDER_REPAIR, IN_PAINT, COMPLETED, CLOSED, SCRAPPED",
    )

    # Assigned actors
    inspection_eng_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType, ForeignKey("users.id", ondelete="SET NULL")
    )
    repair_eng_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType, ForeignKey("users.id", ondelete="SET NULL"), index=True
    )
    qc_eng_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType, ForeignKey("users.id", ondelete="SET NULL")
    )

    # Structured payloads, decoded at the service boundary
    reported_issues: Mapped[Optional[dict]] = mapped_column(JSONType)
    spares_required: Mapped[Optional[list]] = mapped_column(JSONType)  # [{part_code, quantity}]
    spares_issued: Mapped[Optional[list]] = mapped_column(JSONType)

    paint_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    paint_panels: Mapped[Optional[list]] = mapped_column(JSONType)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    # TAT tracking (stage clock resets on every stage entry)
    stage_entered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    tat_due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), index=True)

    repair_start_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    repair_end_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    rework_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    device: Mapped["Device"] = relationship(back_populates="repair_jobs")

    __table_args__ = (
        # At most one open job per device
        Index(
            "uq_repair_jobs_open_device",
            "device_id",
            unique=True,
            sqlite_where=text(_OPEN_JOB_CLAUSE),
            postgresql_where=text(_OPEN_JOB_CLAUSE),
        ),
    )

    @property
    def is_open(self) -> bool:
        return self.status not in TERMINAL_JOB_STATUSES

    def __repr__(self) -> str:
        return f"<RepairJob {self.job_number} ({self.status})>"
