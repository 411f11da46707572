import uuid
import enum
from datetime import datetime, timezone
from typing import Optional, TYPE_CHECKING

from sqlalchemy import String, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from refurbops.database import Base
from refurbops.db_types import UUIDType, JSONType

if TYPE_CHECKING:
    from refurbops.models.device import Device


class QCStatus(str, enum.Enum):
    PASSED = "PASSED"
    FAILED_REWORK = "FAILED_REWORK"


class QCRecord(Base):
    """
    Immutable result of a single QC pass.

    A device may accumulate several records (re-inspection after rework); the
    most recent one is authoritative for the device grade.
    """
    __tablename__ = "qc_records"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    device_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType, ForeignKey("devices.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    repair_job_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType, ForeignKey("repair_jobs.id", ondelete="SET NULL")
    )
    qc_eng_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )

    status: Mapped[str] = mapped_column(String(50), nullable=False, comment="PASSED, FAILED_REWORK")
    final_grade: Mapped[Optional[str]] = mapped_column(String(5), comment="A, B, C, D")
    remarks: Mapped[Optional[str]] = mapped_column(Text)
    checklist_results: Mapped[Optional[dict]] = mapped_column(JSONType)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )

    device: Mapped["Device"] = relationship(back_populates="qc_records")

    @property
    def passed(self) -> bool:
        return self.status == QCStatus.PASSED.value

    def __repr__(self) -> str:
        return f"<QCRecord(device='{self.device_id}', status='{self.status}')>"
