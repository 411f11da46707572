"""
Aging / breach scanner.

Read-only sweep over persisted state. It classifies open repair jobs against
their TAT due dates and finds purchase orders left unaddressed past the aging
threshold. It never writes; the notification dispatcher decides what to send.
"""
import enum
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from refurbops.core.clock import as_utc
from refurbops.models.device import Device
from refurbops.models.purchase_order import PurchaseOrder
from refurbops.models.repair_job import RepairJob, TERMINAL_JOB_STATUSES
from refurbops.services.tat_calculator import days_overdue, hours_remaining


class Classification(str, enum.Enum):
    ON_TRACK = "ON_TRACK"
    APPROACHING = "APPROACHING"
    BREACHED = "BREACHED"


class FindingKind(str, enum.Enum):
    TAT = "TAT"
    PO_AGING = "PO_AGING"


@dataclass(frozen=True)
class Finding:
    kind: FindingKind
    entity_type: str
    entity_id: uuid.UUID
    label: str
    classification: Classification
    due_at: datetime
    description: str = ""
    hours_remaining: int = 0
    days_overdue: int = 0
    age_days: int = 0
    repair_eng_id: Optional[uuid.UUID] = None
    supplier_code: Optional[str] = None
    expected_devices: int = 0
    created_at: Optional[datetime] = None

    @property
    def actionable(self) -> bool:
        return self.classification != Classification.ON_TRACK


def classify(due_at: datetime, now: datetime, approaching_window: timedelta) -> Classification:
    """
    BREACHED once now reaches the due date, APPROACHING when the due date
    falls within the window (inclusive), ON_TRACK otherwise.
    """
    due_at, now = as_utc(due_at), as_utc(now)
    if now >= due_at:
        return Classification.BREACHED
    if due_at - now <= approaching_window:
        return Classification.APPROACHING
    return Classification.ON_TRACK


class AgingScanner:
    def __init__(self, db: AsyncSession, now: datetime):
        self.db = db
        self.now = as_utc(now)

    async def scan_repair_jobs(self, approaching_window: timedelta) -> List[Finding]:
        """Classify every open job that carries a due date. Terminal jobs are never returned."""
        result = await self.db.execute(
            select(RepairJob, Device.barcode, Device.model)
            .join(Device, Device.id == RepairJob.device_id)
            .where(
                RepairJob.status.notin_(TERMINAL_JOB_STATUSES),
                RepairJob.tat_due_date.isnot(None),
            )
            .order_by(RepairJob.tat_due_date.asc())
        )

        findings = []
        for job, barcode, model in result.all():
            due_at = as_utc(job.tat_due_date)
            findings.append(Finding(
                kind=FindingKind.TAT,
                entity_type="REPAIR_JOB",
                entity_id=job.id,
                label=barcode,
                description=model,
                classification=classify(due_at, self.now, approaching_window),
                due_at=due_at,
                hours_remaining=hours_remaining(due_at, self.now),
                days_overdue=days_overdue(due_at, self.now),
                repair_eng_id=job.repair_eng_id,
            ))
        return findings

    async def scan_purchase_orders(self, threshold_days: int) -> List[Finding]:
        """Unaddressed purchase orders created at least ``threshold_days`` ago."""
        cutoff = self.now - timedelta(days=threshold_days)
        result = await self.db.execute(
            select(PurchaseOrder)
            .where(
                PurchaseOrder.is_addressed == False,  # noqa: E712
                PurchaseOrder.created_at <= cutoff,
            )
            .order_by(PurchaseOrder.created_at.asc())
        )

        findings = []
        for po in result.scalars().all():
            created_at = as_utc(po.created_at)
            age_days = math.floor((self.now - created_at).total_seconds() / 86400)
            findings.append(Finding(
                kind=FindingKind.PO_AGING,
                entity_type="PURCHASE_ORDER",
                entity_id=po.id,
                label=po.po_number,
                classification=Classification.BREACHED,
                due_at=created_at + timedelta(days=threshold_days),
                age_days=age_days,
                days_overdue=age_days - threshold_days,
                supplier_code=po.supplier_code,
                expected_devices=po.expected_devices,
                created_at=created_at,
            ))
        return findings
