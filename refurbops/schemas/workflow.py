"""Request/response schemas for workflow operations."""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from refurbops.models.device import DeviceCategory, Grade, InwardType, Ownership
from refurbops.models.quality_control import QCStatus
from refurbops.schemas.base import BaseCreateSchema, BaseResponseSchema
from refurbops.schemas.reported_issues import ReportedIssues


# ==================== Spares ====================

class SpareLine(BaseModel):
    """One requested/issued spare: part code plus quantity."""
    part_code: str = Field(..., min_length=1, max_length=50)
    quantity: int = Field(1, gt=0)

    @field_validator("part_code")
    @classmethod
    def normalize_part_code(cls, v: str) -> str:
        return v.strip().upper()


class IssueSparesRequest(BaseCreateSchema):
    spares: List[SpareLine] = Field(..., min_length=1)


class StockMovementResponse(BaseResponseSchema):
    id: UUID
    part_id: UUID
    movement_type: str
    quantity: int
    balance_after: int
    reference_type: Optional[str] = None
    reference_id: Optional[UUID] = None
    created_at: datetime


class IssueSparesResponse(BaseModel):
    success: bool = True
    job_id: UUID
    new_status: str
    movements: List[StockMovementResponse] = Field(default_factory=list)


# ==================== Inward ====================

class InwardBatchCreate(BaseCreateSchema):
    inward_type: InwardType = InwardType.REFURB_PURCHASE
    po_invoice_no: Optional[str] = None
    supplier: Optional[str] = None
    customer: Optional[str] = None
    rental_ref: Optional[str] = None


class InwardBatchResponse(BaseResponseSchema):
    id: UUID
    batch_id: str
    inward_type: str
    po_invoice_no: Optional[str] = None
    supplier: Optional[str] = None
    created_at: datetime


class DeviceCreate(BaseCreateSchema):
    category: DeviceCategory
    brand: str = Field(..., min_length=1, max_length=100)
    model: str = Field(..., min_length=1, max_length=200)
    config: Optional[str] = None
    serial: Optional[str] = None
    ownership: Ownership = Ownership.REFURB_STOCK


class DeviceResponse(BaseResponseSchema):
    id: UUID
    barcode: str
    inward_batch_id: UUID
    category: str
    brand: str
    model: str
    config: Optional[str] = None
    serial: Optional[str] = None
    status: str
    grade: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# ==================== Inspection / Repair ====================

class InspectionSubmit(BaseCreateSchema):
    reported_issues: ReportedIssues = Field(default_factory=ReportedIssues)
    paint_required: bool = False
    paint_panels: List[str] = Field(default_factory=list)
    spares_required: List[SpareLine] = Field(default_factory=list)

    @field_validator("reported_issues", mode="before")
    @classmethod
    def decode_reported_issues(cls, v):
        return ReportedIssues.parse(v)


class RepairJobResponse(BaseResponseSchema):
    id: UUID
    job_number: str
    device_id: UUID
    status: str
    inspection_eng_id: Optional[UUID] = None
    repair_eng_id: Optional[UUID] = None
    qc_eng_id: Optional[UUID] = None
    reported_issues: Optional[ReportedIssues] = None
    spares_required: Optional[List[SpareLine]] = None
    spares_issued: Optional[List[SpareLine]] = None
    paint_required: bool = False
    paint_panels: Optional[List[str]] = None
    notes: Optional[str] = None
    stage_entered_at: datetime
    tat_due_date: Optional[datetime] = None
    rework_count: int = 0

    @field_validator("reported_issues", mode="before")
    @classmethod
    def decode_reported_issues(cls, v):
        return ReportedIssues.parse(v) if v is not None else None


class TransitionRequest(BaseCreateSchema):
    action: str = Field(..., min_length=1, max_length=50)
    notes: Optional[str] = None
    reason: Optional[str] = None


class TransitionResponse(BaseModel):
    job_id: Optional[UUID] = None
    device_id: UUID
    action: str
    new_status: str
    device_status: str
    tat_due_date: Optional[datetime] = None


# ==================== QC ====================

class QCSubmit(BaseCreateSchema):
    status: QCStatus
    final_grade: Optional[Grade] = None
    remarks: Optional[str] = None
    checklist_results: Optional[dict] = None


class QCRecordResponse(BaseResponseSchema):
    id: UUID
    device_id: UUID
    repair_job_id: Optional[UUID] = None
    qc_eng_id: UUID
    status: str
    final_grade: Optional[str] = None
    remarks: Optional[str] = None
    created_at: datetime


class DeviceDetailResponse(DeviceResponse):
    current_job: Optional[RepairJobResponse] = None
    latest_qc: Optional[QCRecordResponse] = None


# ==================== Spare parts master ====================

class SparePartCreate(BaseCreateSchema):
    part_code: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    min_stock: int = Field(0, ge=0)
    max_stock: int = Field(0, ge=0)
    bin_location: Optional[str] = None
    opening_stock: int = Field(0, ge=0)


class SparePartResponse(BaseResponseSchema):
    id: UUID
    part_code: str
    description: Optional[str] = None
    min_stock: int
    max_stock: int
    bin_location: Optional[str] = None
    on_hand: int = 0
    stock_status: str = "NORMAL"


class StockReceiptRequest(BaseCreateSchema):
    quantity: int = Field(..., gt=0)
    notes: Optional[str] = None


# ==================== Scanner ====================

class ScanSummary(BaseModel):
    approaching: int = 0
    breached: int = 0
    alerts_sent: int = 0
    total_candidates: int = 0
    failures: int = 0
    timestamp: datetime


class PoAgingSummary(BaseModel):
    overdue: int = 0
    alerts_sent: int = 0
    total_candidates: int = 0
    failures: int = 0
    timestamp: datetime


class StockAdjustmentRequest(BaseCreateSchema):
    delta: int
    reason: str = Field(..., min_length=1, max_length=500)

    @field_validator("delta")
    @classmethod
    def non_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("delta must be non-zero")
        return v
