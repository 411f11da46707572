"""Models package - import all models for Alembic/metadata discovery."""
from refurbops.models.user import User
from refurbops.models.device import (
    InwardBatch, Device,
    DeviceCategory, DeviceStatus, Grade, InwardType, Ownership, CATEGORY_PREFIXES,
)
from refurbops.models.repair_job import RepairJob, RepairJobStatus, TERMINAL_JOB_STATUSES
from refurbops.models.quality_control import QCRecord, QCStatus
from refurbops.models.inventory import SparePart, StockMovement, StockMovementType
from refurbops.models.activity_log import ActivityLog, ActivityAction
from refurbops.models.notification import NotificationRecord, NotificationRecordStatus
from refurbops.models.purchase_order import PurchaseOrder

__all__ = [
    "User",
    "InwardBatch",
    "Device",
    "DeviceCategory",
    "DeviceStatus",
    "Grade",
    "InwardType",
    "Ownership",
    "CATEGORY_PREFIXES",
    "RepairJob",
    "RepairJobStatus",
    "TERMINAL_JOB_STATUSES",
    "QCRecord",
    "QCStatus",
    "SparePart",
    "StockMovement",
    "StockMovementType",
    "ActivityLog",
    "ActivityAction",
    "NotificationRecord",
    "NotificationRecordStatus",
    "PurchaseOrder",
]
