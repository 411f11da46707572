"""
Workflow Service - the transition engine.

The ONLY code path that changes ``Device.status`` or ``RepairJob.status``.

Every public operation is one unit of work:

1. capability check against the action allow-list (core.permissions)
2. edge check against the state graphs (services.state_machine)
3. conditional UPDATE ... WHERE status = <expected>; zero rows means another
   request advanced the entity first and this one fails with InvalidTransition
4. TAT due date recomputed for the stage just entered (services.tat_calculator)
5. activity log entry appended in the same transaction

Event emails (spares requested, QC failed, paint ready) go out only after the
unit of work has committed.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
import logging

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from refurbops.context import AppContext
from refurbops.core.exceptions import InvalidTransition, NotFound, ValidationFailed, WorkloadLimitExceeded
from refurbops.core.permissions import Actor, require_capability
from refurbops.models.activity_log import ActivityAction
from refurbops.models.device import (
    CATEGORY_PREFIXES, Device, DeviceCategory, DeviceStatus, InwardBatch,
)
from refurbops.models.inventory import SparePart, StockMovement
from refurbops.models.quality_control import QCRecord, QCStatus
from refurbops.models.repair_job import RepairJob, RepairJobStatus, TERMINAL_JOB_STATUSES
from refurbops.schemas.reported_issues import ReportedIssues
from refurbops.schemas.workflow import (
    DeviceCreate, InspectionSubmit, InwardBatchCreate, QCSubmit, SparePartCreate, SpareLine,
)
from refurbops.services.audit_service import AuditService
from refurbops.services.spares_service import SparesLedgerService, stock_status
from refurbops.services.state_machine import validate_device_transition, validate_job_transition
from refurbops.services.tat_calculator import compute_due_date
from refurbops.services.workflow_notifier import WorkflowNotifier

logger = logging.getLogger(__name__)

D = DeviceStatus
J = RepairJobStatus

# Actions addressed by repair job id
JOB_ACTIONS = ("start_repair", "send_to_paint", "complete_paint", "complete_repair")

# Actions addressed by device id (a job id resolves to its device)
DEVICE_ACTIONS = (
    "queue_for_inspection",
    "send_for_rework",
    "move_to_stock",
    "mark_ready_for_dispatch",
    "dispatch",
    "scrap",
)


@dataclass
class TransitionResult:
    device_id: uuid.UUID
    action: str
    new_status: str
    device_status: str
    job_id: Optional[uuid.UUID] = None
    tat_due_date: Optional[datetime] = None


class WorkflowService:
    """Transition engine over devices and repair jobs."""

    def __init__(self, ctx: AppContext):
        self.ctx = ctx
        self.settings = ctx.settings
        self.notifier = WorkflowNotifier(ctx)

    # ==================== Dispatch by action name ====================

    async def apply_transition(
        self,
        job_id: uuid.UUID,
        action: str,
        actor: Actor,
        notes: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> TransitionResult:
        """Apply a named action to a repair job (device actions resolve via the job's device)."""
        action = (action or "").strip().lower()
        if action not in JOB_ACTIONS and action not in DEVICE_ACTIONS:
            raise ValidationFailed(
                f"Unknown action '{action}'. Valid actions: {', '.join(JOB_ACTIONS + DEVICE_ACTIONS)}"
            )
        require_capability(actor, action)

        if action == "start_repair":
            return await self.start_repair(job_id, actor)
        if action == "send_to_paint":
            return await self.send_to_paint(job_id, actor)
        if action == "complete_paint":
            return await self.complete_paint(job_id, actor)
        if action == "complete_repair":
            return await self.complete_repair(job_id, notes, actor)

        async with self.ctx.session() as db:
            job = await self._get_job(db, job_id)
            device_id = job.device_id
        return await self.apply_device_transition(device_id, action, actor, reason=reason)

    async def apply_device_transition(
        self,
        device_id: uuid.UUID,
        action: str,
        actor: Actor,
        reason: Optional[str] = None,
    ) -> TransitionResult:
        action = (action or "").strip().lower()
        if action not in DEVICE_ACTIONS:
            raise ValidationFailed(
                f"Unknown device action '{action}'. Valid actions: {', '.join(DEVICE_ACTIONS)}"
            )
        handler = getattr(self, action)
        if action == "scrap":
            return await handler(device_id, actor, reason)
        return await handler(device_id, actor)

    # ==================== Inward ====================

    async def create_inward_batch(self, data: InwardBatchCreate, actor: Actor) -> InwardBatch:
        require_capability(actor, "create_inward_batch")
        async with self.ctx.session() as db:
            now = self.ctx.now()
            batch_id = await self._next_number(db, InwardBatch.batch_id, f"BATCH-{now.year}-")
            batch = InwardBatch(
                batch_id=batch_id,
                inward_type=data.inward_type.value,
                po_invoice_no=data.po_invoice_no,
                supplier=data.supplier,
                customer=data.customer,
                rental_ref=data.rental_ref,
                created_by_id=actor.id,
                created_at=now,
            )
            db.add(batch)
            try:
                await db.flush()
            except IntegrityError:
                raise ValidationFailed(f"Batch number {batch_id} was allocated concurrently; retry") from None
            await AuditService(db).log(
                action=ActivityAction.CREATED_INWARD,
                entity_type="INWARD_BATCH",
                entity_id=batch.id,
                user_id=actor.id,
                new_values={"batch_id": batch_id, "inward_type": batch.inward_type},
                description=f"Created inward batch {batch_id}",
            )
        logger.info(f"Inward batch {batch_id} created by {actor.id}")
        return batch

    async def receive_device(self, batch_id: uuid.UUID, data: DeviceCreate, actor: Actor) -> Device:
        require_capability(actor, "receive_device")
        async with self.ctx.session() as db:
            batch = await db.get(InwardBatch, batch_id)
            if batch is None:
                raise NotFound(f"Inward batch {batch_id} not found")

            now = self.ctx.now()
            barcode = await self._next_barcode(db, data.category, data.brand)
            device = Device(
                barcode=barcode,
                inward_batch_id=batch.id,
                category=data.category.value,
                brand=data.brand.strip(),
                model=data.model.strip(),
                config=data.config,
                serial=data.serial,
                ownership=data.ownership.value,
                status=D.RECEIVED.value,
                created_at=now,
                updated_at=now,
            )
            db.add(device)
            try:
                await db.flush()
            except IntegrityError:
                raise ValidationFailed(f"Barcode {barcode} was allocated concurrently; retry") from None
            await AuditService(db).log(
                action=ActivityAction.RECEIVED_DEVICE,
                entity_type="DEVICE",
                entity_id=device.id,
                user_id=actor.id,
                new_values={"barcode": barcode, "status": device.status, "batch_id": batch.batch_id},
                description=f"Received {barcode} in {batch.batch_id}",
            )
        return device

    # ==================== Inspection ====================

    async def queue_for_inspection(self, device_id: uuid.UUID, actor: Actor) -> TransitionResult:
        require_capability(actor, "queue_for_inspection")
        async with self.ctx.session() as db:
            device = await self._get_device(db, device_id)
            old = device.status
            await self._move_device(db, device, D.PENDING_INSPECTION)
            await AuditService(db).log_status_change(
                ActivityAction.QUEUED_INSPECTION, "DEVICE", device.id, old, device.status, user_id=actor.id,
            )
        return self._result(device, None, "queue_for_inspection")

    async def submit_inspection(
        self,
        device_id: uuid.UUID,
        data: InspectionSubmit,
        actor: Actor,
    ) -> Tuple[TransitionResult, RepairJob]:
        """
        Record inspection findings and open the device's repair job.

        Routing: spares requested -> WAITING_FOR_SPARES; functional issues ->
        READY_FOR_REPAIR; cosmetic only -> IN_PAINT; nothing to fix ->
        AWAITING_QC with the job already COMPLETED.
        """
        require_capability(actor, "submit_inspection")
        issues = ReportedIssues.parse(data.reported_issues)

        async with self.ctx.session() as db:
            device = await self._get_device(db, device_id)
            if await self._open_job(db, device.id) is not None:
                raise InvalidTransition(
                    f"Device {device.barcode} already has an open repair job",
                    current_status=device.status,
                )

            if device.status not in (D.RECEIVED.value, D.PENDING_INSPECTION.value):
                raise InvalidTransition(
                    f"Device {device.barcode} is not awaiting inspection (status '{device.status}')",
                    current_status=device.status,
                )

            old = device.status
            if device.status == D.RECEIVED.value:
                # Inspecting straight from the receiving area queues it implicitly
                await self._move_device(db, device, D.PENDING_INSPECTION)

            if data.spares_required:
                job_status, device_status = J.WAITING_FOR_SPARES, D.WAITING_FOR_SPARES
            elif issues.has_issues:
                job_status, device_status = J.READY_FOR_REPAIR, D.READY_FOR_REPAIR
            elif data.paint_required:
                job_status, device_status = J.IN_PAINT, D.IN_PAINT
            else:
                job_status, device_status = J.COMPLETED, D.AWAITING_QC

            await self._move_device(db, device, device_status)

            now = self.ctx.now()
            job = RepairJob(
                job_number=await self._next_number(db, RepairJob.job_number, f"JOB-{now.year}-"),
                device_id=device.id,
                status=job_status.value,
                inspection_eng_id=actor.id,
                reported_issues=issues.model_dump(mode="json"),
                spares_required=[line.model_dump() for line in data.spares_required] or None,
                paint_required=data.paint_required,
                paint_panels=list(data.paint_panels) or None,
                stage_entered_at=now,
                tat_due_date=compute_due_date(job_status, now, self.settings.TAT_ALLOWANCE_DAYS),
                created_at=now,
                updated_at=now,
            )
            db.add(job)
            try:
                await db.flush()
            except IntegrityError:
                raise InvalidTransition(
                    f"Device {device.barcode} already has an open repair job",
                    current_status=old,
                ) from None

            await AuditService(db).log_status_change(
                ActivityAction.COMPLETED_INSPECTION, "DEVICE", device.id, old, device.status,
                user_id=actor.id,
                description=f"Inspection of {device.barcode}: {issues.summary()}",
                extra={"job_number": job.job_number, "job_status": job.status},
            )
            result = self._result(device, job, "submit_inspection")

        if data.spares_required:
            await self.notifier.spares_requested(job.id, actor.name or str(actor.id))
        return result, job

    # ==================== Spares ====================

    async def issue_spares(
        self,
        job_id: uuid.UUID,
        spares_issued: List[SpareLine],
        actor: Actor,
    ) -> Tuple[TransitionResult, List[StockMovement]]:
        require_capability(actor, "issue_spares")
        if not spares_issued:
            raise ValidationFailed("At least one spare line is required")

        async with self.ctx.session() as db:
            job = await self._get_job(db, job_id)
            if job.status != J.WAITING_FOR_SPARES.value or not job.spares_required:
                raise InvalidTransition(
                    f"Repair job {job.job_number} has no outstanding spares request",
                    current_status=job.status,
                    requested_status=J.READY_FOR_REPAIR.value,
                )
            device = await self._get_device(db, job.device_id)
            validate_job_transition(job.status, J.READY_FOR_REPAIR)
            validate_device_transition(device.status, D.READY_FOR_REPAIR)

            movements = await SparesLedgerService(db, actor.id).issue_for_job(job.id, spares_issued)

            old = job.status
            await self._move_job(
                db, job, J.READY_FOR_REPAIR,
                spares_issued=[line.model_dump() for line in _merge_lines(spares_issued)],
            )
            await self._move_device(db, device, D.READY_FOR_REPAIR)
            await AuditService(db).log_status_change(
                ActivityAction.ISSUED_SPARES, "REPAIR_JOB", job.id, old, job.status,
                user_id=actor.id,
                extra={"spares_issued": job.spares_issued},
            )
            result = self._result(device, job, "issue_spares")
        return result, movements

    # ==================== Repair ====================

    async def start_repair(self, job_id: uuid.UUID, actor: Actor) -> TransitionResult:
        require_capability(actor, "start_repair")
        async with self.ctx.session() as db:
            job = await self._get_job(db, job_id)
            validate_job_transition(job.status, J.UNDER_REPAIR)
            device = await self._get_device(db, job.device_id)
            validate_device_transition(device.status, D.UNDER_REPAIR)

            limit = self.settings.MAX_ACTIVE_REPAIRS_PER_ENGINEER
            active = await db.scalar(
                select(func.count(RepairJob.id)).where(
                    RepairJob.repair_eng_id == actor.id,
                    RepairJob.status == J.UNDER_REPAIR.value,
                )
            )
            if (active or 0) >= limit:
                raise WorkloadLimitExceeded(f"Max {limit} active jobs allowed")

            old = job.status
            await self._move_job(
                db, job, J.UNDER_REPAIR,
                repair_eng_id=actor.id,
                repair_start_date=self.ctx.now(),
            )
            await self._move_device(db, device, D.UNDER_REPAIR)
            await AuditService(db).log_status_change(
                ActivityAction.STARTED_REPAIR, "REPAIR_JOB", job.id, old, job.status,
                user_id=actor.id,
                extra={"repair_eng_id": str(actor.id)},
            )
            result = self._result(device, job, "start_repair")
        logger.info(f"Repair job {job.job_number} started by {actor.id}")
        return result

    async def send_to_paint(
        self,
        job_id: uuid.UUID,
        actor: Actor,
        panels: Optional[List[str]] = None,
    ) -> TransitionResult:
        require_capability(actor, "send_to_paint")
        async with self.ctx.session() as db:
            job = await self._get_job(db, job_id)
            validate_job_transition(job.status, J.IN_PAINT)
            device = await self._get_device(db, job.device_id)

            old = job.status
            extra: Dict[str, Any] = {"paint_required": True}
            if panels:
                extra["paint_panels"] = list(panels)
            await self._move_job(db, job, J.IN_PAINT, **extra)
            await self._move_device(db, device, D.IN_PAINT)
            await AuditService(db).log_status_change(
                ActivityAction.SENT_TO_PAINT, "REPAIR_JOB", job.id, old, job.status, user_id=actor.id,
            )
            result = self._result(device, job, "send_to_paint")
        return result

    async def complete_paint(self, job_id: uuid.UUID, actor: Actor) -> TransitionResult:
        """
        Collect painted panels.

        A job whose repair has not started yet and still has functional
        issues goes back to READY_FOR_REPAIR; otherwise the job completes and
        the device moves on to QC.
        """
        require_capability(actor, "complete_paint")
        async with self.ctx.session() as db:
            job = await self._get_job(db, job_id)
            if job.status != J.IN_PAINT.value:
                raise InvalidTransition(
                    f"Repair job {job.job_number} is not in the paint shop (status '{job.status}')",
                    current_status=job.status,
                )
            device = await self._get_device(db, job.device_id)

            repair_pending = (
                job.repair_start_date is None
                and ReportedIssues.parse(job.reported_issues).has_issues
            )
            old = job.status
            if repair_pending:
                await self._move_job(db, job, J.READY_FOR_REPAIR)
                await self._move_device(db, device, D.READY_FOR_REPAIR)
            else:
                await self._move_job(db, job, J.COMPLETED, repair_end_date=self.ctx.now())
                await self._move_device(db, device, D.AWAITING_QC)
            await AuditService(db).log_status_change(
                ActivityAction.COMPLETED_PAINT, "REPAIR_JOB", job.id, old, job.status, user_id=actor.id,
            )
            result = self._result(device, job, "complete_paint")

        await self.notifier.paint_ready(job.id)
        return result

    async def complete_repair(
        self,
        job_id: uuid.UUID,
        notes: Optional[str],
        actor: Actor,
    ) -> TransitionResult:
        require_capability(actor, "complete_repair")
        async with self.ctx.session() as db:
            job = await self._get_job(db, job_id)
            validate_job_transition(job.status, J.COMPLETED)
            device = await self._get_device(db, job.device_id)
            validate_device_transition(device.status, D.AWAITING_QC)

            old = job.status
            extra: Dict[str, Any] = {"repair_end_date": self.ctx.now()}
            if notes is not None:
                extra["notes"] = notes
            await self._move_job(db, job, J.COMPLETED, **extra)
            await self._move_device(db, device, D.AWAITING_QC)
            await AuditService(db).log_status_change(
                ActivityAction.COMPLETED_REPAIR, "REPAIR_JOB", job.id, old, job.status,
                user_id=actor.id,
                extra={"device_status": device.status},
            )
            result = self._result(device, job, "complete_repair")
        return result

    # ==================== QC ====================

    async def submit_qc(
        self,
        device_id: uuid.UUID,
        data: QCSubmit,
        actor: Actor,
    ) -> Tuple[TransitionResult, QCRecord]:
        require_capability(actor, "submit_qc")
        passed = data.status == QCStatus.PASSED
        if passed and data.final_grade is None:
            raise ValidationFailed("A final grade is required when QC passes")

        async with self.ctx.session() as db:
            device = await self._get_device(db, device_id)
            new_status = D.QC_PASSED if passed else D.QC_FAILED
            validate_device_transition(device.status, new_status)
            job = await self._open_job(db, device.id)

            now = self.ctx.now()
            record = QCRecord(
                device_id=device.id,
                repair_job_id=job.id if job else None,
                qc_eng_id=actor.id,
                status=data.status.value,
                final_grade=data.final_grade.value if passed else None,
                remarks=data.remarks,
                checklist_results=data.checklist_results,
                created_at=now,
            )
            db.add(record)

            old = device.status
            await self._move_device(
                db, device, new_status,
                grade=data.final_grade.value if passed else None,
            )
            if job is not None:
                # Job stays COMPLETED; its awaiting-QC clock stops here
                job.qc_eng_id = actor.id
                job.tat_due_date = None
                job.updated_at = now

            await db.flush()
            await AuditService(db).log_status_change(
                ActivityAction.COMPLETED_QC, "DEVICE", device.id, old, device.status,
                user_id=actor.id,
                description=f"QC {data.status.value} for {device.barcode}",
                extra={"grade": device.grade, "remarks": data.remarks},
            )
            result = self._result(device, job, "submit_qc")

        if not passed:
            await self.notifier.qc_failed(device.id, data.remarks, actor.name or str(actor.id))
        return result, record

    async def send_for_rework(self, device_id: uuid.UUID, actor: Actor) -> TransitionResult:
        """QC_FAILED -> READY_FOR_REPAIR. No cap on cycles; the stage clock restarts."""
        require_capability(actor, "send_for_rework")
        async with self.ctx.session() as db:
            device = await self._get_device(db, device_id)
            validate_device_transition(device.status, D.READY_FOR_REPAIR)
            if device.status != D.QC_FAILED.value:
                raise InvalidTransition(
                    f"Only devices that failed QC can be sent for rework (status '{device.status}')",
                    current_status=device.status,
                    requested_status=D.READY_FOR_REPAIR.value,
                )
            job = await self._open_job(db, device.id)
            if job is None:
                raise NotFound(f"Device {device.barcode} has no open repair job to rework")

            old = device.status
            await self._move_job(db, job, J.READY_FOR_REPAIR, rework_count=job.rework_count + 1)
            await self._move_device(db, device, D.READY_FOR_REPAIR)
            await AuditService(db).log_status_change(
                ActivityAction.SENT_FOR_REWORK, "DEVICE", device.id, old, device.status,
                user_id=actor.id,
                extra={"job_number": job.job_number, "rework_count": job.rework_count},
            )
            result = self._result(device, job, "send_for_rework")
        return result

    # ==================== Outward ====================

    async def move_to_stock(self, device_id: uuid.UUID, actor: Actor) -> TransitionResult:
        return await self._simple_device_move(
            device_id, actor, "move_to_stock", D.READY_FOR_STOCK, ActivityAction.MOVED_STOCK,
        )

    async def mark_ready_for_dispatch(self, device_id: uuid.UUID, actor: Actor) -> TransitionResult:
        return await self._simple_device_move(
            device_id, actor, "mark_ready_for_dispatch", D.READY_FOR_DISPATCH, ActivityAction.READY_FOR_DISPATCH,
        )

    async def dispatch(self, device_id: uuid.UUID, actor: Actor) -> TransitionResult:
        require_capability(actor, "dispatch")
        async with self.ctx.session() as db:
            device = await self._get_device(db, device_id)
            validate_device_transition(device.status, D.DISPATCHED)
            job = await self._open_job(db, device.id)

            old = device.status
            if job is not None:
                await self._move_job(db, job, J.CLOSED)
            await self._move_device(db, device, D.DISPATCHED)
            await AuditService(db).log_status_change(
                ActivityAction.DISPATCHED, "DEVICE", device.id, old, device.status,
                user_id=actor.id,
                extra={"job_number": job.job_number if job else None},
            )
            result = self._result(device, job, "dispatch")
        return result

    async def scrap(self, device_id: uuid.UUID, actor: Actor, reason: Optional[str] = None) -> TransitionResult:
        require_capability(actor, "scrap")
        async with self.ctx.session() as db:
            device = await self._get_device(db, device_id)
            validate_device_transition(device.status, D.SCRAPPED)
            job = await self._open_job(db, device.id)

            old = device.status
            if job is not None:
                await self._move_job(db, job, J.SCRAPPED)
            await self._move_device(db, device, D.SCRAPPED)
            await AuditService(db).log_status_change(
                ActivityAction.SCRAPPED, "DEVICE", device.id, old, device.status,
                user_id=actor.id,
                description=f"Scrapped {device.barcode}" + (f": {reason}" if reason else ""),
            )
            result = self._result(device, job, "scrap")
        return result

    # ==================== Spare parts master ====================

    async def create_spare_part(self, data: SparePartCreate, actor: Actor) -> Tuple[SparePart, int]:
        require_capability(actor, "create_spare_part")
        async with self.ctx.session() as db:
            ledger = SparesLedgerService(db, actor.id)
            part = await ledger.create_part(data)
            await AuditService(db).log(
                action=ActivityAction.RECEIVED_SPARES,
                entity_type="SPARE_PART",
                entity_id=part.id,
                user_id=actor.id,
                new_values={"part_code": part.part_code, "opening_stock": data.opening_stock},
                description=f"Created spare part {part.part_code}",
            )
            on_hand = await ledger.on_hand(part.id)
        return part, on_hand

    async def receive_stock(
        self, part_code: str, quantity: int, actor: Actor, notes: Optional[str] = None,
    ) -> StockMovement:
        require_capability(actor, "receive_stock")
        async with self.ctx.session() as db:
            movement = await SparesLedgerService(db, actor.id).receive_stock(part_code, quantity, notes)
            await AuditService(db).log(
                action=ActivityAction.RECEIVED_SPARES,
                entity_type="SPARE_PART",
                entity_id=movement.part_id,
                user_id=actor.id,
                new_values={"quantity": quantity, "balance_after": movement.balance_after},
            )
        return movement

    async def adjust_stock(self, part_code: str, delta: int, actor: Actor, reason: str) -> StockMovement:
        require_capability(actor, "adjust_stock")
        async with self.ctx.session() as db:
            movement = await SparesLedgerService(db, actor.id).adjust_stock(part_code, delta, reason)
            await AuditService(db).log(
                action=ActivityAction.ADJUSTED_SPARES,
                entity_type="SPARE_PART",
                entity_id=movement.part_id,
                user_id=actor.id,
                new_values={"delta": delta, "balance_after": movement.balance_after},
                description=reason,
            )
        return movement

    async def get_spare_part(self, part_code: str) -> Tuple[SparePart, int, str]:
        async with self.ctx.session() as db:
            ledger = SparesLedgerService(db)
            part = await ledger.get_part(part_code)
            on_hand = await ledger.on_hand(part.id)
        return part, on_hand, stock_status(part, on_hand)

    # ==================== Queries ====================

    async def get_device_detail(
        self, barcode: str,
    ) -> Tuple[Device, Optional[RepairJob], Optional[QCRecord]]:
        """Device by barcode with its current (or most recent) job and latest QC record."""
        async with self.ctx.session() as db:
            device = (await db.execute(
                select(Device).where(Device.barcode == barcode.strip().upper())
            )).scalar_one_or_none()
            if device is None:
                raise NotFound(f"Device with barcode '{barcode}' not found")
            job = (await db.execute(
                select(RepairJob)
                .where(RepairJob.device_id == device.id)
                .order_by(RepairJob.created_at.desc())
                .limit(1)
            )).scalar_one_or_none()
            qc = (await db.execute(
                select(QCRecord)
                .where(QCRecord.device_id == device.id)
                .order_by(QCRecord.created_at.desc())
                .limit(1)
            )).scalar_one_or_none()
        return device, job, qc

    async def get_job(self, job_id: uuid.UUID) -> RepairJob:
        async with self.ctx.session() as db:
            return await self._get_job(db, job_id)

    # ==================== Helpers ====================

    async def _simple_device_move(
        self,
        device_id: uuid.UUID,
        actor: Actor,
        action: str,
        new_status: DeviceStatus,
        activity: ActivityAction,
    ) -> TransitionResult:
        require_capability(actor, action)
        async with self.ctx.session() as db:
            device = await self._get_device(db, device_id)
            old = device.status
            await self._move_device(db, device, new_status)
            await AuditService(db).log_status_change(
                activity, "DEVICE", device.id, old, device.status, user_id=actor.id,
            )
            job = await self._open_job(db, device.id)
            result = self._result(device, job, action)
        return result

    async def _get_job(self, db: AsyncSession, job_id: uuid.UUID) -> RepairJob:
        job = await db.get(RepairJob, job_id)
        if job is None:
            raise NotFound(f"Repair job {job_id} not found")
        return job

    async def _get_device(self, db: AsyncSession, device_id: uuid.UUID) -> Device:
        device = await db.get(Device, device_id)
        if device is None:
            raise NotFound(f"Device {device_id} not found")
        return device

    async def _open_job(self, db: AsyncSession, device_id: uuid.UUID) -> Optional[RepairJob]:
        result = await db.execute(
            select(RepairJob).where(
                RepairJob.device_id == device_id,
                RepairJob.status.notin_(TERMINAL_JOB_STATUSES),
            )
        )
        return result.scalar_one_or_none()

    async def _move_job(self, db: AsyncSession, job: RepairJob, new_status: RepairJobStatus, **values) -> None:
        """Conditional write: the job must still be in the status we validated against."""
        expected = job.status
        validate_job_transition(expected, new_status)
        now = self.ctx.now()
        values.update(
            status=new_status.value,
            stage_entered_at=now,
            tat_due_date=compute_due_date(new_status, now, self.settings.TAT_ALLOWANCE_DAYS),
            updated_at=now,
        )
        result = await db.execute(
            update(RepairJob)
            .where(RepairJob.id == job.id, RepairJob.status == expected)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidTransition(
                f"Repair job {job.job_number} is no longer '{expected}'; it was changed by another request",
                current_status=expected,
                requested_status=new_status.value,
            )
        await db.refresh(job)

    async def _move_device(self, db: AsyncSession, device: Device, new_status: DeviceStatus, **values) -> None:
        expected = device.status
        validate_device_transition(expected, new_status)
        values.update(status=new_status.value, updated_at=self.ctx.now())
        result = await db.execute(
            update(Device)
            .where(Device.id == device.id, Device.status == expected)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidTransition(
                f"Device {device.barcode} is no longer '{expected}'; it was changed by another request",
                current_status=expected,
                requested_status=new_status.value,
            )
        await db.refresh(device)

    async def _next_number(self, db: AsyncSession, column, prefix: str) -> str:
        count = await db.scalar(select(func.count()).where(column.like(f"{prefix}%")))
        return f"{prefix}{(count or 0) + 1:04d}"

    async def _next_barcode(self, db: AsyncSession, category: DeviceCategory, brand: str) -> str:
        brand_code = "".join(ch for ch in brand.upper() if ch.isalnum())[:3] or "GEN"
        prefix = f"{CATEGORY_PREFIXES[DeviceCategory(category)]}-{brand_code}-"
        return await self._next_number(db, Device.barcode, prefix)

    def _result(self, device: Device, job: Optional[RepairJob], action: str) -> TransitionResult:
        return TransitionResult(
            device_id=device.id,
            action=action,
            new_status=job.status if job is not None and action in JOB_ACTIONS + ("issue_spares",) else device.status,
            device_status=device.status,
            job_id=job.id if job is not None else None,
            tat_due_date=job.tat_due_date if job is not None else None,
        )


def _merge_lines(lines: List[SpareLine]) -> List[SpareLine]:
    """Collapse repeated part codes, keeping first-seen order."""
    merged: Dict[str, int] = {}
    for line in lines:
        merged[line.part_code] = merged.get(line.part_code, 0) + line.quantity
    return [SpareLine(part_code=code, quantity=qty) for code, qty in merged.items()]
