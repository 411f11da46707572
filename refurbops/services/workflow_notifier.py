"""
Event-driven workflow emails.

Fired after a transition has committed. Delivery is best effort: failures are
logged and never undo the transition that triggered them.
"""
import asyncio
from typing import List, Optional, TYPE_CHECKING
import uuid
import logging

from sqlalchemy import select

from refurbops.core.permissions import Role
from refurbops.models.device import Device
from refurbops.models.repair_job import RepairJob
from refurbops.services import email_templates
from refurbops.services.recipients import Recipient, get_active_user, unique_by_email, users_with_roles

if TYPE_CHECKING:
    from refurbops.context import AppContext

logger = logging.getLogger(__name__)

SPARES_DESK_ROLES = (Role.WAREHOUSE_MANAGER, Role.MIS_WAREHOUSE_EXECUTIVE, Role.ADMIN)


class WorkflowNotifier:
    def __init__(self, ctx: "AppContext"):
        self.ctx = ctx

    async def spares_requested(self, job_id: uuid.UUID, requested_by: str) -> int:
        try:
            async with self.ctx.session() as db:
                job = await db.get(RepairJob, job_id)
                if job is None:
                    return 0
                device = await db.get(Device, job.device_id)
                recipients = unique_by_email(await users_with_roles(db, SPARES_DESK_ROLES))
                spares = ", ".join(
                    f"{line['part_code']} x{line['quantity']}" for line in (job.spares_required or [])
                )

            sent = await self._send_all(
                recipients,
                lambda r: email_templates.spares_requested_email(
                    r.name, device.barcode, device.model, spares, requested_by,
                ),
            )
            logger.info(f"Spares requested for {device.barcode}: notified {sent}/{len(recipients)} recipients")
            return sent
        except Exception as e:
            logger.error(f"Spares requested notification failed for job {job_id}: {e}")
            return 0

    async def qc_failed(self, device_id: uuid.UUID, remarks: Optional[str], qc_engineer: str) -> int:
        try:
            async with self.ctx.session() as db:
                device = await db.get(Device, device_id)
                job = await self._latest_job(db, device_id)
                engineer = await get_active_user(db, job.repair_eng_id if job else None)

            if engineer is None:
                logger.info(f"QC failed for {device.barcode}: no repair engineer assigned")
                return 0

            sent = await self._send_all(
                [Recipient(engineer.email, engineer.name)],
                lambda r: email_templates.qc_failed_email(
                    r.name, device.barcode, device.model, remarks or "", qc_engineer,
                ),
            )
            logger.info(f"QC failed for {device.barcode}: notified {engineer.name}")
            return sent
        except Exception as e:
            logger.error(f"QC failed notification failed for device {device_id}: {e}")
            return 0

    async def paint_ready(self, job_id: uuid.UUID) -> int:
        try:
            async with self.ctx.session() as db:
                job = await db.get(RepairJob, job_id)
                if job is None:
                    return 0
                device = await db.get(Device, job.device_id)
                engineer = await get_active_user(db, job.repair_eng_id)

            if engineer is None:
                logger.info(f"Paint ready for {device.barcode}: no repair engineer assigned")
                return 0

            sent = await self._send_all(
                [Recipient(engineer.email, engineer.name)],
                lambda r: email_templates.paint_ready_email(
                    r.name, device.barcode, device.model, job.paint_panels or ["All panels"],
                ),
            )
            logger.info(f"Paint ready for {device.barcode}: notified {engineer.name}")
            return sent
        except Exception as e:
            logger.error(f"Paint ready notification failed for job {job_id}: {e}")
            return 0

    async def _latest_job(self, db, device_id: uuid.UUID) -> Optional[RepairJob]:
        result = await db.execute(
            select(RepairJob)
            .where(RepairJob.device_id == device_id)
            .order_by(RepairJob.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _send_all(self, recipients: List[Recipient], build) -> int:
        timeout = self.ctx.settings.NOTIFICATION_SEND_TIMEOUT_SECONDS
        sent = 0
        for recipient in recipients:
            subject, body = build(recipient)
            try:
                if await asyncio.wait_for(self.ctx.channel.send(recipient.email, subject, body), timeout=timeout):
                    sent += 1
                else:
                    logger.warning(f"Delivery to {recipient.email} not confirmed: {subject}")
            except asyncio.TimeoutError:
                logger.error(f"Delivery to {recipient.email} timed out after {timeout}s: {subject}")
        return sent
