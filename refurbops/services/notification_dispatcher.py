"""
Notification dispatcher for scanner findings.

Per finding:

1. resolve recipients
2. claim the (entity, classification, deadline) NotificationRecord with a
   conditional insert; a duplicate means another run already owns the alert,
   unless that run left it FAILED or its claim went stale
3. deliver to every recipient not yet in ``delivered_to``, each call bounded
   by a timeout; confirmed addresses are recorded as they succeed
4. when every recipient has confirmed, mark the record SENT; otherwise mark it
   FAILED so the next scheduled scan retries only the missing recipients

Failures are isolated per recipient and per finding: they are logged and
counted and the sweep moves on. There are no retries within a run.
"""
import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional, TYPE_CHECKING
import logging

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError

from refurbops.core.exceptions import ConfigurationMissing, DeliveryFailure
from refurbops.core.permissions import Role
from refurbops.models.notification import NotificationRecord, NotificationRecordStatus
from refurbops.services import email_templates
from refurbops.services.recipients import Recipient, get_active_user, unique_by_email, users_with_roles
from refurbops.services.tat_scanner import Classification, Finding, FindingKind

if TYPE_CHECKING:
    from refurbops.context import AppContext

logger = logging.getLogger(__name__)

APPROACHING_ROLES = (Role.ADMIN, Role.WAREHOUSE_MANAGER)
BREACHED_ROLES = (Role.ADMIN, Role.WAREHOUSE_MANAGER, Role.SUPERADMIN)


@dataclass
class DispatchSummary:
    alerts_sent: int = 0
    total_candidates: int = 0
    skipped: int = 0  # Already notified, or claimed by a concurrent run
    failures: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class Claim:
    record_id: uuid.UUID
    delivered_to: List[str] = field(default_factory=list)


class NotificationDispatcher:
    def __init__(self, ctx: "AppContext"):
        self.ctx = ctx
        self.settings = ctx.settings

    async def dispatch(self, findings: List[Finding]) -> DispatchSummary:
        summary = DispatchSummary()
        for finding in findings:
            if not finding.actionable:
                continue
            summary.total_candidates += 1
            try:
                if await self._process(finding):
                    summary.alerts_sent += 1
                else:
                    summary.skipped += 1
            except (DeliveryFailure, ConfigurationMissing) as e:
                summary.failures += 1
                summary.errors.append(f"{finding.label}: {e.message}")
                logger.error(f"Alert {finding.classification.value} for {finding.label} not delivered: {e.message}")
            except Exception as e:
                summary.failures += 1
                summary.errors.append(f"{finding.label}: {e}")
                logger.exception(f"Alert {finding.classification.value} for {finding.label} failed: {e}")
        return summary

    async def _process(self, finding: Finding) -> bool:
        """Returns True when this run delivered the alert, False when it was not ours to send."""
        recipients = await self._resolve_recipients(finding)
        if not recipients:
            raise DeliveryFailure(f"No active recipients for {finding.kind.value} alert on {finding.label}")

        claim = await self._claim(finding, recipients)
        if claim is None:
            return False

        delivered = list(claim.delivered_to)
        pending = [r for r in recipients if r.email not in delivered]
        failed: List[DeliveryFailure] = []
        try:
            for recipient in pending:
                try:
                    await self._deliver(recipient, finding)
                except DeliveryFailure as e:
                    failed.append(e)
                    logger.warning(e.message)
                    continue
                delivered.append(recipient.email)
                await self._record_delivery(claim.record_id, delivered)
        except Exception:
            await self._mark_failed(claim.record_id)
            raise

        if failed:
            await self._mark_failed(claim.record_id)
            raise DeliveryFailure(
                f"{len(failed)} of {len(pending)} recipients unconfirmed: "
                + ", ".join(e.recipient or "?" for e in failed)
            )

        await self._mark_sent(claim.record_id)
        if not pending:
            logger.info(f"{finding.classification.value} alert for {finding.label} already reached every recipient")
            return False
        logger.info(
            f"{finding.kind.value} {finding.classification.value} alert for {finding.label} "
            f"sent to {len(pending)} recipients"
        )
        return True

    async def _resolve_recipients(self, finding: Finding) -> List[Recipient]:
        if finding.kind == FindingKind.PO_AGING:
            email = self.settings.WAREHOUSE_MANAGER_EMAIL
            if not email:
                raise ConfigurationMissing("WAREHOUSE_MANAGER_EMAIL not configured")
            return [Recipient(email=email, name="Warehouse Manager")]

        roles = APPROACHING_ROLES if finding.classification == Classification.APPROACHING else BREACHED_ROLES
        recipients: List[Recipient] = []
        async with self.ctx.session() as db:
            engineer = await get_active_user(db, finding.repair_eng_id)
            if engineer is not None:
                recipients.append(Recipient(email=engineer.email, name=engineer.name))
            recipients.extend(await users_with_roles(db, roles))
        return unique_by_email(recipients)

    async def _claim(self, finding: Finding, recipients: List[Recipient]) -> Optional[Claim]:
        """
        Conditional insert of the dedup record.

        An existing record is taken over only when the previous run left it
        FAILED or its PENDING claim is older than the claim TTL. SENT records
        and fresh claims belong to someone else.
        """
        now = self.ctx.now()
        emails = [r.email for r in recipients]
        record = NotificationRecord(
            entity_type=finding.entity_type,
            entity_id=finding.entity_id,
            classification=finding.classification.value,
            due_at=finding.due_at,
            status=NotificationRecordStatus.PENDING.value,
            recipients=emails,
            delivered_to=[],
            claimed_at=now,
        )
        try:
            async with self.ctx.session() as db:
                db.add(record)
                await db.flush()
            return Claim(record.id)
        except IntegrityError:
            pass

        key = (
            NotificationRecord.entity_type == finding.entity_type,
            NotificationRecord.entity_id == finding.entity_id,
            NotificationRecord.classification == finding.classification.value,
            NotificationRecord.due_at == finding.due_at,
        )
        stale_before = now - timedelta(minutes=self.settings.NOTIFICATION_CLAIM_TTL_MINUTES)
        async with self.ctx.session() as db:
            result = await db.execute(
                update(NotificationRecord)
                .where(
                    *key,
                    or_(
                        NotificationRecord.status == NotificationRecordStatus.FAILED.value,
                        and_(
                            NotificationRecord.status == NotificationRecordStatus.PENDING.value,
                            NotificationRecord.claimed_at < stale_before,
                        ),
                    ),
                )
                .values(status=NotificationRecordStatus.PENDING.value, claimed_at=now, recipients=emails)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return None
            row = (await db.execute(
                select(NotificationRecord.id, NotificationRecord.delivered_to).where(*key)
            )).one()

        logger.info(
            f"Retrying {finding.classification.value} alert for {finding.label}; "
            f"already delivered to {len(row.delivered_to or [])} recipients"
        )
        return Claim(row.id, list(row.delivered_to or []))

    async def _deliver(self, recipient: Recipient, finding: Finding) -> None:
        subject, body = self._render(recipient, finding)
        timeout = self.settings.NOTIFICATION_SEND_TIMEOUT_SECONDS
        try:
            delivered = await asyncio.wait_for(
                self.ctx.channel.send(recipient.email, subject, body), timeout=timeout,
            )
        except asyncio.TimeoutError:
            raise DeliveryFailure(f"Delivery to {recipient.email} timed out after {timeout}s", recipient.email)
        except DeliveryFailure:
            raise
        except Exception as e:
            raise DeliveryFailure(f"Delivery to {recipient.email} failed: {e}", recipient.email) from e
        if not delivered:
            raise DeliveryFailure(f"Delivery to {recipient.email} was not confirmed", recipient.email)

    def _render(self, recipient: Recipient, finding: Finding):
        if finding.kind == FindingKind.PO_AGING:
            return email_templates.po_aging_email(
                recipient.name, finding.label, finding.supplier_code,
                finding.expected_devices, finding.created_at, finding.age_days,
            )
        if finding.classification == Classification.APPROACHING:
            return email_templates.tat_approaching_email(
                recipient.name, finding.label, finding.description, finding.due_at, finding.hours_remaining,
            )
        return email_templates.tat_breached_email(
            recipient.name, finding.label, finding.description, finding.due_at, finding.days_overdue,
        )

    async def _mark_sent(self, record_id: uuid.UUID) -> None:
        async with self.ctx.session() as db:
            await db.execute(
                update(NotificationRecord)
                .where(NotificationRecord.id == record_id)
                .values(status=NotificationRecordStatus.SENT.value, sent_at=self.ctx.now())
                .execution_options(synchronize_session=False)
            )

    async def _record_delivery(self, record_id: uuid.UUID, delivered_to: List[str]) -> None:
        async with self.ctx.session() as db:
            await db.execute(
                update(NotificationRecord)
                .where(NotificationRecord.id == record_id)
                .values(delivered_to=list(delivered_to))
                .execution_options(synchronize_session=False)
            )

    async def _mark_failed(self, record_id: uuid.UUID) -> None:
        async with self.ctx.session() as db:
            await db.execute(
                update(NotificationRecord)
                .where(
                    NotificationRecord.id == record_id,
                    NotificationRecord.status == NotificationRecordStatus.PENDING.value,
                )
                .values(status=NotificationRecordStatus.FAILED.value)
                .execution_options(synchronize_session=False)
            )
