"""
TAT and purchase order aging sweeps.

Both are idempotent: running them twice inside the same window sends each
alert once, because the dispatcher claims a NotificationRecord per
(entity, classification, deadline) before delivering.

Triggers:
- APScheduler (hourly TAT sweep, daily PO sweep) when SCHEDULER_ENABLED
- Cron endpoints protected by CRON_SECRET
"""
import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from refurbops.core.exceptions import ConfigurationMissing
from refurbops.schemas.workflow import PoAgingSummary, ScanSummary
from refurbops.services.notification_dispatcher import NotificationDispatcher
from refurbops.services.tat_scanner import AgingScanner, Classification

if TYPE_CHECKING:
    from refurbops.context import AppContext

logger = logging.getLogger(__name__)


async def scan_and_notify(ctx: "AppContext") -> ScanSummary:
    """
    Classify every open repair job and alert on APPROACHING / BREACHED ones.

    Returns:
        Counts of approaching and breached jobs, plus alerts actually sent
    """
    logger.info("Starting TAT scan...")
    now = ctx.now()
    window = timedelta(hours=ctx.settings.TAT_APPROACHING_WINDOW_HOURS)

    async with ctx.session() as db:
        findings = await AgingScanner(db, now).scan_repair_jobs(window)

    dispatched = await NotificationDispatcher(ctx).dispatch(findings)

    summary = ScanSummary(
        approaching=sum(1 for f in findings if f.classification == Classification.APPROACHING),
        breached=sum(1 for f in findings if f.classification == Classification.BREACHED),
        alerts_sent=dispatched.alerts_sent,
        total_candidates=dispatched.total_candidates,
        failures=dispatched.failures,
        timestamp=now,
    )
    logger.info(
        f"TAT scan complete: {summary.approaching} approaching, {summary.breached} breached, "
        f"{summary.alerts_sent}/{summary.total_candidates} alerts sent, {summary.failures} failures"
    )
    return summary


async def check_po_aging(ctx: "AppContext") -> PoAgingSummary:
    """
    Alert the warehouse manager about purchase orders left unaddressed past
    PO_AGING_THRESHOLD_DAYS.

    Raises:
        ConfigurationMissing: WAREHOUSE_MANAGER_EMAIL is not set; nothing is scanned
    """
    if not ctx.settings.WAREHOUSE_MANAGER_EMAIL:
        logger.warning("PO aging check skipped: WAREHOUSE_MANAGER_EMAIL not configured")
        raise ConfigurationMissing("WAREHOUSE_MANAGER_EMAIL not configured")

    logger.info("Starting PO aging check...")
    now = ctx.now()
    async with ctx.session() as db:
        findings = await AgingScanner(db, now).scan_purchase_orders(ctx.settings.PO_AGING_THRESHOLD_DAYS)

    dispatched = await NotificationDispatcher(ctx).dispatch(findings)

    summary = PoAgingSummary(
        overdue=len(findings),
        alerts_sent=dispatched.alerts_sent,
        total_candidates=dispatched.total_candidates,
        failures=dispatched.failures,
        timestamp=now,
    )
    logger.info(
        f"PO aging check complete: {summary.overdue} overdue, "
        f"{summary.alerts_sent}/{summary.total_candidates} alerts sent"
    )
    return summary
