import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select, update

from refurbops.core.clock import as_utc
from refurbops.core.exceptions import ConfigurationMissing
from refurbops.models import NotificationRecord, PurchaseOrder, RepairJob
from refurbops.jobs.scheduler import create_scheduler, get_job_status, run_po_aging_check, shutdown_scheduler, start_scheduler
from refurbops.jobs.tat_jobs import check_po_aging, scan_and_notify
from refurbops.services.tat_scanner import AgingScanner, Classification
from tests.conftest import T0


async def _records(ctx):
    async with ctx.session() as db:
        return list((await db.execute(select(NotificationRecord))).scalars().all())


# ==================== Scanner ====================

async def test_scanner_classifies_without_writing(ctx, clock, driver):
    _, job = await driver.ready_for_repair()
    clock.advance(days=2)

    async with ctx.session() as db:
        findings = await AgingScanner(db, clock()).scan_repair_jobs(timedelta(hours=24))

    assert len(findings) == 1
    finding = findings[0]
    assert finding.entity_id == job.id
    assert finding.classification == Classification.APPROACHING
    assert finding.hours_remaining == 24
    assert finding.due_at == T0 + timedelta(days=3)
    assert await _records(ctx) == []


async def test_terminal_jobs_are_excluded_even_when_overdue(ctx, clock, driver, service, actors):
    device, job = await driver.ready_for_repair()
    await service.scrap(device.id, actors["admin"], reason="Beyond economic repair")
    async with ctx.session() as db:
        await db.execute(
            update(RepairJob).where(RepairJob.id == job.id).values(tat_due_date=T0 - timedelta(days=1))
        )

    summary = await scan_and_notify(ctx)

    assert summary.breached == 0
    assert summary.total_candidates == 0


async def test_on_track_jobs_send_nothing(ctx, driver, channel):
    await driver.ready_for_repair()
    channel.clear()

    summary = await scan_and_notify(ctx)

    assert (summary.approaching, summary.breached, summary.alerts_sent) == (0, 0, 0)
    assert channel.sent == []


# ==================== Scan and notify ====================

async def test_approaching_then_breached_sends_one_alert_each(ctx, clock, driver, channel):
    await driver.ready_for_repair()
    channel.clear()

    clock.advance(days=2)
    first = await scan_and_notify(ctx)
    assert (first.approaching, first.breached, first.alerts_sent) == (1, 0, 1)
    assert channel.recipients() == ["admin@comprint.test", "warehouse@comprint.test"]
    assert channel.sent[0].subject.endswith("due in 24 hours")

    # Re-run with no state change: nothing new goes out
    channel.clear()
    again = await scan_and_notify(ctx)
    assert (again.approaching, again.alerts_sent, again.total_candidates) == (1, 0, 1)
    assert channel.sent == []

    clock.advance(days=2)
    breached = await scan_and_notify(ctx)
    assert (breached.approaching, breached.breached, breached.alerts_sent) == (0, 1, 1)
    assert channel.recipients() == [
        "admin@comprint.test", "superadmin@comprint.test", "warehouse@comprint.test",
    ]
    assert channel.sent[0].subject.startswith("URGENT: TAT Breached")

    channel.clear()
    assert (await scan_and_notify(ctx)).alerts_sent == 0
    assert channel.sent == []

    records = await _records(ctx)
    assert sorted(r.classification for r in records) == ["APPROACHING", "BREACHED"]
    assert all(r.status == "SENT" for r in records)


async def test_assigned_engineer_is_alerted(ctx, clock, driver, channel):
    await driver.under_repair(engineer="repair2")
    channel.clear()
    clock.advance(days=4, hours=1)

    summary = await scan_and_notify(ctx)

    assert summary.alerts_sent == 1
    assert "repair2@comprint.test" in channel.recipients()


async def test_new_stage_gets_a_new_alert(ctx, clock, driver, service, actors, channel):
    _, job = await driver.ready_for_repair()
    clock.advance(days=2)
    assert (await scan_and_notify(ctx)).alerts_sent == 1

    # Entering UNDER_REPAIR restarts the clock with a new deadline
    await service.start_repair(job.id, actors["repair"])
    clock.advance(days=4)
    assert (await scan_and_notify(ctx)).alerts_sent == 1
    assert len(await _records(ctx)) == 2


async def test_failed_delivery_is_retried_on_next_scan(ctx, clock, driver, channel):
    await driver.ready_for_repair()
    channel.clear()
    clock.advance(days=4)

    channel.fail_all = True
    failed = await scan_and_notify(ctx)
    assert (failed.breached, failed.alerts_sent, failed.failures) == (1, 0, 1)
    [record] = await _records(ctx)
    assert (record.status, record.delivered_to) == ("FAILED", [])

    channel.fail_all = False
    retried = await scan_and_notify(ctx)
    assert (retried.alerts_sent, retried.failures) == (1, 0)
    assert len(channel.sent) == 3


async def test_partial_delivery_retries_only_missing_recipients(ctx, clock, driver, channel):
    await driver.ready_for_repair()
    channel.clear()
    clock.advance(days=2)

    channel.fail_for = {"warehouse@comprint.test"}
    for _ in range(3):
        summary = await scan_and_notify(ctx)
        assert (summary.alerts_sent, summary.failures) == (0, 1)

    assert channel.recipients() == ["admin@comprint.test"]
    assert channel.attempts.count("warehouse@comprint.test") == 3
    [record] = await _records(ctx)
    assert (record.status, record.delivered_to) == ("FAILED", ["admin@comprint.test"])

    channel.fail_for = set()
    channel.clear()
    assert (await scan_and_notify(ctx)).alerts_sent == 1
    assert channel.recipients() == ["warehouse@comprint.test"]
    [record] = await _records(ctx)
    assert record.status == "SENT"
    assert sorted(record.delivered_to) == ["admin@comprint.test", "warehouse@comprint.test"]

    channel.clear()
    assert (await scan_and_notify(ctx)).alerts_sent == 0
    assert channel.attempts == []


async def test_slow_channel_times_out(ctx, clock, driver, channel):
    await driver.ready_for_repair()
    clock.advance(days=4)
    channel.delay = 1.5  # NOTIFICATION_SEND_TIMEOUT_SECONDS is 1 in tests

    summary = await scan_and_notify(ctx)

    assert summary.failures == 1
    assert summary.alerts_sent == 0


async def test_one_failing_job_does_not_block_others(ctx, clock, driver, channel):
    await driver.under_repair(engineer="repair")
    await driver.under_repair(engineer="repair2")
    channel.clear()
    clock.advance(days=5)

    channel.fail_for = {"repair@comprint.test"}
    summary = await scan_and_notify(ctx)

    assert summary.breached == 2
    assert summary.alerts_sent == 1
    assert summary.failures == 1


async def test_channel_exception_is_isolated(ctx, clock, driver, channel):
    await driver.ready_for_repair()
    clock.advance(days=4)
    channel.raise_error = ConnectionError("SMTP connection refused")

    summary = await scan_and_notify(ctx)

    assert (summary.failures, summary.alerts_sent) == (1, 0)
    [record] = await _records(ctx)
    assert record.status == "FAILED"


async def test_overlapping_scans_deliver_once(ctx, clock, driver, channel):
    await driver.ready_for_repair()
    channel.clear()
    clock.advance(days=4)
    channel.delay = 0.05

    first, second = await asyncio.gather(scan_and_notify(ctx), scan_and_notify(ctx))

    assert first.alerts_sent + second.alerts_sent == 1
    assert len(channel.sent) == 3


async def test_stale_claim_is_taken_over(ctx, clock, driver, channel):
    _, job = await driver.ready_for_repair()
    channel.clear()
    clock.advance(days=4)
    async with ctx.session() as db:
        db.add(NotificationRecord(
            entity_type="REPAIR_JOB",
            entity_id=job.id,
            classification="BREACHED",
            due_at=as_utc(job.tat_due_date),
            status="PENDING",
            claimed_at=clock() - timedelta(minutes=5),
        ))

    # Fresh claim: owned by another run
    assert (await scan_and_notify(ctx)).alerts_sent == 0
    assert channel.sent == []

    clock.advance(minutes=30)
    assert (await scan_and_notify(ctx)).alerts_sent == 1
    records = await _records(ctx)
    assert len(records) == 1
    assert records[0].status == "SENT"


# ==================== Purchase order aging ====================

async def _add_purchase_orders(ctx):
    async with ctx.session() as db:
        db.add_all([
            PurchaseOrder(po_number="PO-2026-0041", supplier_code="ACME", expected_devices=40,
                          created_at=T0 - timedelta(days=11)),
            PurchaseOrder(po_number="PO-2026-0057", supplier_code="ACME", expected_devices=12,
                          created_at=T0 - timedelta(days=3)),
            PurchaseOrder(po_number="PO-2026-0012", supplier_code="RENT", expected_devices=5,
                          created_at=T0 - timedelta(days=30), is_addressed=True),
        ])


async def test_po_aging_alerts_warehouse_manager_once(ctx, channel):
    await _add_purchase_orders(ctx)

    summary = await check_po_aging(ctx)

    assert (summary.overdue, summary.alerts_sent) == (1, 1)
    assert channel.recipients() == ["warehouse.manager@comprint.test"]
    assert channel.sent[0].subject == "PO Aging Alert: PO-2026-0041 unaddressed for 11 days"

    channel.clear()
    assert (await check_po_aging(ctx)).alerts_sent == 0
    assert channel.sent == []


async def test_po_aging_without_recipient_short_circuits(ctx, channel):
    await _add_purchase_orders(ctx)
    ctx.settings.WAREHOUSE_MANAGER_EMAIL = None

    with pytest.raises(ConfigurationMissing):
        await check_po_aging(ctx)

    assert channel.sent == []
    assert await _records(ctx) == []


# ==================== Scheduler ====================

async def test_scheduler_registers_both_sweeps(ctx):
    scheduler = create_scheduler(ctx)
    start_scheduler(scheduler)
    try:
        status = {job["id"]: job for job in get_job_status(scheduler)}
        assert set(status) == {"tat_scan", "po_aging_check"}
        assert status["tat_scan"]["next_run_time"] is not None
    finally:
        shutdown_scheduler(scheduler)


async def test_scheduled_po_check_swallows_missing_config(ctx, channel):
    ctx.settings.WAREHOUSE_MANAGER_EMAIL = None

    await run_po_aging_check(ctx)

    assert channel.sent == []
