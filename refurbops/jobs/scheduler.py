"""
APScheduler configuration.

One scheduler per application context, created and started in the FastAPI
lifespan when SCHEDULER_ENABLED is set. Jobs:
- TAT scan every TAT_SCAN_INTERVAL_MINUTES (hourly by default)
- PO aging check daily at PO_AGING_HOUR
"""

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from refurbops.core.exceptions import WorkflowError
from refurbops.jobs.tat_jobs import check_po_aging, scan_and_notify

if TYPE_CHECKING:
    from refurbops.context import AppContext

logger = logging.getLogger(__name__)

# Job defaults
job_defaults = {
    'coalesce': True,  # Combine multiple pending executions into one
    'max_instances': 1,  # Only one instance of each job at a time
    'misfire_grace_time': 60,  # Allow 60 seconds grace time for misfires
}


async def run_tat_scan(ctx: "AppContext"):
    try:
        await scan_and_notify(ctx)
    except Exception as e:
        logger.error(f"Job 'tat_scan' failed: {e}")


async def run_po_aging_check(ctx: "AppContext"):
    try:
        await check_po_aging(ctx)
    except WorkflowError as e:
        logger.warning(f"Job 'po_aging_check' not run: {e.message}")
    except Exception as e:
        logger.error(f"Job 'po_aging_check' failed: {e}")


def create_scheduler(ctx: "AppContext") -> AsyncIOScheduler:
    """Build a scheduler with the TAT and PO aging jobs registered, not yet started."""
    settings = ctx.settings
    scheduler = AsyncIOScheduler(
        jobstores={'default': MemoryJobStore()},
        executors={'default': AsyncIOExecutor()},
        job_defaults=job_defaults,
        timezone=settings.SCHEDULER_TIMEZONE,
    )

    scheduler.add_job(
        run_tat_scan,
        'interval',
        minutes=settings.TAT_SCAN_INTERVAL_MINUTES,
        args=[ctx],
        id='tat_scan',
        name='TAT Approaching / Breach Alerts',
        replace_existing=True,
    )

    scheduler.add_job(
        run_po_aging_check,
        'cron',
        hour=settings.PO_AGING_HOUR,
        minute=0,
        args=[ctx],
        id='po_aging_check',
        name='Purchase Order Aging Alerts',
        replace_existing=True,
    )
    return scheduler


def start_scheduler(scheduler: AsyncIOScheduler):
    """Start the background job scheduler."""
    if not scheduler.running:
        scheduler.start()
        logger.info("Background job scheduler started")

        for job in scheduler.get_jobs():
            logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler(scheduler: AsyncIOScheduler):
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background job scheduler stopped")


def get_job_status(scheduler: AsyncIOScheduler):
    """Get status of all scheduled jobs."""
    jobs = scheduler.get_jobs()
    status = []
    for job in jobs:
        next_run = getattr(job, 'next_run_time', None)  # Unset until the scheduler starts
        status.append({
            'id': job.id,
            'name': job.name,
            'next_run_time': str(next_run) if next_run else None,
            'trigger': str(job.trigger),
        })
    return status
