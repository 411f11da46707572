"""
Cron API Endpoints.

Called by an external scheduler (or uptime pinger). Both GET and POST are
accepted; every call must carry CRON_SECRET.
"""
from fastapi import APIRouter, Depends

from refurbops.api.deps import Context, verify_cron_secret
from refurbops.jobs.tat_jobs import check_po_aging, scan_and_notify
from refurbops.schemas.workflow import PoAgingSummary, ScanSummary

router = APIRouter(dependencies=[Depends(verify_cron_secret)])


@router.api_route(
    "/tat-notifications",
    methods=["GET", "POST"],
    response_model=ScanSummary,
    summary="Run TAT Scan"
)
async def run_tat_notifications(ctx: Context):
    """Classify open repair jobs and send APPROACHING / BREACHED alerts."""
    return await scan_and_notify(ctx)


@router.api_route(
    "/po-aging",
    methods=["GET", "POST"],
    response_model=PoAgingSummary,
    summary="Run PO Aging Check"
)
async def run_po_aging(ctx: Context):
    return await check_po_aging(ctx)
