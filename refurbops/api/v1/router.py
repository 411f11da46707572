from fastapi import APIRouter

from refurbops.api.v1.endpoints import (
    # Inward & Devices
    inward,
    devices,
    # Repair workflow
    repair_jobs,
    # Spares
    spare_parts,
    # Scheduled sweeps
    cron,
)

api_router = APIRouter()

api_router.include_router(inward.router, prefix="/inward-batches", tags=["Inward"])
api_router.include_router(devices.router, prefix="/devices", tags=["Devices"])
api_router.include_router(repair_jobs.router, prefix="/repair-jobs", tags=["Repair Jobs"])
api_router.include_router(spare_parts.router, prefix="/spare-parts", tags=["Spare Parts"])
api_router.include_router(cron.router, prefix="/cron", tags=["Cron"])
