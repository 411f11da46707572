"""
Device API Endpoints.

- Lookup by barcode
- Inspection (opens the repair job)
- QC result
- Device-level transitions (rework, stock, dispatch, scrap)
"""
from dataclasses import asdict
from uuid import UUID

from fastapi import APIRouter, status

from refurbops.api.deps import CurrentActor, Workflow
from refurbops.schemas.workflow import (
    DeviceDetailResponse, DeviceResponse, InspectionSubmit, QCRecordResponse, QCSubmit,
    RepairJobResponse, TransitionRequest, TransitionResponse,
)

router = APIRouter()


@router.get(
    "/{barcode}",
    response_model=DeviceDetailResponse,
    summary="Get Device by Barcode"
)
async def get_device(barcode: str, service: Workflow, actor: CurrentActor):
    """Device with its current (or last) repair job and latest QC record."""
    device, job, qc = await service.get_device_detail(barcode)
    return DeviceDetailResponse(
        **DeviceResponse.model_validate(device).model_dump(),
        current_job=RepairJobResponse.model_validate(job) if job else None,
        latest_qc=QCRecordResponse.model_validate(qc) if qc else None,
    )


@router.post(
    "/{device_id}/inspection",
    response_model=RepairJobResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit Inspection"
)
async def submit_inspection(
    device_id: UUID,
    data: InspectionSubmit,
    service: Workflow,
    actor: CurrentActor,
):
    """Record inspection findings and open the repair job."""
    _, job = await service.submit_inspection(device_id, data, actor)
    return job


@router.post(
    "/{device_id}/qc",
    response_model=QCRecordResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit QC Result"
)
async def submit_qc(
    device_id: UUID,
    data: QCSubmit,
    service: Workflow,
    actor: CurrentActor,
):
    _, record = await service.submit_qc(device_id, data, actor)
    return record


@router.post(
    "/{device_id}/transitions",
    response_model=TransitionResponse,
    summary="Apply Device Transition"
)
async def apply_device_transition(
    device_id: UUID,
    data: TransitionRequest,
    service: Workflow,
    actor: CurrentActor,
):
    result = await service.apply_device_transition(device_id, data.action, actor, reason=data.reason)
    return TransitionResponse(**asdict(result))
