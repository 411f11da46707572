"""Inward API Endpoints: batches and device receipt."""
from uuid import UUID

from fastapi import APIRouter, status

from refurbops.api.deps import CurrentActor, Workflow
from refurbops.schemas.workflow import DeviceCreate, DeviceResponse, InwardBatchCreate, InwardBatchResponse

router = APIRouter()


@router.post(
    "",
    response_model=InwardBatchResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Inward Batch"
)
async def create_inward_batch(data: InwardBatchCreate, service: Workflow, actor: CurrentActor):
    return await service.create_inward_batch(data, actor)


@router.post(
    "/{batch_id}/devices",
    response_model=DeviceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Receive Device"
)
async def receive_device(batch_id: UUID, data: DeviceCreate, service: Workflow, actor: CurrentActor):
    """Register a device against the batch; a barcode is generated and the device is RECEIVED."""
    return await service.receive_device(batch_id, data, actor)
