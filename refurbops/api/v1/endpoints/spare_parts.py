"""
Spare Parts API Endpoints.

Stock on hand is always the sum of the part's ledger movements.
"""
from fastapi import APIRouter, status

from refurbops.api.deps import CurrentActor, Workflow
from refurbops.schemas.workflow import (
    SparePartCreate, SparePartResponse, StockAdjustmentRequest, StockMovementResponse, StockReceiptRequest,
)
from refurbops.services.spares_service import stock_status

router = APIRouter()


@router.post(
    "",
    response_model=SparePartResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Spare Part"
)
async def create_spare_part(data: SparePartCreate, service: Workflow, actor: CurrentActor):
    part, on_hand = await service.create_spare_part(data, actor)
    return SparePartResponse.model_validate(part).model_copy(
        update={"on_hand": on_hand, "stock_status": stock_status(part, on_hand)}
    )


@router.get(
    "/{part_code}",
    response_model=SparePartResponse,
    summary="Get Spare Part"
)
async def get_spare_part(part_code: str, service: Workflow, actor: CurrentActor):
    part, on_hand, part_status = await service.get_spare_part(part_code)
    return SparePartResponse.model_validate(part).model_copy(
        update={"on_hand": on_hand, "stock_status": part_status}
    )


@router.post(
    "/{part_code}/receipts",
    response_model=StockMovementResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Receive Stock"
)
async def receive_stock(part_code: str, data: StockReceiptRequest, service: Workflow, actor: CurrentActor):
    return await service.receive_stock(part_code, data.quantity, actor, data.notes)


@router.post(
    "/{part_code}/adjustments",
    response_model=StockMovementResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Adjust Stock"
)
async def adjust_stock(part_code: str, data: StockAdjustmentRequest, service: Workflow, actor: CurrentActor):
    """Manual correction; rejected with 409 if it would take stock below zero."""
    return await service.adjust_stock(part_code, data.delta, actor, data.reason)
