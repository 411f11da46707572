"""
Repair Job API Endpoints.

- Named workflow transitions (start_repair, send_to_paint, complete_paint,
  complete_repair, plus device actions resolved through the job's device)
- Spares issue against the job's request
"""
from dataclasses import asdict
from uuid import UUID

from fastapi import APIRouter

from refurbops.api.deps import CurrentActor, Workflow
from refurbops.schemas.workflow import (
    IssueSparesRequest, IssueSparesResponse, RepairJobResponse, StockMovementResponse,
    TransitionRequest, TransitionResponse,
)

router = APIRouter()


@router.get(
    "/{job_id}",
    response_model=RepairJobResponse,
    summary="Get Repair Job"
)
async def get_repair_job(job_id: UUID, service: Workflow, actor: CurrentActor):
    return await service.get_job(job_id)


@router.post(
    "/{job_id}/transitions",
    response_model=TransitionResponse,
    summary="Apply Workflow Transition"
)
async def apply_transition(
    job_id: UUID,
    data: TransitionRequest,
    service: Workflow,
    actor: CurrentActor,
):
    """
    Move the job (and its device) along the workflow graph.

    Returns 409 when the edge is not allowed from the current state, or when a
    concurrent request moved the job first.
    """
    result = await service.apply_transition(job_id, data.action, actor, notes=data.notes, reason=data.reason)
    return TransitionResponse(**asdict(result))


@router.post(
    "/{job_id}/spares",
    response_model=IssueSparesResponse,
    summary="Issue Spares"
)
async def issue_spares(
    job_id: UUID,
    data: IssueSparesRequest,
    service: Workflow,
    actor: CurrentActor,
):
    """Issue the requested spares from stock; the job becomes READY_FOR_REPAIR."""
    result, movements = await service.issue_spares(job_id, data.spares, actor)
    return IssueSparesResponse(
        success=True,
        job_id=job_id,
        new_status=result.new_status,
        movements=[StockMovementResponse.model_validate(m) for m in movements],
    )
