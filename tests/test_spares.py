import pytest
from sqlalchemy import func, select

from refurbops.core.exceptions import InsufficientStock, InvalidTransition, NotFound, ValidationFailed
from refurbops.models import RepairJob, StockMovement
from refurbops.schemas.workflow import SpareLine, SparePartCreate
from refurbops.services.spares_service import normalize_part_code


async def _movement_count(ctx) -> int:
    async with ctx.session() as db:
        return await db.scalar(select(func.count(StockMovement.id)))


async def _create_part(service, actors, code, opening=0, min_stock=0, max_stock=0):
    part, _ = await service.create_spare_part(
        SparePartCreate(part_code=code, opening_stock=opening, min_stock=min_stock, max_stock=max_stock),
        actors["warehouse"],
    )
    return part


def test_part_code_normalized():
    assert normalize_part_code(" kb-dl-5490 ") == "KB-DL-5490"


@pytest.mark.parametrize("code", ["", "  ", "KB DL", "-KB", "KB/01"])
def test_invalid_part_codes(code):
    with pytest.raises(ValidationFailed):
        normalize_part_code(code)


async def test_opening_stock_and_receipts(service, actors):
    await _create_part(service, actors, "kb-dl-5490", opening=3, min_stock=2, max_stock=10)

    movement = await service.receive_stock("KB-DL-5490", 4, actors["warehouse"], notes="GRN 1182")
    part, on_hand, status = await service.get_spare_part("kb-dl-5490")

    assert movement.balance_after == 7
    assert part.part_code == "KB-DL-5490"
    assert on_hand == 7
    assert status == "NORMAL"


async def test_stock_status_levels(service, actors):
    await _create_part(service, actors, "LOW-1", opening=2, min_stock=2, max_stock=5)
    await _create_part(service, actors, "OVER-1", opening=6, min_stock=1, max_stock=5)

    assert (await service.get_spare_part("LOW-1"))[2] == "LOW"
    assert (await service.get_spare_part("OVER-1"))[2] == "OVERSTOCK"


async def test_duplicate_part_rejected(service, actors):
    await _create_part(service, actors, "FAN-01")

    with pytest.raises(ValidationFailed, match="already exists"):
        await _create_part(service, actors, "fan-01")


async def test_adjustment_cannot_go_negative(ctx, service, actors):
    await _create_part(service, actors, "SSD-256", opening=1)
    before = await _movement_count(ctx)

    with pytest.raises(InsufficientStock) as exc_info:
        await service.adjust_stock("SSD-256", -2, actors["warehouse"], "Cycle count")

    assert exc_info.value.available == 1
    assert exc_info.value.requested == 2
    assert await _movement_count(ctx) == before

    movement = await service.adjust_stock("SSD-256", -1, actors["warehouse"], "Damaged in storage")
    assert movement.balance_after == 0
    assert movement.movement_type == "ADJUSTMENT_MINUS"


async def test_receipt_for_unknown_part(service, actors):
    with pytest.raises(NotFound):
        await service.receive_stock("NOPE-1", 1, actors["warehouse"])


async def test_issue_spares_debits_ledger_and_readies_job(ctx, driver, service, actors):
    await _create_part(service, actors, "BAT-DL-01", opening=5)
    await _create_part(service, actors, "KB-DL-01", opening=1)
    device = await driver.receive()
    job = await driver.inspect(device, functional="Dead battery", spares=[("BAT-DL-01", 2), ("KB-DL-01", 1)])

    result, movements = await service.issue_spares(
        job.id,
        [SpareLine(part_code="bat-dl-01", quantity=1), SpareLine(part_code="KB-DL-01"),
         SpareLine(part_code="BAT-DL-01", quantity=1)],
        actors["warehouse"],
    )

    assert result.new_status == "READY_FOR_REPAIR"
    assert result.device_status == "READY_FOR_REPAIR"
    assert sorted((m.quantity, m.balance_after) for m in movements) == [(-2, 3), (-1, 0)]
    assert all(m.reference_id == job.id for m in movements)

    async with ctx.session() as db:
        stored = await db.get(RepairJob, job.id)
    assert stored.spares_issued == [
        {"part_code": "BAT-DL-01", "quantity": 2},
        {"part_code": "KB-DL-01", "quantity": 1},
    ]


async def test_insufficient_stock_leaves_everything_unchanged(ctx, driver, service, actors):
    await _create_part(service, actors, "BAT-DL-01", opening=5)
    await _create_part(service, actors, "HNG-DL-01", opening=0)
    device = await driver.receive()
    job = await driver.inspect(device, functional="Hinge", spares=[("BAT-DL-01", 1), ("HNG-DL-01", 1)])
    before = await _movement_count(ctx)

    with pytest.raises(InsufficientStock) as exc_info:
        await service.issue_spares(
            job.id,
            [SpareLine(part_code="BAT-DL-01"), SpareLine(part_code="HNG-DL-01")],
            actors["warehouse"],
        )

    assert exc_info.value.part_code == "HNG-DL-01"
    assert await _movement_count(ctx) == before
    assert (await service.get_spare_part("BAT-DL-01"))[1] == 5
    async with ctx.session() as db:
        assert (await db.get(RepairJob, job.id)).status == "WAITING_FOR_SPARES"


async def test_issue_spares_requires_outstanding_request(driver, service, actors):
    await _create_part(service, actors, "BAT-DL-01", opening=5)
    _, job = await driver.ready_for_repair()

    with pytest.raises(InvalidTransition, match="no outstanding spares request"):
        await service.issue_spares(job.id, [SpareLine(part_code="BAT-DL-01")], actors["warehouse"])
