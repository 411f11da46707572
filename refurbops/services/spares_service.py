"""
Spares ledger.

On-hand quantity is never stored; it is the sum of a part's stock movements.
Every write locks the part row, recomputes the balance and appends one
movement carrying ``balance_after``. A debit that would take the balance
below zero raises InsufficientStock before anything is written.
"""
import re
import uuid
from collections import OrderedDict
from typing import Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from refurbops.core.exceptions import InsufficientStock, NotFound, ValidationFailed
from refurbops.models.inventory import SparePart, StockMovement, StockMovementType
from refurbops.schemas.workflow import SparePartCreate, SpareLine

PART_CODE_PATTERN = re.compile(r"^[A-Z0-9][A-Z0-9_-]{0,49}$")


def normalize_part_code(code: str) -> str:
    normalized = (code or "").strip().upper()
    if not PART_CODE_PATTERN.match(normalized):
        raise ValidationFailed(
            f"Invalid part code '{code}'. Use letters, digits, '-' or '_' (max 50 characters)."
        )
    return normalized


def stock_status(part: SparePart, on_hand: int) -> str:
    """LOW at or below min stock, OVERSTOCK above a configured max, else NORMAL."""
    if on_hand <= part.min_stock:
        return "LOW"
    if part.max_stock and on_hand > part.max_stock:
        return "OVERSTOCK"
    return "NORMAL"


class SparesLedgerService:
    """Spare part master and stock movement ledger, bound to one unit of work."""

    def __init__(self, db: AsyncSession, actor_id: Optional[uuid.UUID] = None):
        self.db = db
        self.actor_id = actor_id

    async def get_part(self, part_code: str, lock: bool = False) -> SparePart:
        code = normalize_part_code(part_code)
        query = select(SparePart).where(SparePart.part_code == code)
        if lock:
            query = query.with_for_update()
        part = (await self.db.execute(query)).scalar_one_or_none()
        if part is None:
            raise NotFound(f"Spare part '{code}' not found")
        return part

    async def on_hand(self, part_id: uuid.UUID) -> int:
        total = await self.db.scalar(
            select(func.coalesce(func.sum(StockMovement.quantity), 0))
            .where(StockMovement.part_id == part_id)
        )
        return int(total or 0)

    async def create_part(self, data: SparePartCreate) -> SparePart:
        code = normalize_part_code(data.part_code)
        existing = await self.db.scalar(select(SparePart.id).where(SparePart.part_code == code))
        if existing is not None:
            raise ValidationFailed(f"Spare part '{code}' already exists")
        if data.max_stock and data.max_stock < data.min_stock:
            raise ValidationFailed("max_stock cannot be lower than min_stock")

        part = SparePart(
            part_code=code,
            description=data.description,
            min_stock=data.min_stock,
            max_stock=data.max_stock,
            bin_location=data.bin_location,
        )
        self.db.add(part)
        await self.db.flush()

        if data.opening_stock:
            await self._post(part, StockMovementType.RECEIPT, data.opening_stock, notes="Opening stock")
        return part

    async def receive_stock(self, part_code: str, quantity: int, notes: Optional[str] = None) -> StockMovement:
        if quantity <= 0:
            raise ValidationFailed("Receipt quantity must be positive")
        part = await self.get_part(part_code, lock=True)
        return await self._post(part, StockMovementType.RECEIPT, quantity, notes=notes)

    async def adjust_stock(self, part_code: str, delta: int, reason: str) -> StockMovement:
        if delta == 0:
            raise ValidationFailed("Adjustment quantity cannot be zero")
        part = await self.get_part(part_code, lock=True)
        movement_type = StockMovementType.ADJUSTMENT_PLUS if delta > 0 else StockMovementType.ADJUSTMENT_MINUS
        return await self._post(part, movement_type, delta, notes=reason)

    async def issue_for_job(self, job_id: uuid.UUID, lines: List[SpareLine]) -> List[StockMovement]:
        """
        Debit every line against a repair job.

        All lines are checked before the first movement is written, so a
        shortage on any part leaves the whole ledger untouched.
        """
        wanted: "OrderedDict[str, int]" = OrderedDict()
        for line in lines:
            code = normalize_part_code(line.part_code)
            wanted[code] = wanted.get(code, 0) + line.quantity

        # Lock in a stable order so concurrent issues cannot deadlock
        parts: Dict[str, SparePart] = {}
        for code in sorted(wanted):
            part = await self.get_part(code, lock=True)
            if not part.is_active:
                raise ValidationFailed(f"Spare part '{code}' is inactive")
            parts[code] = part

        for code, quantity in wanted.items():
            available = await self.on_hand(parts[code].id)
            if available < quantity:
                raise InsufficientStock(
                    f"Insufficient stock for {code}: {available} on hand, {quantity} requested",
                    part_code=code,
                    available=available,
                    requested=quantity,
                )

        movements = []
        for code, quantity in wanted.items():
            movements.append(await self._post(
                parts[code],
                StockMovementType.ISSUE,
                -quantity,
                reference_type="REPAIR_JOB",
                reference_id=job_id,
            ))
        return movements

    async def _post(
        self,
        part: SparePart,
        movement_type: StockMovementType,
        quantity: int,
        reference_type: Optional[str] = None,
        reference_id: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
    ) -> StockMovement:
        """Append one movement. Positive quantity is a credit, negative a debit."""
        balance_before = await self.on_hand(part.id)
        balance_after = balance_before + quantity
        if balance_after < 0:
            raise InsufficientStock(
                f"Insufficient stock for {part.part_code}: {balance_before} on hand, {abs(quantity)} requested",
                part_code=part.part_code,
                available=balance_before,
                requested=abs(quantity),
            )

        movement = StockMovement(
            part_id=part.id,
            movement_type=movement_type.value,
            quantity=quantity,
            balance_after=balance_after,
            reference_type=reference_type,
            reference_id=reference_id,
            created_by=self.actor_id,
            notes=notes,
        )
        self.db.add(movement)
        await self.db.flush()
        return movement
