"""Service for Batches module: batch records and FIFO/FEFO/LIFO allocation."""

import logging
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.service import AuditAction, AuditService
from src.core.exceptions import (
    DuplicateError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from src.core.inventory_settings.models import ConsumptionStrategy
from src.core.inventory_settings.service import get_inventory_config, get_stock_consumption_strategy
from src.modules.batches.models import InventoryBatch
from src.modules.batches.schemas import BatchCreate, BatchUpdate
from src.modules.items.models import InventoryItem
from src.modules.items.service import ItemService
from src.modules.warehouses.service import WarehouseService
from src.shared.utils.dates import Clock, as_utc, utc_now
from src.shared.utils.money import round_quantity, to_decimal
from src.shared.utils.stock_math import ZERO

logger = logging.getLogger(__name__)

# (batch uid, quantity)
AllocationLine = tuple[str, Decimal]


def candidate_order(strategy: ConsumptionStrategy) -> list:
    """ORDER BY clauses for the candidate batches of a strategy.

    The id column breaks ties between batches received at the same instant.
    """
    if strategy == ConsumptionStrategy.FEFO:
        return [
            InventoryBatch.expiry_date.is_(None),  # nulls last
            InventoryBatch.expiry_date.asc(),
            InventoryBatch.received_date.asc(),
            InventoryBatch.id.asc(),
        ]
    if strategy == ConsumptionStrategy.LIFO:
        return [InventoryBatch.received_date.desc(), InventoryBatch.id.desc()]
    return [InventoryBatch.received_date.asc(), InventoryBatch.id.asc()]


class BatchService:
    """Service for batches and batch allocation."""

    def __init__(self, db: AsyncSession, clock: Clock = utc_now):
        self.db = db
        self.clock = clock
        self.audit = AuditService(db)
        self.items = ItemService(db)
        self.warehouses = WarehouseService(db)

    async def _get_for_update(self, batch_id: int) -> InventoryBatch:
        result = await self.db.execute(
            select(InventoryBatch).where(InventoryBatch.id == batch_id).with_for_update()
        )
        batch = result.scalar_one_or_none()
        if not batch:
            raise NotFoundError("Batch", batch_id)
        return batch

    async def _get_item_in_warehouse(self, item_id: int, warehouse_id: int) -> InventoryItem:
        item = await self.items.get_item(item_id)
        await self.warehouses.get_warehouse(warehouse_id)
        if item.warehouse_id != warehouse_id:
            raise ValidationError(
                f"Item {item.sku} is not stocked in warehouse {warehouse_id}",
                field="warehouse_id",
            )
        return item

    # --- CRUD ---

    async def create_batch(self, data: BatchCreate, commit: bool = True) -> InventoryBatch:
        """Create a batch holding ``data.quantity`` as available stock."""
        item = await self._get_item_in_warehouse(data.inventory_item_id, data.warehouse_id)

        existing = await self.find_batch_by_number(item.id, data.warehouse_id, data.batch_number)
        if existing is not None:
            raise DuplicateError("Batch", "batch_number", data.batch_number)

        now = self.clock()
        quantity = round_quantity(data.quantity)
        batch = InventoryBatch(
            batch_number=data.batch_number,
            lot_number=data.lot_number,
            inventory_item_id=item.id,
            warehouse_id=data.warehouse_id,
            total_quantity=quantity,
            available_quantity=quantity,
            reserved_quantity=ZERO,
            manufacturing_date=as_utc(data.manufacturing_date),
            expiry_date=as_utc(data.expiry_date),
            received_date=as_utc(data.received_date) or as_utc(now),
            supplier_id=data.supplier_id,
            supplier_name=data.supplier_name,
            purchase_order_number=data.purchase_order_number,
            cost_per_unit=data.cost_per_unit if data.cost_per_unit is not None else item.cost_price,
            notes=data.notes,
            is_active=True,
            is_expired=False,
        )
        batch.is_expired = batch.has_expired(now)
        self.db.add(batch)
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.CREATE,
            entity_type="InventoryBatch",
            entity_id=batch.id,
            entity_identifier=batch.uid,
            performed_by=data.performed_by,
            new_values={
                "batch_number": batch.batch_number,
                "quantity": str(quantity),
                "expiry_date": batch.expiry_date.isoformat() if batch.expiry_date else None,
            },
        )

        if commit:
            await self.db.commit()
            await self.db.refresh(batch)
        return batch

    async def update_batch(
        self, batch_id: int, data: BatchUpdate, commit: bool = True
    ) -> InventoryBatch:
        """Replace descriptive fields and re-evaluate expiry."""
        batch = await self._get_for_update(batch_id)

        batch.lot_number = data.lot_number
        batch.manufacturing_date = as_utc(data.manufacturing_date)
        batch.expiry_date = as_utc(data.expiry_date)
        batch.supplier_id = data.supplier_id
        batch.supplier_name = data.supplier_name
        batch.purchase_order_number = data.purchase_order_number
        batch.cost_per_unit = data.cost_per_unit
        batch.notes = data.notes
        batch.is_active = data.is_active
        batch.is_expired = batch.has_expired(self.clock())
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.UPDATE,
            entity_type="InventoryBatch",
            entity_id=batch.id,
            entity_identifier=batch.uid,
            performed_by=data.performed_by,
            new_values={"is_active": batch.is_active, "is_expired": batch.is_expired},
        )

        if commit:
            await self.db.commit()
            await self.db.refresh(batch)
        return batch

    async def delete_batch(
        self, batch_id: int, performed_by: str | None = None, commit: bool = True
    ) -> InventoryBatch:
        """Soft delete a batch that holds no available or reserved stock."""
        batch = await self._get_for_update(batch_id)
        if to_decimal(batch.available_quantity) != 0 or to_decimal(batch.reserved_quantity) != 0:
            raise InvalidStateError(
                f"Batch {batch.batch_number} still holds stock and cannot be deleted",
                details={
                    "available_quantity": str(batch.available_quantity),
                    "reserved_quantity": str(batch.reserved_quantity),
                },
            )
        batch.is_active = False
        await self.audit.log(
            action=AuditAction.DELETE,
            entity_type="InventoryBatch",
            entity_id=batch.id,
            entity_identifier=batch.uid,
            performed_by=performed_by,
            old_values={"is_active": True},
            new_values={"is_active": False},
        )
        if commit:
            await self.db.commit()
            await self.db.refresh(batch)
        return batch

    # --- Lookups ---

    async def get_batch(self, batch_id: int) -> InventoryBatch:
        result = await self.db.execute(select(InventoryBatch).where(InventoryBatch.id == batch_id))
        batch = result.scalar_one_or_none()
        if not batch:
            raise NotFoundError("Batch", batch_id)
        return batch

    async def get_batch_by_uid(self, uid: str) -> InventoryBatch:
        result = await self.db.execute(select(InventoryBatch).where(InventoryBatch.uid == uid))
        batch = result.scalar_one_or_none()
        if not batch:
            raise NotFoundError("Batch", uid)
        return batch

    async def find_batch_by_number(
        self, item_id: int, warehouse_id: int, batch_number: str, lock: bool = False
    ) -> InventoryBatch | None:
        query = select(InventoryBatch).where(
            InventoryBatch.inventory_item_id == item_id,
            InventoryBatch.warehouse_id == warehouse_id,
            InventoryBatch.batch_number == batch_number,
        )
        if lock:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_batch_by_number(
        self, item_id: int, warehouse_id: int, batch_number: str
    ) -> InventoryBatch:
        batch = await self.find_batch_by_number(item_id, warehouse_id, batch_number)
        if not batch:
            raise NotFoundError("Batch", batch_number)
        return batch

    async def list_batches(
        self,
        item_id: int | None = None,
        warehouse_id: int | None = None,
        active_only: bool = False,
        page: int = 1,
        limit: int = 100,
    ) -> tuple[list[InventoryBatch], int]:
        """List batches, oldest received first."""
        query = select(InventoryBatch).order_by(
            InventoryBatch.received_date.asc(), InventoryBatch.id.asc()
        )
        if item_id is not None:
            query = query.where(InventoryBatch.inventory_item_id == item_id)
        if warehouse_id is not None:
            query = query.where(InventoryBatch.warehouse_id == warehouse_id)
        if active_only:
            query = query.where(InventoryBatch.is_active.is_(True))

        count_query = select(func.count()).select_from(query.subquery())
        total_result = await self.db.execute(count_query)
        total = total_result.scalar() or 0

        offset = (page - 1) * limit
        result = await self.db.execute(query.offset(offset).limit(limit))
        return list(result.scalars().all()), total

    # --- Allocation ---

    async def get_candidate_batches(
        self,
        item_id: int,
        warehouse_id: int,
        strategy: ConsumptionStrategy | str | None = None,
        lock: bool = False,
    ) -> list[InventoryBatch]:
        """Active, non-expired batches with available stock, in consumption order.

        Without an explicit strategy the configured one is used.
        """
        if strategy is None:
            strategy = await get_stock_consumption_strategy(self.db)
        strategy = ConsumptionStrategy.parse(strategy)

        query = (
            select(InventoryBatch)
            .where(
                InventoryBatch.inventory_item_id == item_id,
                InventoryBatch.warehouse_id == warehouse_id,
                InventoryBatch.is_active.is_(True),
                InventoryBatch.is_expired.is_(False),
                InventoryBatch.available_quantity > 0,
            )
            .order_by(*candidate_order(strategy))
        )
        if lock:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def plan_allocation(
        self,
        item_id: int,
        warehouse_id: int,
        quantity: Decimal,
        strategy: ConsumptionStrategy | str | None = None,
    ) -> list[tuple[InventoryBatch, Decimal]]:
        """Work out which batches cover ``quantity`` without touching any of them.

        Raises InsufficientStockError (requested vs. coverable) when the candidates
        run out first.
        """
        item = await self._get_item_in_warehouse(item_id, warehouse_id)
        quantity = round_quantity(quantity)
        if quantity <= 0:
            raise ValidationError("Allocation quantity must be positive", field="quantity")

        candidates = await self.get_candidate_batches(item_id, warehouse_id, strategy, lock=True)

        plan: list[tuple[InventoryBatch, Decimal]] = []
        remaining = quantity
        for batch in candidates:
            if remaining <= 0:
                break
            # unflushed changes in this session are not visible to the WHERE clause
            if not batch.has_available_stock():
                continue
            take = min(remaining, to_decimal(batch.available_quantity))
            plan.append((batch, take))
            remaining -= take

        if remaining > 0:
            raise InsufficientStockError(
                item.uid, quantity, quantity - remaining, scope="batches"
            )
        return plan

    async def allocate_batches(
        self,
        item_id: int,
        warehouse_id: int,
        quantity: Decimal,
        strategy: ConsumptionStrategy | str | None = None,
        commit: bool = True,
    ) -> list[AllocationLine]:
        """Consume ``quantity`` from batches in strategy order. All or nothing."""
        plan = await self.plan_allocation(item_id, warehouse_id, quantity, strategy)
        lines: list[AllocationLine] = []
        item_uid = (await self.db.get(InventoryItem, item_id)).uid
        for batch, take in plan:
            batch.consume(take, from_reserved=False, item_uid=item_uid)
            lines.append((batch.uid, take))
        await self.db.flush()

        logger.debug("Allocated %s of item %s from %d batch(es)", quantity, item_id, len(lines))
        if commit:
            await self.db.commit()
        return lines

    async def reserve_batches(
        self,
        item_id: int,
        warehouse_id: int,
        quantity: Decimal,
        strategy: ConsumptionStrategy | str | None = None,
        performed_by: str | None = None,
        commit: bool = True,
    ) -> list[AllocationLine]:
        """Reserve ``quantity`` across batches in strategy order. All or nothing."""
        plan = await self.plan_allocation(item_id, warehouse_id, quantity, strategy)
        lines: list[AllocationLine] = []
        item_uid = (await self.db.get(InventoryItem, item_id)).uid
        for batch, take in plan:
            batch.reserve(take, item_uid=item_uid)
            lines.append((batch.uid, take))
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.RESERVE_BATCHES,
            entity_type="InventoryItem",
            entity_id=item_id,
            performed_by=performed_by,
            new_values={"lines": [[uid, str(qty)] for uid, qty in lines]},
        )
        if commit:
            await self.db.commit()
        return lines

    async def release_reservations(
        self,
        lines: list[AllocationLine],
        performed_by: str | None = None,
        commit: bool = True,
    ) -> list[AllocationLine]:
        """Return reserved quantities to available, one batch at a time.

        Each line is clamped to what the batch still has reserved, so releasing
        twice is harmless. Returns what was actually released per batch.
        """
        released: list[AllocationLine] = []
        for batch_uid, quantity in lines:
            result = await self.db.execute(
                select(InventoryBatch).where(InventoryBatch.uid == batch_uid).with_for_update()
            )
            batch = result.scalar_one_or_none()
            if not batch:
                raise NotFoundError("Batch", batch_uid)
            amount = batch.release_reserved(quantity)
            released.append((batch.uid, amount))
            await self.audit.log(
                action=AuditAction.RELEASE_BATCHES,
                entity_type="InventoryBatch",
                entity_id=batch.id,
                entity_identifier=batch.uid,
                performed_by=performed_by,
                new_values={"released": str(amount), "reserved_quantity": str(batch.reserved_quantity)},
            )
        await self.db.flush()
        if commit:
            await self.db.commit()
        return released

    # --- Stock-in ---

    @staticmethod
    def check_receivable(batch: InventoryBatch, expiry_date: datetime | None = None) -> None:
        """Refuse a top-up that allocation could never issue, or that disagrees on expiry."""
        if not batch.is_active:
            raise InvalidStateError(f"Batch {batch.batch_number} is inactive")
        if not batch.can_receive():
            raise InvalidStateError(
                f"Batch {batch.batch_number} has expired and cannot receive stock",
                details={"batch_number": batch.batch_number},
            )
        if expiry_date is not None and as_utc(expiry_date) != as_utc(batch.expiry_date):
            current = batch.expiry_date.date().isoformat() if batch.expiry_date else "none"
            raise ValidationError(
                f"Batch {batch.batch_number} has expiry date {current}; "
                f"stock with expiry {as_utc(expiry_date).date().isoformat()} needs its own batch",
                field="expiry_date",
            )

    async def receive_into_batch(
        self,
        item: InventoryItem,
        warehouse_id: int,
        batch_number: str,
        quantity: Decimal,
        cost_per_unit: Decimal | None = None,
        received_date: datetime | None = None,
        expiry_date: datetime | None = None,
        manufacturing_date: datetime | None = None,
        lot_number: str | None = None,
        supplier_id: str | None = None,
        supplier_name: str | None = None,
        purchase_order_number: str | None = None,
        performed_by: str | None = None,
    ) -> InventoryBatch:
        """Top up the batch with this number, or create it. Never commits."""
        batch = await self.find_batch_by_number(item.id, warehouse_id, batch_number, lock=True)
        if batch is not None:
            self.check_receivable(batch, expiry_date)
            batch.add_stock(quantity)
            await self.db.flush()
            return batch

        return await self.create_batch(
            BatchCreate(
                batch_number=batch_number,
                lot_number=lot_number,
                inventory_item_id=item.id,
                warehouse_id=warehouse_id,
                quantity=quantity,
                manufacturing_date=manufacturing_date,
                expiry_date=expiry_date,
                received_date=received_date,
                supplier_id=supplier_id,
                supplier_name=supplier_name,
                purchase_order_number=purchase_order_number,
                cost_per_unit=cost_per_unit,
                performed_by=performed_by,
            ),
            commit=False,
        )

    # --- Expiry ---

    async def mark_expired_batches(
        self, now: datetime | None = None, commit: bool = True
    ) -> int:
        """Flag batches whose expiry date has been reached. Quantities are untouched."""
        now = as_utc(now or self.clock())
        result = await self.db.execute(
            select(InventoryBatch)
            .where(
                InventoryBatch.is_expired.is_(False),
                InventoryBatch.expiry_date.is_not(None),
                InventoryBatch.expiry_date <= now,
            )
            .with_for_update()
        )
        batches = list(result.scalars().all())
        for batch in batches:
            batch.is_expired = True
            await self.audit.log(
                action=AuditAction.EXPIRE_BATCHES,
                entity_type="InventoryBatch",
                entity_id=batch.id,
                entity_identifier=batch.uid,
                old_values={"is_expired": False},
                new_values={"is_expired": True},
            )
        await self.db.flush()

        logger.info("Expiry sweep at %s flagged %d batch(es)", now.isoformat(), len(batches))
        if commit:
            await self.db.commit()
        return len(batches)

    async def get_expiring_batches(
        self,
        days: int | None = None,
        now: datetime | None = None,
        warehouse_id: int | None = None,
    ) -> list[InventoryBatch]:
        """Active, not yet expired batches with stock that expire within ``days``."""
        if days is None:
            days = (await get_inventory_config(self.db)).expiry_alert_days
        now = as_utc(now or self.clock())
        query = (
            select(InventoryBatch)
            .where(
                InventoryBatch.is_active.is_(True),
                InventoryBatch.is_expired.is_(False),
                InventoryBatch.available_quantity > 0,
                InventoryBatch.expiry_date.is_not(None),
                InventoryBatch.expiry_date <= now + timedelta(days=days),
            )
            .order_by(InventoryBatch.expiry_date.asc(), InventoryBatch.id.asc())
        )
        if warehouse_id is not None:
            query = query.where(InventoryBatch.warehouse_id == warehouse_id)
        result = await self.db.execute(query)
        return list(result.scalars().all())
