"""Service for Transactions module: every stock movement goes through here."""

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.documents import get_document_number
from src.core.exceptions import (
    InsufficientStockError,
    InvalidStateError,
    ItemNotFoundInWarehouseError,
    NotFoundError,
    ValidationError,
)
from src.core.inventory_settings.service import allow_negative_stock
from src.modules.batches.models import InventoryBatch
from src.modules.batches.service import BatchService
from src.modules.items.models import InventoryItem
from src.modules.items.service import ItemService
from src.modules.serials.models import InventorySerial, SerialStatus
from src.modules.serials.schemas import BulkSerialCreate
from src.modules.serials.service import SerialService
from src.modules.transactions.models import (
    InventoryTransaction,
    TransactionReason,
    TransactionType,
)
from src.modules.transactions.schemas import (
    PhysicalCountRequest,
    StockAdjustmentRequest,
    StockInRequest,
    StockOutRequest,
    StockTransferRequest,
)
from src.modules.warehouses.models import Warehouse
from src.modules.warehouses.service import WarehouseService
from src.shared.utils.dates import Clock, as_utc, utc_date, utc_now
from src.shared.utils.money import round_quantity, to_decimal
from src.shared.utils.stock_math import ZERO, line_total

logger = logging.getLogger(__name__)


def _qty(value: Decimal) -> str:
    """Quantity for notes: no trailing zeros, no exponent."""
    text = format(to_decimal(value), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


class TransactionService:
    """Stock-in, stock-out, transfer, adjustment and physical count.

    Each operation checks everything it needs first and only then mutates,
    so a refused request leaves items, batches and serials untouched.
    """

    def __init__(self, db: AsyncSession, clock: Clock = utc_now):
        self.db = db
        self.clock = clock
        self.items = ItemService(db)
        self.batches = BatchService(db, clock)
        self.serials = SerialService(db, clock)
        self.warehouses = WarehouseService(db)

    async def _load_item(self, item_id: int, warehouse_id: int) -> tuple[InventoryItem, Warehouse]:
        warehouse = await self.warehouses.get_warehouse(warehouse_id)
        item = await self.items.get_item_for_update(item_id)
        if item.warehouse_id != warehouse_id:
            raise ItemNotFoundInWarehouseError(item.uid, warehouse.uid)
        return item, warehouse

    async def _number_taken(self, number: str) -> bool:
        result = await self.db.execute(
            select(InventoryTransaction.id).where(InventoryTransaction.transaction_number == number)
        )
        return result.scalar_one_or_none() is not None

    async def generate_transaction_number(self, when: datetime) -> str:
        """Next PREFIX-YYYYMMDD-NNNN number for the UTC day of ``when``.

        If the counter ever hands out a number that is already taken (rows
        written before the counter existed), a millisecond suffix is added and
        bumped until it is free.
        """
        number = await get_document_number(
            self.db, settings.transaction_number_prefix, utc_date(when)
        )
        if not await self._number_taken(number):
            return number

        stamp = int(self.clock().timestamp() * 1000)
        while await self._number_taken(f"{number}-{stamp}"):
            stamp += 1
        suffixed = f"{number}-{stamp}"
        logger.warning("Transaction number %s already used, falling back to %s", number, suffixed)
        return suffixed

    async def _record(
        self,
        *,
        transaction_type: TransactionType,
        reason: TransactionReason | str,
        item: InventoryItem,
        warehouse_id: int,
        quantity: Decimal,
        unit_cost: Decimal,
        when: datetime,
        data,
        from_warehouse_id: int | None = None,
        to_warehouse_id: int | None = None,
        batch_id: int | None = None,
        serial_numbers: list[str] | None = None,
        notes: str | None = None,
    ) -> InventoryTransaction:
        """Append one transaction row; balance_after is the item's stock right now."""
        transaction = InventoryTransaction(
            transaction_number=await self.generate_transaction_number(when),
            transaction_type=transaction_type.value,
            transaction_reason=str(reason),
            inventory_item_id=item.id,
            warehouse_id=warehouse_id,
            from_warehouse_id=from_warehouse_id,
            to_warehouse_id=to_warehouse_id,
            quantity=quantity,
            balance_after=item.current_stock,
            unit_cost=unit_cost,
            total_cost=line_total(abs(quantity), unit_cost),
            batch_id=batch_id,
            serial_numbers=list(serial_numbers) if serial_numbers else None,
            reference_type=data.reference_type,
            reference_id=data.reference_id,
            reference_number=data.reference_number,
            transaction_date=when,
            notes=notes if notes is not None else data.notes,
            performed_by=data.performed_by,
        )
        self.db.add(transaction)
        await self.db.flush()
        return transaction

    def _check_serials_belong(
        self, serials: list[InventorySerial], item: InventoryItem, warehouse_id: int
    ) -> None:
        foreign = [
            s.serial_number
            for s in serials
            if s.inventory_item_id != item.id or s.warehouse_id != warehouse_id
        ]
        if foreign:
            raise ValidationError(
                f"Serials do not belong to item {item.sku} in warehouse {warehouse_id}: "
                f"{', '.join(foreign)}",
                field="serial_numbers",
            )

    @staticmethod
    def _check_serial_count(item: InventoryItem, serial_numbers: list[str], quantity: Decimal) -> None:
        """One distinct serial per unit whenever serials are named or the item is serial-tracked."""
        if not serial_numbers and not item.serial_tracking_enabled:
            return
        distinct = len(set(serial_numbers))
        if Decimal(distinct) != quantity:
            raise ValidationError(
                f"Item {item.sku}: {distinct} distinct serial numbers given "
                f"for quantity {_qty(quantity)}",
                field="serial_numbers",
            )

    async def _check_available(self, item: InventoryItem, quantity: Decimal) -> None:
        if item.available_stock < quantity and not await allow_negative_stock(self.db):
            raise InsufficientStockError(item.uid, quantity, item.available_stock)

    async def _explicit_batch(
        self, batch_id: int, item: InventoryItem, warehouse_id: int, quantity: Decimal
    ) -> InventoryBatch:
        result = await self.db.execute(
            select(InventoryBatch).where(InventoryBatch.id == batch_id).with_for_update()
        )
        batch = result.scalar_one_or_none()
        if not batch:
            raise NotFoundError("Batch", batch_id)
        if batch.inventory_item_id != item.id or batch.warehouse_id != warehouse_id:
            raise ValidationError(
                f"Batch {batch.batch_number} does not belong to item {item.sku} "
                f"in warehouse {warehouse_id}",
                field="batch_id",
            )
        if not batch.is_active:
            raise InvalidStateError(f"Batch {batch.batch_number} is inactive")
        if batch.is_expired:
            raise InvalidStateError(
                f"Batch {batch.batch_number} has expired",
                details={"batch_number": batch.batch_number},
            )
        if to_decimal(batch.available_quantity) < quantity:
            raise InsufficientStockError(
                item.uid, quantity, batch.available_quantity, scope=f"batch {batch.batch_number}"
            )
        return batch

    async def _plan_batches(
        self,
        item: InventoryItem,
        warehouse_id: int,
        quantity: Decimal,
        batch_id: int | None,
        strategy=None,
    ) -> list[tuple[InventoryBatch, Decimal]]:
        """Batches to draw ``quantity`` from; empty when the item is not batch-tracked."""
        if batch_id is not None:
            batch = await self._explicit_batch(batch_id, item, warehouse_id, quantity)
            return [(batch, quantity)]
        if item.batch_tracking_enabled:
            return await self.batches.plan_allocation(item.id, warehouse_id, quantity, strategy)
        return []

    @staticmethod
    def _plan_note(notes: str | None, plan: list[tuple[InventoryBatch, Decimal]]) -> str | None:
        if len(plan) < 2:
            return notes
        lines = ", ".join(f"{batch.batch_number} x {_qty(take)}" for batch, take in plan)
        return f"{notes}. Batches: {lines}" if notes else f"Batches: {lines}"

    # --- Operations ---

    async def stock_in(self, data: StockInRequest, commit: bool = True) -> InventoryTransaction:
        """Receive stock: raises current (and available) stock by ``quantity``.

        Batch-tracked items always land in a batch; when no batch number is
        given the transaction number is used. Serial-tracked items need one
        serial number per unit.
        """
        item, _ = await self._load_item(data.inventory_item_id, data.warehouse_id)
        quantity = round_quantity(data.quantity)
        unit_cost = data.unit_cost if data.unit_cost is not None else to_decimal(item.cost_price)
        when = as_utc(data.transaction_date) or self.clock()
        serial_numbers = [n.strip() for n in (data.serial_numbers or []) if n and n.strip()]

        self._check_serial_count(item, serial_numbers, quantity)
        if serial_numbers:
            await self.serials.ensure_serial_numbers_free(serial_numbers)
        if data.batch_number:
            existing = await self.batches.find_batch_by_number(
                item.id, data.warehouse_id, data.batch_number, lock=True
            )
            if existing is not None:
                self.batches.check_receivable(existing, data.expiry_date)

        await self.items.update_stock_quantities(
            item.id, item.current_stock + quantity, item.reserved_stock, commit=False
        )
        transaction = await self._record(
            transaction_type=TransactionType.STOCK_IN,
            reason=data.reason,
            item=item,
            warehouse_id=data.warehouse_id,
            quantity=quantity,
            unit_cost=unit_cost,
            when=when,
            data=data,
            serial_numbers=serial_numbers,
        )

        batch = None
        batch_number = data.batch_number or (
            transaction.transaction_number if item.batch_tracking_enabled else None
        )
        if batch_number:
            batch = await self.batches.receive_into_batch(
                item,
                data.warehouse_id,
                batch_number,
                quantity,
                cost_per_unit=unit_cost,
                received_date=when,
                expiry_date=data.expiry_date,
                manufacturing_date=data.manufacturing_date,
                lot_number=data.lot_number,
                supplier_id=data.supplier_id,
                supplier_name=data.supplier_name,
                purchase_order_number=data.reference_number,
                performed_by=data.performed_by,
            )
            transaction.batch_id = batch.id

        if serial_numbers:
            await self.serials.create_bulk_serials(
                BulkSerialCreate(
                    inventory_item_id=item.id,
                    warehouse_id=data.warehouse_id,
                    serial_numbers=serial_numbers,
                    batch_id=batch.id if batch else None,
                    received_date=when,
                    warranty_expiry_date=data.warranty_expiry_date,
                    cost_price=unit_cost,
                    selling_price=item.selling_price,
                    performed_by=data.performed_by,
                ),
                commit=False,
            )

        await self.db.flush()
        logger.info(
            "Stock in %s: %s x %s into warehouse %s",
            transaction.transaction_number,
            _qty(quantity),
            item.sku,
            data.warehouse_id,
        )
        if commit:
            await self.db.commit()
            await self.db.refresh(transaction)
        return transaction

    async def stock_out(self, data: StockOutRequest, commit: bool = True) -> InventoryTransaction:
        """Issue stock: lowers current (and available) stock by ``quantity``.

        Batch-tracked items draw from batches in the configured (or requested)
        consumption order, or from ``batch_id`` when given. Serials are marked
        SOLD when the request carries a reference.
        """
        item, _ = await self._load_item(data.inventory_item_id, data.warehouse_id)
        quantity = round_quantity(data.quantity)
        when = as_utc(data.transaction_date) or self.clock()
        unit_cost = to_decimal(item.cost_price)

        await self._check_available(item, quantity)

        serial_numbers = data.serial_numbers or []
        self._check_serial_count(item, serial_numbers, quantity)
        if serial_numbers:
            serials = await self.serials.require_serials(serial_numbers)
            self._check_serials_belong(serials, item, data.warehouse_id)
            self.serials.check_sellable(serials)

        plan = await self._plan_batches(
            item, data.warehouse_id, quantity, data.batch_id, data.strategy
        )

        for batch, take in plan:
            batch.consume(take, item_uid=item.uid)
        await self.items.update_stock_quantities(
            item.id, item.current_stock - quantity, item.reserved_stock, commit=False
        )
        transaction = await self._record(
            transaction_type=TransactionType.STOCK_OUT,
            reason=data.reason,
            item=item,
            warehouse_id=data.warehouse_id,
            quantity=quantity,
            unit_cost=unit_cost,
            when=when,
            data=data,
            batch_id=plan[0][0].id if len(plan) == 1 else None,
            serial_numbers=serial_numbers,
            notes=self._plan_note(data.notes, plan),
        )

        if serial_numbers and data.reference_type and data.reference_id:
            await self.serials.mark_serials_as_sold(
                serial_numbers,
                data.reference_type,
                data.reference_id,
                reference_number=data.reference_number,
                customer_id=data.customer_id,
                customer_name=data.customer_name,
                sold_at=when,
                performed_by=data.performed_by,
                commit=False,
            )

        logger.info(
            "Stock out %s: %s x %s from warehouse %s",
            transaction.transaction_number,
            _qty(quantity),
            item.sku,
            data.warehouse_id,
        )
        if commit:
            await self.db.commit()
            await self.db.refresh(transaction)
        return transaction

    async def transfer_stock(
        self, data: StockTransferRequest, commit: bool = True
    ) -> list[InventoryTransaction]:
        """Move stock between warehouses. Returns the source and destination legs.

        The destination row is the item for the same product in the target
        warehouse. Batches keep their number (and dates) on the other side.
        """
        if data.from_warehouse_id == data.to_warehouse_id:
            raise InvalidStateError("Source and destination warehouses must differ")

        source, from_warehouse = await self._load_item(data.inventory_item_id, data.from_warehouse_id)
        to_warehouse = await self.warehouses.require_active(data.to_warehouse_id)
        target = await self.items.find_item_in_warehouse(source, data.to_warehouse_id, lock=True)
        if target is None:
            raise ItemNotFoundInWarehouseError(source.uid, to_warehouse.uid)

        quantity = round_quantity(data.quantity)
        when = as_utc(data.transaction_date) or self.clock()
        await self._check_available(source, quantity)

        serial_numbers = data.serial_numbers or []
        self._check_serial_count(source, serial_numbers, quantity)
        if serial_numbers:
            serials = await self.serials.require_serials(serial_numbers)
            self._check_serials_belong(serials, source, data.from_warehouse_id)
            sold = [s.serial_number for s in serials if s.status == SerialStatus.SOLD]
            if sold:
                raise InvalidStateError(
                    f"Sold serials cannot be transferred: {', '.join(sold)}",
                    details={"serial_numbers": sold},
                )

        plan = await self._plan_batches(source, data.from_warehouse_id, quantity, data.batch_id)
        for batch, _ in plan:
            existing = await self.batches.find_batch_by_number(
                target.id, data.to_warehouse_id, batch.batch_number, lock=True
            )
            if existing is not None:
                self.batches.check_receivable(existing, batch.expiry_date)

        for batch, take in plan:
            batch.consume(take, item_uid=source.uid)
        await self.items.update_stock_quantities(
            source.id, source.current_stock - quantity, source.reserved_stock, commit=False
        )
        await self.items.update_stock_quantities(
            target.id, target.current_stock + quantity, target.reserved_stock, commit=False
        )

        suffix = f": {data.notes}" if data.notes else ""
        outgoing = await self._record(
            transaction_type=TransactionType.TRANSFER,
            reason=TransactionReason.TRANSFER,
            item=source,
            warehouse_id=data.from_warehouse_id,
            quantity=quantity,
            unit_cost=to_decimal(source.cost_price),
            when=when,
            data=data,
            from_warehouse_id=data.from_warehouse_id,
            to_warehouse_id=data.to_warehouse_id,
            batch_id=plan[0][0].id if len(plan) == 1 else None,
            serial_numbers=serial_numbers,
            notes=self._plan_note(f"Transfer to {to_warehouse.code}{suffix}", plan),
        )

        received: list[InventoryBatch] = []
        for batch, take in plan:
            received.append(
                await self.batches.receive_into_batch(
                    target,
                    data.to_warehouse_id,
                    batch.batch_number,
                    take,
                    cost_per_unit=batch.cost_per_unit,
                    received_date=batch.received_date,
                    expiry_date=batch.expiry_date,
                    manufacturing_date=batch.manufacturing_date,
                    lot_number=batch.lot_number,
                    supplier_id=batch.supplier_id,
                    supplier_name=batch.supplier_name,
                    purchase_order_number=batch.purchase_order_number,
                    performed_by=data.performed_by,
                )
            )

        incoming = await self._record(
            transaction_type=TransactionType.TRANSFER,
            reason=TransactionReason.TRANSFER,
            item=target,
            warehouse_id=data.to_warehouse_id,
            quantity=quantity,
            unit_cost=to_decimal(source.cost_price),
            when=when,
            data=data,
            from_warehouse_id=data.from_warehouse_id,
            to_warehouse_id=data.to_warehouse_id,
            batch_id=received[0].id if len(received) == 1 else None,
            serial_numbers=serial_numbers,
            notes=self._plan_note(f"Transfer from {from_warehouse.code}{suffix}", plan),
        )

        if serial_numbers:
            await self.serials.move_serials(
                serial_numbers,
                data.to_warehouse_id,
                inventory_item_id=target.id,
                performed_by=data.performed_by,
                commit=False,
            )

        logger.info(
            "Transfer %s/%s: %s x %s from %s to %s",
            outgoing.transaction_number,
            incoming.transaction_number,
            _qty(quantity),
            source.sku,
            from_warehouse.code,
            to_warehouse.code,
        )
        if commit:
            await self.db.commit()
            await self.db.refresh(outgoing)
            await self.db.refresh(incoming)
        return [outgoing, incoming]

    async def adjust_stock(
        self, data: StockAdjustmentRequest, commit: bool = True
    ) -> InventoryTransaction:
        """Apply a signed correction to current stock. Batches and serials are not touched."""
        item, _ = await self._load_item(data.inventory_item_id, data.warehouse_id)
        delta = round_quantity(data.quantity)
        if delta == 0:
            raise ValidationError("Adjustment quantity must be non-zero", field="quantity")
        when = as_utc(data.transaction_date) or self.clock()

        new_stock = to_decimal(item.current_stock) + delta
        if new_stock < 0 and not await allow_negative_stock(self.db):
            raise InsufficientStockError(item.uid, -delta, item.current_stock)

        if delta > 0:
            unit_cost = data.unit_cost if data.unit_cost is not None else to_decimal(item.cost_price)
        else:
            unit_cost = ZERO

        await self.items.update_stock_quantities(
            item.id, new_stock, item.reserved_stock, commit=False
        )
        transaction = await self._record(
            transaction_type=TransactionType.ADJUSTMENT,
            reason=data.reason,
            item=item,
            warehouse_id=data.warehouse_id,
            quantity=delta,
            unit_cost=unit_cost,
            when=when,
            data=data,
        )
        logger.info(
            "Adjustment %s: %s %s in warehouse %s (%s)",
            transaction.transaction_number,
            item.sku,
            _qty(delta),
            data.warehouse_id,
            data.reason,
        )
        if commit:
            await self.db.commit()
            await self.db.refresh(transaction)
        return transaction

    async def physical_count(
        self, data: PhysicalCountRequest, commit: bool = True
    ) -> InventoryTransaction:
        """Replace current stock with the counted quantity.

        A row is written even when the count matches, so every count is on record.
        """
        item, _ = await self._load_item(data.inventory_item_id, data.warehouse_id)
        counted = round_quantity(data.counted_quantity)
        system = round_quantity(item.current_stock)
        difference = counted - system
        when = as_utc(data.transaction_date) or self.clock()

        notes = (
            f"Physical count reconciliation. System: {_qty(system)}, "
            f"Counted: {_qty(counted)}, Difference: {_qty(difference)}"
        )
        if data.notes:
            notes = f"{notes}. {data.notes}"

        await self.items.update_stock_quantities(
            item.id, counted, item.reserved_stock, commit=False
        )
        transaction = await self._record(
            transaction_type=TransactionType.COUNT,
            reason=TransactionReason.COUNT_ADJUSTMENT,
            item=item,
            warehouse_id=data.warehouse_id,
            quantity=difference,
            unit_cost=to_decimal(item.cost_price) if difference > 0 else ZERO,
            when=when,
            data=data,
            notes=notes,
        )
        if difference != 0:
            logger.info("Count %s: %s %s", transaction.transaction_number, item.sku, notes)
        if commit:
            await self.db.commit()
            await self.db.refresh(transaction)
        return transaction

    # --- Queries ---

    async def get_transaction(self, transaction_id: int) -> InventoryTransaction:
        result = await self.db.execute(
            select(InventoryTransaction).where(InventoryTransaction.id == transaction_id)
        )
        transaction = result.scalar_one_or_none()
        if not transaction:
            raise NotFoundError("Transaction", transaction_id)
        return transaction

    async def get_transaction_by_uid(self, uid: str) -> InventoryTransaction:
        result = await self.db.execute(
            select(InventoryTransaction).where(InventoryTransaction.uid == uid)
        )
        transaction = result.scalar_one_or_none()
        if not transaction:
            raise NotFoundError("Transaction", uid)
        return transaction

    async def get_transaction_by_number(self, number: str) -> InventoryTransaction:
        result = await self.db.execute(
            select(InventoryTransaction).where(InventoryTransaction.transaction_number == number)
        )
        transaction = result.scalar_one_or_none()
        if not transaction:
            raise NotFoundError("Transaction", number)
        return transaction

    async def list_transactions(
        self,
        item_id: int | None = None,
        warehouse_id: int | None = None,
        transaction_type: TransactionType | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        page: int = 1,
        limit: int = 100,
    ) -> tuple[list[InventoryTransaction], int]:
        """List transactions, newest first. ``date_to`` is exclusive."""
        query = select(InventoryTransaction).order_by(
            InventoryTransaction.transaction_date.desc(), InventoryTransaction.id.desc()
        )
        if item_id is not None:
            query = query.where(InventoryTransaction.inventory_item_id == item_id)
        if warehouse_id is not None:
            query = query.where(InventoryTransaction.warehouse_id == warehouse_id)
        if transaction_type is not None:
            query = query.where(InventoryTransaction.transaction_type == transaction_type.value)
        if date_from is not None:
            query = query.where(InventoryTransaction.transaction_date >= as_utc(date_from))
        if date_to is not None:
            query = query.where(InventoryTransaction.transaction_date < as_utc(date_to))

        count_query = select(func.count()).select_from(query.subquery())
        total_result = await self.db.execute(count_query)
        total = total_result.scalar() or 0

        offset = (page - 1) * limit
        result = await self.db.execute(query.offset(offset).limit(limit))
        return list(result.scalars().all()), total

    async def get_transactions_by_reference(
        self, reference_type: str, reference_id: str
    ) -> list[InventoryTransaction]:
        result = await self.db.execute(
            select(InventoryTransaction)
            .where(
                InventoryTransaction.reference_type == reference_type,
                InventoryTransaction.reference_id == reference_id,
            )
            .order_by(InventoryTransaction.transaction_date.asc(), InventoryTransaction.id.asc())
        )
        return list(result.scalars().all())

    async def get_transactions_for_item_between(
        self, item_id: int, warehouse_id: int, start: datetime, end: datetime
    ) -> list[InventoryTransaction]:
        """Transactions of one item in one warehouse within ``[start, end)``, oldest first."""
        result = await self.db.execute(
            select(InventoryTransaction)
            .where(
                InventoryTransaction.inventory_item_id == item_id,
                InventoryTransaction.warehouse_id == warehouse_id,
                InventoryTransaction.transaction_date >= as_utc(start),
                InventoryTransaction.transaction_date < as_utc(end),
            )
            .order_by(InventoryTransaction.transaction_date.asc(), InventoryTransaction.id.asc())
        )
        return list(result.scalars().all())

    async def get_transactions_between(
        self, start: datetime, end: datetime, warehouse_id: int | None = None
    ) -> list[InventoryTransaction]:
        query = (
            select(InventoryTransaction)
            .where(
                InventoryTransaction.transaction_date >= as_utc(start),
                InventoryTransaction.transaction_date < as_utc(end),
            )
            .order_by(InventoryTransaction.transaction_date.asc(), InventoryTransaction.id.asc())
        )
        if warehouse_id is not None:
            query = query.where(InventoryTransaction.warehouse_id == warehouse_id)
        result = await self.db.execute(query)
        return list(result.scalars().all())
