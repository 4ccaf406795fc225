"""Service for Ledger module: daily balances derived from transactions."""

import logging
from collections.abc import Sequence
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import NotFoundError, ValidationError
from src.modules.items.service import ItemService
from src.modules.ledger.models import InventoryLedger
from src.modules.transactions.models import InventoryTransaction, TransactionType
from src.modules.transactions.service import TransactionService
from src.shared.utils.dates import Clock, date_range, utc_date, utc_day_bounds, utc_now
from src.shared.utils.money import round_money, round_quantity, to_decimal
from src.shared.utils.stock_math import (
    ZERO,
    closing_stock,
    closing_value,
    split_signed,
    weighted_average_cost,
)

logger = logging.getLogger(__name__)


class LedgerService:
    """Builds and reads the per-day ledger.

    Generation only reads transactions; live stock is never touched. Rows are
    upserted by (item, warehouse, day), so regenerating a day overwrites it.
    """

    def __init__(self, db: AsyncSession, clock: Clock = utc_now):
        self.db = db
        self.clock = clock
        self.items = ItemService(db)
        self.transactions = TransactionService(db, clock)

    async def _previous_closing(self, item_id: int, warehouse_id: int, ledger_date: date) -> Decimal:
        result = await self.db.execute(
            select(InventoryLedger.closing_stock)
            .where(
                InventoryLedger.inventory_item_id == item_id,
                InventoryLedger.warehouse_id == warehouse_id,
                InventoryLedger.ledger_date < ledger_date,
            )
            .order_by(InventoryLedger.ledger_date.desc())
            .limit(1)
        )
        previous = result.scalar_one_or_none()
        return to_decimal(previous) if previous is not None else ZERO

    async def generate_ledger_entry(
        self,
        item_id: int,
        warehouse_id: int,
        ledger_date: date,
        transactions: Sequence[InventoryTransaction],
        commit: bool = True,
    ) -> InventoryLedger:
        """Compute the row for one key from that day's transactions.

        The opening balance is seeded only when the row is created: from the
        latest earlier row's closing balance, or zero for the first row.
        """
        item = await self.items.get_item(item_id)
        ledger = await self.find_ledger(item_id, warehouse_id, ledger_date, lock=True)
        if ledger is None:
            ledger = InventoryLedger(
                inventory_item_id=item_id,
                warehouse_id=warehouse_id,
                ledger_date=ledger_date,
                opening_stock=await self._previous_closing(item_id, warehouse_id, ledger_date),
            )
            self.db.add(ledger)

        buckets = {
            "stock_in": ZERO,
            "stock_out": ZERO,
            "transfer_in": ZERO,
            "transfer_out": ZERO,
            "adjustment_in": ZERO,
            "adjustment_out": ZERO,
        }
        for transaction in transactions:
            quantity = to_decimal(transaction.quantity)
            kind = transaction.transaction_type
            if kind == TransactionType.STOCK_IN:
                buckets["stock_in"] += quantity
            elif kind == TransactionType.STOCK_OUT:
                buckets["stock_out"] += quantity
            elif kind == TransactionType.TRANSFER:
                if transaction.is_transfer_in:
                    buckets["transfer_in"] += quantity
                elif transaction.is_transfer_out:
                    buckets["transfer_out"] += quantity
            elif kind in (TransactionType.ADJUSTMENT, TransactionType.COUNT):
                inbound, outbound = split_signed(quantity)
                buckets["adjustment_in"] += inbound
                buckets["adjustment_out"] += outbound

        for name, value in buckets.items():
            setattr(ledger, name, round_quantity(value))

        ledger.closing_stock = closing_stock(to_decimal(ledger.opening_stock), **buckets)

        average = weighted_average_cost(
            (t.quantity, t.total_cost)
            for t in transactions
            if t.transaction_type == TransactionType.STOCK_IN and to_decimal(t.unit_cost) > 0
        )
        ledger.average_cost = average if average is not None else round_money(item.cost_price)
        ledger.closing_value = closing_value(ledger.closing_stock, ledger.average_cost)

        await self.db.flush()
        if commit:
            await self.db.commit()
            await self.db.refresh(ledger)
        return ledger

    async def generate_daily_ledger_for_date(self, ledger_date: date, commit: bool = True) -> int:
        """One row per (item, warehouse) that moved on ``ledger_date``. Returns the row count."""
        start, end = utc_day_bounds(ledger_date)
        transactions = await self.transactions.get_transactions_between(start, end)

        grouped: dict[tuple[int, int], list[InventoryTransaction]] = {}
        for transaction in transactions:
            key = (transaction.inventory_item_id, transaction.warehouse_id)
            grouped.setdefault(key, []).append(transaction)

        for (item_id, warehouse_id), rows in grouped.items():
            await self.generate_ledger_entry(item_id, warehouse_id, ledger_date, rows, commit=False)

        if commit:
            await self.db.commit()
        logger.info("Generated %d ledger entries for %s", len(grouped), ledger_date.isoformat())
        return len(grouped)

    async def generate_ledger_for_date_range(self, start: date, end: date) -> int:
        """Backfill ``start``..``end`` inclusive, oldest day first, one commit per day."""
        if start > end:
            raise ValidationError("Start date must not be after end date", field="start_date")
        total = 0
        for day in date_range(start, end):
            total += await self.generate_daily_ledger_for_date(day)
        logger.info(
            "Generated %d ledger entries for %s..%s", total, start.isoformat(), end.isoformat()
        )
        return total

    async def generate_daily_ledger_for_previous_day(self) -> int:
        return await self.generate_daily_ledger_for_date(utc_date(self.clock()) - timedelta(days=1))

    # --- Queries ---

    async def get_ledger(self, ledger_id: int) -> InventoryLedger:
        result = await self.db.execute(select(InventoryLedger).where(InventoryLedger.id == ledger_id))
        ledger = result.scalar_one_or_none()
        if not ledger:
            raise NotFoundError("Ledger", ledger_id)
        return ledger

    async def get_ledger_by_uid(self, uid: str) -> InventoryLedger:
        result = await self.db.execute(select(InventoryLedger).where(InventoryLedger.uid == uid))
        ledger = result.scalar_one_or_none()
        if not ledger:
            raise NotFoundError("Ledger", uid)
        return ledger

    async def find_ledger(
        self, item_id: int, warehouse_id: int, ledger_date: date, lock: bool = False
    ) -> InventoryLedger | None:
        query = select(InventoryLedger).where(
            InventoryLedger.inventory_item_id == item_id,
            InventoryLedger.warehouse_id == warehouse_id,
            InventoryLedger.ledger_date == ledger_date,
        )
        if lock:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_ledgers_by_date_range(
        self, item_id: int, warehouse_id: int, start: date, end: date
    ) -> list[InventoryLedger]:
        """Rows of one key with ``start <= ledger_date <= end``, oldest first."""
        result = await self.db.execute(
            select(InventoryLedger)
            .where(
                InventoryLedger.inventory_item_id == item_id,
                InventoryLedger.warehouse_id == warehouse_id,
                InventoryLedger.ledger_date >= start,
                InventoryLedger.ledger_date <= end,
            )
            .order_by(InventoryLedger.ledger_date.asc())
        )
        return list(result.scalars().all())

    async def get_warehouse_ledger(self, warehouse_id: int, ledger_date: date) -> list[InventoryLedger]:
        result = await self.db.execute(
            select(InventoryLedger)
            .where(
                InventoryLedger.warehouse_id == warehouse_id,
                InventoryLedger.ledger_date == ledger_date,
            )
            .order_by(InventoryLedger.inventory_item_id.asc())
        )
        return list(result.scalars().all())

    async def get_daily_ledger(self, ledger_date: date) -> list[InventoryLedger]:
        result = await self.db.execute(
            select(InventoryLedger)
            .where(InventoryLedger.ledger_date == ledger_date)
            .order_by(InventoryLedger.warehouse_id.asc(), InventoryLedger.inventory_item_id.asc())
        )
        return list(result.scalars().all())

    async def get_items_with_movement(self, ledger_date: date) -> list[InventoryLedger]:
        """Rows of the day where any bucket is non-zero."""
        return [ledger for ledger in await self.get_daily_ledger(ledger_date) if ledger.has_movement]

    async def get_warehouse_stock_value(self, warehouse_id: int, ledger_date: date) -> Decimal:
        result = await self.db.execute(
            select(func.coalesce(func.sum(InventoryLedger.closing_value), 0)).where(
                InventoryLedger.warehouse_id == warehouse_id,
                InventoryLedger.ledger_date == ledger_date,
            )
        )
        return round_money(result.scalar() or 0)

    async def get_warehouse_stock_quantity(self, warehouse_id: int, ledger_date: date) -> Decimal:
        result = await self.db.execute(
            select(func.coalesce(func.sum(InventoryLedger.closing_stock), 0)).where(
                InventoryLedger.warehouse_id == warehouse_id,
                InventoryLedger.ledger_date == ledger_date,
            )
        )
        return round_quantity(result.scalar() or 0)
