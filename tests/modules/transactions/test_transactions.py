"""Tests for Transactions module."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.documents.models import DocumentSequence
from src.core.exceptions import (
    DuplicateError,
    InsufficientStockError,
    InvalidStateError,
    ItemNotFoundInWarehouseError,
    ValidationError,
)
from src.core.inventory_settings.schemas import InventoryConfigUpdate
from src.core.inventory_settings.service import update_inventory_config
from src.modules.batches.service import BatchService
from src.modules.items.schemas import ItemCreate
from src.modules.items.service import ItemService
from src.modules.serials.models import SerialStatus
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
from src.modules.transactions.service import TransactionService
from src.modules.warehouses.service import WarehouseService
from src.shared.utils.dates import as_utc


def _utc(year: int, month: int, day: int, hour: int = 12) -> datetime:
    return datetime(year, month, day, hour, tzinfo=UTC)


async def _count_transactions(db_session: AsyncSession) -> int:
    result = await db_session.execute(select(func.count()).select_from(InventoryTransaction))
    return result.scalar() or 0


class TestStockInOut:
    """Tests for receiving and issuing stock."""

    async def _create_item(self, db_session: AsyncSession, **kwargs) -> tuple[int, int]:
        """Helper to create a warehouse and an item."""
        warehouse = await WarehouseService(db_session).create_warehouse("MAIN", "Main")
        item = await ItemService(db_session).create_item(
            ItemCreate(
                sku=kwargs.pop("sku", "WIDGET"),
                name="Widget",
                warehouse_id=warehouse.id,
                cost_price=Decimal("10.00"),
                **kwargs,
            )
        )
        return item.id, warehouse.id

    async def test_reservation_round_trip(self, db_session: AsyncSession, clock):
        item_id, warehouse_id = await self._create_item(db_session)
        service = TransactionService(db_session, clock)

        stock_in = await service.stock_in(
            StockInRequest(inventory_item_id=item_id, warehouse_id=warehouse_id, quantity=Decimal("100"))
        )
        assert stock_in.transaction_type == TransactionType.STOCK_IN
        assert stock_in.balance_after == Decimal("100")
        assert stock_in.unit_cost == Decimal("10.00")
        assert stock_in.total_cost == Decimal("1000.00")

        await ItemService(db_session).reserve_stock(item_id, Decimal("30"))
        stock_out = await service.stock_out(
            StockOutRequest(inventory_item_id=item_id, warehouse_id=warehouse_id, quantity=Decimal("20"))
        )
        assert stock_out.balance_after == Decimal("80")
        assert stock_out.transaction_reason == TransactionReason.SALE

        item = await ItemService(db_session).get_item(item_id)
        assert (item.current_stock, item.reserved_stock, item.available_stock) == (
            Decimal("80"),
            Decimal("30"),
            Decimal("50"),
        )

        with pytest.raises(InsufficientStockError):
            await service.stock_out(
                StockOutRequest(inventory_item_id=item_id, warehouse_id=warehouse_id, quantity=Decimal("60"))
            )

        item = await ItemService(db_session).get_item(item_id)
        assert (item.current_stock, item.reserved_stock, item.available_stock) == (
            Decimal("80"),
            Decimal("30"),
            Decimal("50"),
        )
        assert await _count_transactions(db_session) == 2

    async def test_negative_stock_allowed_by_config(self, db_session: AsyncSession, clock):
        item_id, warehouse_id = await self._create_item(db_session)
        await update_inventory_config(db_session, InventoryConfigUpdate(allow_negative_stock=True))

        stock_out = await TransactionService(db_session, clock).stock_out(
            StockOutRequest(inventory_item_id=item_id, warehouse_id=warehouse_id, quantity=Decimal("5"))
        )

        assert stock_out.balance_after == Decimal("-5")

    async def test_item_must_be_in_warehouse(self, db_session: AsyncSession, clock):
        item_id, _ = await self._create_item(db_session)
        other = await WarehouseService(db_session).create_warehouse("EAST", "East")

        with pytest.raises(ItemNotFoundInWarehouseError):
            await TransactionService(db_session, clock).stock_in(
                StockInRequest(inventory_item_id=item_id, warehouse_id=other.id, quantity=Decimal("1"))
            )

    async def test_transaction_numbers_are_daily(self, db_session: AsyncSession, clock):
        item_id, warehouse_id = await self._create_item(db_session)
        service = TransactionService(db_session, clock)

        first = await service.stock_in(
            StockInRequest(inventory_item_id=item_id, warehouse_id=warehouse_id, quantity=Decimal("1"))
        )
        second = await service.stock_in(
            StockInRequest(inventory_item_id=item_id, warehouse_id=warehouse_id, quantity=Decimal("1"))
        )
        backdated = await service.stock_in(
            StockInRequest(
                inventory_item_id=item_id,
                warehouse_id=warehouse_id,
                quantity=Decimal("1"),
                transaction_date=_utc(2024, 1, 19),
            )
        )

        assert first.transaction_number == "TXN-20240315-0001"
        assert second.transaction_number == "TXN-20240315-0002"
        assert backdated.transaction_number == "TXN-20240119-0001"

    async def test_reissued_number_gets_free_suffix(self, db_session: AsyncSession, clock):
        item_id, warehouse_id = await self._create_item(db_session)
        service = TransactionService(db_session, clock)

        numbers = []
        for _ in range(3):
            txn = await service.stock_in(
                StockInRequest(inventory_item_id=item_id, warehouse_id=warehouse_id, quantity=Decimal("1"))
            )
            numbers.append(txn.transaction_number)
            # rewind the counter so the next number collides
            result = await db_session.execute(
                select(DocumentSequence).where(DocumentSequence.prefix == "TXN")
            )
            result.scalar_one().last_number = 0
            await db_session.commit()

        assert numbers[0] == "TXN-20240315-0001"
        assert all(number.startswith("TXN-20240315-0001-") for number in numbers[1:])
        assert len(set(numbers)) == 3
        assert await _count_transactions(db_session) == 3

    async def test_references_and_lookups(self, db_session: AsyncSession, clock):
        item_id, warehouse_id = await self._create_item(db_session)
        service = TransactionService(db_session, clock)
        await service.stock_in(
            StockInRequest(inventory_item_id=item_id, warehouse_id=warehouse_id, quantity=Decimal("10"))
        )
        out = await service.stock_out(
            StockOutRequest(
                inventory_item_id=item_id,
                warehouse_id=warehouse_id,
                quantity=Decimal("2"),
                reference_type="INVOICE",
                reference_id="INV-1",
            )
        )

        by_reference = await service.get_transactions_by_reference("INVOICE", "INV-1")
        assert [t.id for t in by_reference] == [out.id]
        assert (await service.get_transaction_by_number(out.transaction_number)).id == out.id
        assert (await service.get_transaction_by_uid(out.uid)).id == out.id

        transactions, total = await service.list_transactions(
            item_id=item_id, transaction_type=TransactionType.STOCK_OUT
        )
        assert total == 1
        assert transactions[0].id == out.id

    async def test_list_transactions_date_window(self, db_session: AsyncSession, clock):
        item_id, warehouse_id = await self._create_item(db_session)
        service = TransactionService(db_session, clock)
        for day in (1, 2, 3):
            await service.stock_in(
                StockInRequest(
                    inventory_item_id=item_id,
                    warehouse_id=warehouse_id,
                    quantity=Decimal("1"),
                    transaction_date=_utc(2024, 3, day),
                )
            )

        transactions, total = await service.list_transactions(
            date_from=_utc(2024, 3, 1, 0), date_to=_utc(2024, 3, 3, 0)
        )
        assert total == 2
        # newest first
        assert transactions[0].transaction_number == "TXN-20240302-0001"

        between = await service.get_transactions_for_item_between(
            item_id, warehouse_id, _utc(2024, 3, 2, 0), _utc(2024, 3, 4, 0)
        )
        assert [t.transaction_number for t in between] == ["TXN-20240302-0001", "TXN-20240303-0001"]


class TestAdjustmentAndCount:
    """Tests for adjustments and physical counts."""

    async def _create_stocked_item(self, db_session: AsyncSession, clock, quantity: str) -> tuple[int, int]:
        warehouse = await WarehouseService(db_session).create_warehouse("MAIN", "Main")
        item = await ItemService(db_session).create_item(
            ItemCreate(sku="BOLT", name="Bolt", warehouse_id=warehouse.id, cost_price=Decimal("2.50"))
        )
        await TransactionService(db_session, clock).stock_in(
            StockInRequest(inventory_item_id=item.id, warehouse_id=warehouse.id, quantity=Decimal(quantity))
        )
        return item.id, warehouse.id

    async def test_adjustment_signed(self, db_session: AsyncSession, clock):
        item_id, warehouse_id = await self._create_stocked_item(db_session, clock, "5")
        service = TransactionService(db_session, clock)

        up = await service.adjust_stock(
            StockAdjustmentRequest(inventory_item_id=item_id, warehouse_id=warehouse_id, quantity=Decimal("3"))
        )
        assert up.transaction_type == TransactionType.ADJUSTMENT
        assert up.quantity == Decimal("3")
        assert up.balance_after == Decimal("8")
        assert up.unit_cost == Decimal("2.50")

        down = await service.adjust_stock(
            StockAdjustmentRequest(
                inventory_item_id=item_id,
                warehouse_id=warehouse_id,
                quantity=Decimal("-2"),
                reason=TransactionReason.DAMAGE,
            )
        )
        assert down.quantity == Decimal("-2")
        assert down.balance_after == Decimal("6")
        assert down.unit_cost == 0
        assert down.transaction_reason == "DAMAGE"

    async def test_adjustment_below_zero_refused(self, db_session: AsyncSession, clock):
        item_id, warehouse_id = await self._create_stocked_item(db_session, clock, "5")

        with pytest.raises(InsufficientStockError):
            await TransactionService(db_session, clock).adjust_stock(
                StockAdjustmentRequest(inventory_item_id=item_id, warehouse_id=warehouse_id, quantity=Decimal("-10"))
            )

        assert (await ItemService(db_session).get_item(item_id)).current_stock == Decimal("5")

    def test_zero_adjustment_rejected_by_schema(self):
        with pytest.raises(ValueError):
            StockAdjustmentRequest(inventory_item_id=1, warehouse_id=1, quantity=Decimal("0"))

    async def test_physical_count(self, db_session: AsyncSession, clock):
        item_id, warehouse_id = await self._create_stocked_item(db_session, clock, "100")

        count = await TransactionService(db_session, clock).physical_count(
            PhysicalCountRequest(
                inventory_item_id=item_id,
                warehouse_id=warehouse_id,
                counted_quantity=Decimal("95"),
                notes="Aisle 4",
            )
        )

        assert count.transaction_type == TransactionType.COUNT
        assert count.transaction_reason == TransactionReason.COUNT_ADJUSTMENT
        assert count.quantity == Decimal("-5")
        assert count.balance_after == Decimal("95")
        assert count.notes == (
            "Physical count reconciliation. System: 100, Counted: 95, Difference: -5. Aisle 4"
        )

    async def test_matching_count_still_recorded(self, db_session: AsyncSession, clock):
        item_id, warehouse_id = await self._create_stocked_item(db_session, clock, "7")

        count = await TransactionService(db_session, clock).physical_count(
            PhysicalCountRequest(inventory_item_id=item_id, warehouse_id=warehouse_id, counted_quantity=Decimal("7"))
        )

        assert count.quantity == 0
        assert count.notes == "Physical count reconciliation. System: 7, Counted: 7, Difference: 0"
        assert await _count_transactions(db_session) == 2


class TestBatchAndSerialMovements:
    """Tests for stock movements of batch- and serial-tracked items."""

    async def _create_item(self, db_session: AsyncSession, **kwargs) -> tuple[int, int]:
        warehouse = await WarehouseService(db_session).create_warehouse("MAIN", "Main")
        item = await ItemService(db_session).create_item(
            ItemCreate(sku="ITEM", name="Tracked item", warehouse_id=warehouse.id, **kwargs)
        )
        return item.id, warehouse.id

    async def test_batch_tracked_stock_in_without_number(self, db_session: AsyncSession, clock):
        item_id, warehouse_id = await self._create_item(db_session, batch_tracking_enabled=True)

        stock_in = await TransactionService(db_session, clock).stock_in(
            StockInRequest(inventory_item_id=item_id, warehouse_id=warehouse_id, quantity=Decimal("4"))
        )

        batch = await BatchService(db_session, clock).get_batch(stock_in.batch_id)
        assert batch.batch_number == stock_in.transaction_number
        assert batch.available_quantity == Decimal("4")

    async def test_stock_in_tops_up_existing_batch(self, db_session: AsyncSession, clock):
        item_id, warehouse_id = await self._create_item(db_session, batch_tracking_enabled=True)
        service = TransactionService(db_session, clock)
        for _ in range(2):
            await service.stock_in(
                StockInRequest(
                    inventory_item_id=item_id,
                    warehouse_id=warehouse_id,
                    quantity=Decimal("5"),
                    batch_number="LOT-A",
                )
            )

        batch = await BatchService(db_session, clock).get_batch_by_number(item_id, warehouse_id, "LOT-A")
        assert batch.total_quantity == Decimal("10")
        assert batch.available_quantity == Decimal("10")

    async def test_batch_tracked_stock_out_spans_batches(self, db_session: AsyncSession, clock):
        item_id, warehouse_id = await self._create_item(db_session, batch_tracking_enabled=True)
        service = TransactionService(db_session, clock)
        for number, day in [("B2", 10), ("B1", 1)]:
            await service.stock_in(
                StockInRequest(
                    inventory_item_id=item_id,
                    warehouse_id=warehouse_id,
                    quantity=Decimal("10"),
                    batch_number=number,
                    transaction_date=_utc(2024, 3, day),
                )
            )

        stock_out = await service.stock_out(
            StockOutRequest(inventory_item_id=item_id, warehouse_id=warehouse_id, quantity=Decimal("15"))
        )

        assert stock_out.batch_id is None
        assert stock_out.notes == "Batches: B1 x 10, B2 x 5"
        batches = BatchService(db_session, clock)
        assert (await batches.get_batch_by_number(item_id, warehouse_id, "B1")).available_quantity == 0
        assert (await batches.get_batch_by_number(item_id, warehouse_id, "B2")).available_quantity == Decimal("5")

    async def test_batch_stock_out_from_explicit_batch(self, db_session: AsyncSession, clock):
        item_id, warehouse_id = await self._create_item(db_session, batch_tracking_enabled=True)
        service = TransactionService(db_session, clock)
        first = await service.stock_in(
            StockInRequest(inventory_item_id=item_id, warehouse_id=warehouse_id, quantity=Decimal("3"), batch_number="B1")
        )
        second = await service.stock_in(
            StockInRequest(inventory_item_id=item_id, warehouse_id=warehouse_id, quantity=Decimal("3"), batch_number="B2")
        )

        stock_out = await service.stock_out(
            StockOutRequest(
                inventory_item_id=item_id,
                warehouse_id=warehouse_id,
                quantity=Decimal("2"),
                batch_id=second.batch_id,
            )
        )
        assert stock_out.batch_id == second.batch_id

        with pytest.raises(InsufficientStockError) as exc:
            await service.stock_out(
                StockOutRequest(
                    inventory_item_id=item_id,
                    warehouse_id=warehouse_id,
                    quantity=Decimal("4"),
                    batch_id=first.batch_id,
                )
            )
        item = await ItemService(db_session).get_item(item_id)
        assert exc.value.details["item_id"] == item.uid

    async def test_expired_batch_refuses_stock(self, db_session: AsyncSession, clock):
        item_id, warehouse_id = await self._create_item(
            db_session, batch_tracking_enabled=True, expiry_tracking_enabled=True
        )
        service = TransactionService(db_session, clock)
        stock_in = await service.stock_in(
            StockInRequest(
                inventory_item_id=item_id,
                warehouse_id=warehouse_id,
                quantity=Decimal("5"),
                batch_number="OLD",
                expiry_date=_utc(2024, 2, 1),
            )
        )
        batches = BatchService(db_session, clock)
        assert (await batches.get_batch(stock_in.batch_id)).is_expired is True

        with pytest.raises(InvalidStateError):
            await service.stock_in(
                StockInRequest(
                    inventory_item_id=item_id,
                    warehouse_id=warehouse_id,
                    quantity=Decimal("10"),
                    batch_number="OLD",
                    expiry_date=_utc(2025, 2, 1),
                )
            )
        with pytest.raises(InvalidStateError):
            await service.stock_out(
                StockOutRequest(
                    inventory_item_id=item_id,
                    warehouse_id=warehouse_id,
                    quantity=Decimal("1"),
                    batch_id=stock_in.batch_id,
                )
            )

        batch = await batches.get_batch(stock_in.batch_id)
        assert (batch.total_quantity, batch.available_quantity) == (Decimal("5"), Decimal("5"))
        assert (await ItemService(db_session).get_item(item_id)).current_stock == Decimal("5")
        assert await _count_transactions(db_session) == 1

    async def test_stock_in_with_other_expiry_needs_new_batch(self, db_session: AsyncSession, clock):
        item_id, warehouse_id = await self._create_item(
            db_session, batch_tracking_enabled=True, expiry_tracking_enabled=True
        )
        service = TransactionService(db_session, clock)
        await service.stock_in(
            StockInRequest(
                inventory_item_id=item_id,
                warehouse_id=warehouse_id,
                quantity=Decimal("5"),
                batch_number="LOT-A",
                expiry_date=_utc(2025, 1, 1),
            )
        )

        with pytest.raises(ValidationError) as exc:
            await service.stock_in(
                StockInRequest(
                    inventory_item_id=item_id,
                    warehouse_id=warehouse_id,
                    quantity=Decimal("5"),
                    batch_number="LOT-A",
                    expiry_date=_utc(2025, 6, 1),
                )
            )
        assert exc.value.details["field"] == "expiry_date"

        batch = await BatchService(db_session, clock).get_batch_by_number(item_id, warehouse_id, "LOT-A")
        assert batch.total_quantity == Decimal("5")
        assert as_utc(batch.expiry_date) == _utc(2025, 1, 1)
        assert (await ItemService(db_session).get_item(item_id)).current_stock == Decimal("5")
        assert await _count_transactions(db_session) == 1

    async def test_batch_shortfall_leaves_state_unchanged(self, db_session: AsyncSession, clock):
        item_id, warehouse_id = await self._create_item(db_session, batch_tracking_enabled=True)
        service = TransactionService(db_session, clock)
        await service.stock_in(
            StockInRequest(inventory_item_id=item_id, warehouse_id=warehouse_id, quantity=Decimal("10"), batch_number="B1")
        )
        await update_inventory_config(db_session, InventoryConfigUpdate(allow_negative_stock=True))

        with pytest.raises(InsufficientStockError):
            await service.stock_out(
                StockOutRequest(inventory_item_id=item_id, warehouse_id=warehouse_id, quantity=Decimal("12"))
            )

        assert (await ItemService(db_session).get_item(item_id)).current_stock == Decimal("10")
        batch = await BatchService(db_session, clock).get_batch_by_number(item_id, warehouse_id, "B1")
        assert batch.available_quantity == Decimal("10")

    async def test_serial_stock_in_requires_one_number_per_unit(self, db_session: AsyncSession, clock):
        item_id, warehouse_id = await self._create_item(db_session, serial_tracking_enabled=True)

        with pytest.raises(ValidationError):
            await TransactionService(db_session, clock).stock_in(
                StockInRequest(
                    inventory_item_id=item_id,
                    warehouse_id=warehouse_id,
                    quantity=Decimal("2"),
                    serial_numbers=["S1"],
                )
            )

        assert (await ItemService(db_session).get_item(item_id)).current_stock == 0

    async def test_serial_stock_in_rejects_known_numbers(self, db_session: AsyncSession, clock):
        item_id, warehouse_id = await self._create_item(db_session, serial_tracking_enabled=True)
        service = TransactionService(db_session, clock)
        await service.stock_in(
            StockInRequest(inventory_item_id=item_id, warehouse_id=warehouse_id, quantity=Decimal("1"), serial_numbers=["S1"])
        )

        with pytest.raises(DuplicateError):
            await service.stock_in(
                StockInRequest(
                    inventory_item_id=item_id,
                    warehouse_id=warehouse_id,
                    quantity=Decimal("2"),
                    serial_numbers=["S2", "S1"],
                )
            )

        assert (await ItemService(db_session).get_item(item_id)).current_stock == Decimal("1")
        assert await _count_transactions(db_session) == 1

    async def test_serial_stock_out_marks_sold(self, db_session: AsyncSession, clock):
        item_id, warehouse_id = await self._create_item(db_session, serial_tracking_enabled=True)
        service = TransactionService(db_session, clock)
        await service.stock_in(
            StockInRequest(
                inventory_item_id=item_id,
                warehouse_id=warehouse_id,
                quantity=Decimal("2"),
                serial_numbers=["S1", "S2"],
            )
        )

        stock_out = await service.stock_out(
            StockOutRequest(
                inventory_item_id=item_id,
                warehouse_id=warehouse_id,
                quantity=Decimal("1"),
                serial_numbers=["S1"],
                reference_type="INVOICE",
                reference_id="INV-9",
                customer_id="C1",
            )
        )

        assert stock_out.serial_numbers == ["S1"]
        serials = SerialService(db_session, clock)
        sold = await serials.get_serial_by_number("S1")
        assert sold.status == SerialStatus.SOLD
        assert sold.sold_reference_id == "INV-9"
        assert (await serials.get_serial_by_number("S2")).status == SerialStatus.AVAILABLE

        with pytest.raises(InvalidStateError):
            await service.stock_out(
                StockOutRequest(
                    inventory_item_id=item_id,
                    warehouse_id=warehouse_id,
                    quantity=Decimal("1"),
                    serial_numbers=["S1"],
                )
            )

    async def test_serial_stock_out_needs_one_number_per_unit(self, db_session: AsyncSession, clock):
        item_id, warehouse_id = await self._create_item(db_session, serial_tracking_enabled=True)
        service = TransactionService(db_session, clock)
        await service.stock_in(
            StockInRequest(
                inventory_item_id=item_id,
                warehouse_id=warehouse_id,
                quantity=Decimal("3"),
                serial_numbers=["S1", "S2", "S3"],
            )
        )

        for quantity, serial_numbers in [("1", ["S1", "S2", "S3"]), ("2", ["S1", "S1"]), ("1", None)]:
            with pytest.raises(ValidationError) as exc:
                await service.stock_out(
                    StockOutRequest(
                        inventory_item_id=item_id,
                        warehouse_id=warehouse_id,
                        quantity=Decimal(quantity),
                        serial_numbers=serial_numbers,
                        reference_type="INVOICE",
                        reference_id="INV-1",
                    )
                )
            assert exc.value.details["field"] == "serial_numbers"

        assert (await ItemService(db_session).get_item(item_id)).current_stock == Decimal("3")
        serials = SerialService(db_session, clock)
        for number in ("S1", "S2", "S3"):
            assert (await serials.get_serial_by_number(number)).status == SerialStatus.AVAILABLE
        assert await _count_transactions(db_session) == 1


class TestTransfers:
    """Tests for warehouse-to-warehouse transfers."""

    async def _create_pair(self, db_session: AsyncSession, **kwargs) -> tuple[int, int, int, int]:
        """Same product stocked in two warehouses: (source item, MAIN, target item, EAST)."""
        warehouses = WarehouseService(db_session)
        main = await warehouses.create_warehouse("MAIN", "Main")
        east = await warehouses.create_warehouse("EAST", "East")
        items = ItemService(db_session)
        source = await items.create_item(
            ItemCreate(sku="TEA-MAIN", name="Tea", warehouse_id=main.id, product_id="P-TEA", **kwargs)
        )
        target = await items.create_item(
            ItemCreate(sku="TEA-EAST", name="Tea", warehouse_id=east.id, product_id="P-TEA", **kwargs)
        )
        return source.id, main.id, target.id, east.id

    async def test_transfer_moves_stock(self, db_session: AsyncSession, clock):
        source_id, main_id, target_id, east_id = await self._create_pair(db_session)
        service = TransactionService(db_session, clock)
        await service.stock_in(StockInRequest(inventory_item_id=source_id, warehouse_id=main_id, quantity=Decimal("50")))
        await service.stock_in(StockInRequest(inventory_item_id=target_id, warehouse_id=east_id, quantity=Decimal("10")))

        outgoing, incoming = await service.transfer_stock(
            StockTransferRequest(
                inventory_item_id=source_id,
                from_warehouse_id=main_id,
                to_warehouse_id=east_id,
                quantity=Decimal("20"),
            )
        )

        items = ItemService(db_session)
        assert (await items.get_item(source_id)).current_stock == Decimal("30")
        assert (await items.get_item(target_id)).current_stock == Decimal("30")

        assert outgoing.transaction_type == TransactionType.TRANSFER
        assert outgoing.warehouse_id == main_id
        assert outgoing.inventory_item_id == source_id
        assert outgoing.balance_after == Decimal("30")
        assert outgoing.notes == "Transfer to EAST"
        assert incoming.warehouse_id == east_id
        assert incoming.inventory_item_id == target_id
        assert incoming.balance_after == Decimal("30")
        assert incoming.notes == "Transfer from MAIN"
        for leg in (outgoing, incoming):
            assert (leg.from_warehouse_id, leg.to_warehouse_id) == (main_id, east_id)
            assert leg.quantity == Decimal("20")

    async def test_transfer_to_same_warehouse(self, db_session: AsyncSession, clock):
        source_id, main_id, _, _ = await self._create_pair(db_session)

        with pytest.raises(InvalidStateError):
            await TransactionService(db_session, clock).transfer_stock(
                StockTransferRequest(
                    inventory_item_id=source_id,
                    from_warehouse_id=main_id,
                    to_warehouse_id=main_id,
                    quantity=Decimal("1"),
                )
            )

    async def test_transfer_needs_item_in_destination(self, db_session: AsyncSession, clock):
        source_id, main_id, _, _ = await self._create_pair(db_session)
        west = await WarehouseService(db_session).create_warehouse("WEST", "West")
        service = TransactionService(db_session, clock)
        await service.stock_in(StockInRequest(inventory_item_id=source_id, warehouse_id=main_id, quantity=Decimal("5")))

        with pytest.raises(ItemNotFoundInWarehouseError):
            await service.transfer_stock(
                StockTransferRequest(
                    inventory_item_id=source_id,
                    from_warehouse_id=main_id,
                    to_warehouse_id=west.id,
                    quantity=Decimal("1"),
                )
            )

    async def test_transfer_insufficient_stock(self, db_session: AsyncSession, clock):
        source_id, main_id, target_id, east_id = await self._create_pair(db_session)
        service = TransactionService(db_session, clock)
        await service.stock_in(StockInRequest(inventory_item_id=source_id, warehouse_id=main_id, quantity=Decimal("5")))

        with pytest.raises(InsufficientStockError):
            await service.transfer_stock(
                StockTransferRequest(
                    inventory_item_id=source_id,
                    from_warehouse_id=main_id,
                    to_warehouse_id=east_id,
                    quantity=Decimal("6"),
                )
            )

        assert (await ItemService(db_session).get_item(target_id)).current_stock == 0
        assert await _count_transactions(db_session) == 1

    async def test_transfer_carries_batches(self, db_session: AsyncSession, clock):
        source_id, main_id, target_id, east_id = await self._create_pair(db_session, batch_tracking_enabled=True)
        service = TransactionService(db_session, clock)
        for number, day in [("B1", 1), ("B2", 2)]:
            await service.stock_in(
                StockInRequest(
                    inventory_item_id=source_id,
                    warehouse_id=main_id,
                    quantity=Decimal("10"),
                    batch_number=number,
                    transaction_date=_utc(2024, 3, day),
                    expiry_date=_utc(2025, 1, day),
                )
            )

        outgoing, incoming = await service.transfer_stock(
            StockTransferRequest(
                inventory_item_id=source_id,
                from_warehouse_id=main_id,
                to_warehouse_id=east_id,
                quantity=Decimal("15"),
            )
        )

        assert outgoing.notes == "Transfer to EAST. Batches: B1 x 10, B2 x 5"
        batches = BatchService(db_session, clock)
        moved_b1 = await batches.get_batch_by_number(target_id, east_id, "B1")
        moved_b2 = await batches.get_batch_by_number(target_id, east_id, "B2")
        assert moved_b1.available_quantity == Decimal("10")
        assert moved_b2.available_quantity == Decimal("5")
        assert moved_b2.expiry_date is not None
        assert (await batches.get_batch_by_number(source_id, main_id, "B2")).available_quantity == Decimal("5")

    async def test_transfer_moves_serials(self, db_session: AsyncSession, clock):
        source_id, main_id, target_id, east_id = await self._create_pair(db_session, serial_tracking_enabled=True)
        service = TransactionService(db_session, clock)
        await service.stock_in(
            StockInRequest(
                inventory_item_id=source_id,
                warehouse_id=main_id,
                quantity=Decimal("2"),
                serial_numbers=["T1", "T2"],
            )
        )

        await service.transfer_stock(
            StockTransferRequest(
                inventory_item_id=source_id,
                from_warehouse_id=main_id,
                to_warehouse_id=east_id,
                quantity=Decimal("1"),
                serial_numbers=["T2"],
            )
        )

        moved = await SerialService(db_session, clock).get_serial_by_number("T2")
        assert moved.warehouse_id == east_id
        assert moved.inventory_item_id == target_id
        assert moved.status == SerialStatus.AVAILABLE

    async def test_transfer_serial_count_must_match(self, db_session: AsyncSession, clock):
        source_id, main_id, target_id, east_id = await self._create_pair(db_session, serial_tracking_enabled=True)
        service = TransactionService(db_session, clock)
        await service.stock_in(
            StockInRequest(
                inventory_item_id=source_id,
                warehouse_id=main_id,
                quantity=Decimal("2"),
                serial_numbers=["T1", "T2"],
            )
        )

        with pytest.raises(ValidationError):
            await service.transfer_stock(
                StockTransferRequest(
                    inventory_item_id=source_id,
                    from_warehouse_id=main_id,
                    to_warehouse_id=east_id,
                    quantity=Decimal("1"),
                    serial_numbers=["T1", "T2"],
                )
            )

        items = ItemService(db_session)
        assert (await items.get_item(source_id)).current_stock == Decimal("2")
        assert (await items.get_item(target_id)).current_stock == 0
        serials = SerialService(db_session, clock)
        for number in ("T1", "T2"):
            assert (await serials.get_serial_by_number(number)).warehouse_id == main_id
        assert await _count_transactions(db_session) == 1

    async def test_transfer_into_expired_batch_refused(self, db_session: AsyncSession, clock):
        source_id, main_id, target_id, east_id = await self._create_pair(db_session, batch_tracking_enabled=True)
        service = TransactionService(db_session, clock)
        await service.stock_in(
            StockInRequest(
                inventory_item_id=source_id,
                warehouse_id=main_id,
                quantity=Decimal("10"),
                batch_number="B1",
                expiry_date=_utc(2025, 1, 1),
            )
        )
        await service.stock_in(
            StockInRequest(
                inventory_item_id=target_id,
                warehouse_id=east_id,
                quantity=Decimal("4"),
                batch_number="B1",
                expiry_date=_utc(2024, 2, 1),
            )
        )

        with pytest.raises(InvalidStateError):
            await service.transfer_stock(
                StockTransferRequest(
                    inventory_item_id=source_id,
                    from_warehouse_id=main_id,
                    to_warehouse_id=east_id,
                    quantity=Decimal("3"),
                )
            )

        batches = BatchService(db_session, clock)
        assert (await batches.get_batch_by_number(source_id, main_id, "B1")).available_quantity == Decimal("10")
        assert (await batches.get_batch_by_number(target_id, east_id, "B1")).total_quantity == Decimal("4")
        assert (await ItemService(db_session).get_item(target_id)).current_stock == Decimal("4")
        assert await _count_transactions(db_session) == 2


class TestTransactionEndpoints:
    """Tests for transaction API endpoints."""

    async def _create_item(self, db_session: AsyncSession) -> tuple[int, int]:
        warehouse = await WarehouseService(db_session).create_warehouse("MAIN", "Main")
        item = await ItemService(db_session).create_item(
            ItemCreate(sku="WIDGET", name="Widget", warehouse_id=warehouse.id, cost_price=Decimal("1.00"))
        )
        return item.id, warehouse.id

    async def test_stock_in_and_out(self, client: AsyncClient, db_session: AsyncSession):
        item_id, warehouse_id = await self._create_item(db_session)

        response = await client.post(
            "/api/v1/transactions/stock-in",
            json={"inventory_item_id": item_id, "warehouse_id": warehouse_id, "quantity": "10"},
        )
        assert response.status_code == 201
        number = response.json()["data"]["transaction_number"]
        assert number.startswith("TXN-")

        response = await client.post(
            "/api/v1/transactions/stock-out",
            json={
                "inventory_item_id": item_id,
                "warehouse_id": warehouse_id,
                "quantity": "25",
            },
        )
        assert response.status_code == 400
        assert response.json()["success"] is False

        response = await client.get(f"/api/v1/transactions/by-number/{number}")
        assert response.status_code == 200
        assert Decimal(response.json()["data"]["balance_after"]) == Decimal("10")

        response = await client.get("/api/v1/transactions", params={"item_id": item_id})
        assert response.json()["data"]["total"] == 1

    async def test_count_endpoint(self, client: AsyncClient, db_session: AsyncSession):
        item_id, warehouse_id = await self._create_item(db_session)

        response = await client.post(
            "/api/v1/transactions/count",
            json={"inventory_item_id": item_id, "warehouse_id": warehouse_id, "counted_quantity": "4"},
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["transaction_type"] == "COUNT"
        assert Decimal(data["quantity"]) == Decimal("4")

    async def test_adjust_rejects_zero(self, client: AsyncClient, db_session: AsyncSession):
        item_id, warehouse_id = await self._create_item(db_session)

        response = await client.post(
            "/api/v1/transactions/adjust",
            json={"inventory_item_id": item_id, "warehouse_id": warehouse_id, "quantity": "0"},
        )

        assert response.status_code == 422
