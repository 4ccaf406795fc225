"""Tests for Items module."""

import logging
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.models import AuditLog
from src.core.exceptions import (
    DuplicateError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from src.modules.items.schemas import ItemCreate, ItemUpdate
from src.modules.items.service import ItemService
from src.modules.warehouses.service import WarehouseService


class TestItemService:
    """Tests for item CRUD and lookups."""

    async def _create_warehouse(self, db_session: AsyncSession, code: str = "MAIN", is_active: bool = True) -> int:
        """Helper to create a warehouse."""
        warehouse = await WarehouseService(db_session).create_warehouse(code, f"{code} warehouse", is_active)
        await db_session.commit()
        return warehouse.id

    async def test_create_item_starts_empty(self, db_session: AsyncSession):
        warehouse_id = await self._create_warehouse(db_session)
        item = await ItemService(db_session).create_item(
            ItemCreate(sku="SKU-1", name="Widget", warehouse_id=warehouse_id, cost_price=Decimal("10.00"))
        )

        assert item.id is not None
        assert item.uid.startswith("ITM")
        assert item.current_stock == 0
        assert item.reserved_stock == 0
        assert item.available_stock == 0
        assert item.is_active is True

    async def test_create_item_duplicate_sku(self, db_session: AsyncSession):
        warehouse_id = await self._create_warehouse(db_session)
        service = ItemService(db_session)
        await service.create_item(ItemCreate(sku="SKU-1", name="Widget", warehouse_id=warehouse_id))

        with pytest.raises(DuplicateError):
            await service.create_item(ItemCreate(sku="SKU-1", name="Other", warehouse_id=warehouse_id))

    async def test_create_item_unknown_or_inactive_warehouse(self, db_session: AsyncSession):
        service = ItemService(db_session)
        with pytest.raises(NotFoundError):
            await service.create_item(ItemCreate(sku="SKU-1", name="Widget", warehouse_id=999))

        closed_id = await self._create_warehouse(db_session, "OLD", is_active=False)
        with pytest.raises(ValidationError):
            await service.create_item(ItemCreate(sku="SKU-1", name="Widget", warehouse_id=closed_id))

    async def test_product_unique_per_warehouse(self, db_session: AsyncSession):
        main_id = await self._create_warehouse(db_session, "MAIN")
        east_id = await self._create_warehouse(db_session, "EAST")
        service = ItemService(db_session)
        await service.create_item(
            ItemCreate(sku="P1-MAIN", name="Phone", warehouse_id=main_id, product_id="P1")
        )

        with pytest.raises(DuplicateError):
            await service.create_item(
                ItemCreate(sku="P1-MAIN-2", name="Phone", warehouse_id=main_id, product_id="P1")
            )

        other = await service.create_item(
            ItemCreate(sku="P1-EAST", name="Phone", warehouse_id=east_id, product_id="P1")
        )
        assert other.warehouse_id == east_id

    async def test_update_item_leaves_stock_alone(self, db_session: AsyncSession):
        warehouse_id = await self._create_warehouse(db_session)
        service = ItemService(db_session)
        item = await service.create_item(ItemCreate(sku="SKU-1", name="Widget", warehouse_id=warehouse_id))
        await service.update_stock_quantities(item.id, Decimal("12"), Decimal("2"))

        updated = await service.update_item(
            item.id,
            ItemUpdate(sku="SKU-1A", name="Widget v2", reorder_level=Decimal("5"), cost_price=Decimal("3.50")),
        )

        assert updated.sku == "SKU-1A"
        assert updated.name == "Widget v2"
        assert updated.cost_price == Decimal("3.50")
        assert updated.current_stock == Decimal("12")
        assert updated.available_stock == Decimal("10")

    async def test_update_item_sku_conflict(self, db_session: AsyncSession):
        warehouse_id = await self._create_warehouse(db_session)
        service = ItemService(db_session)
        await service.create_item(ItemCreate(sku="SKU-1", name="Widget", warehouse_id=warehouse_id))
        second = await service.create_item(ItemCreate(sku="SKU-2", name="Gadget", warehouse_id=warehouse_id))

        with pytest.raises(DuplicateError):
            await service.update_item(second.id, ItemUpdate(sku="SKU-1", name="Gadget"))

    async def test_deactivate_item(self, db_session: AsyncSession):
        warehouse_id = await self._create_warehouse(db_session)
        service = ItemService(db_session)
        item = await service.create_item(ItemCreate(sku="SKU-1", name="Widget", warehouse_id=warehouse_id))

        deactivated = await service.deactivate_item(item.id, performed_by="ops")
        assert deactivated.is_active is False
        assert (await service.get_item(item.id)).is_active is False

    async def test_lookups(self, db_session: AsyncSession):
        warehouse_id = await self._create_warehouse(db_session)
        service = ItemService(db_session)
        item = await service.create_item(ItemCreate(sku="SKU-1", name="Widget", warehouse_id=warehouse_id))

        assert (await service.get_item_by_uid(item.uid)).id == item.id
        assert (await service.get_item_by_sku("SKU-1")).id == item.id
        with pytest.raises(NotFoundError):
            await service.get_item(999)
        with pytest.raises(NotFoundError):
            await service.get_item_by_sku("NOPE")

    async def test_find_item_in_warehouse(self, db_session: AsyncSession):
        main_id = await self._create_warehouse(db_session, "MAIN")
        east_id = await self._create_warehouse(db_session, "EAST")
        service = ItemService(db_session)
        phone_main = await service.create_item(
            ItemCreate(sku="P1-MAIN", name="Phone", warehouse_id=main_id, product_id="P1", product_variant_id="BLK")
        )
        phone_east = await service.create_item(
            ItemCreate(sku="P1-EAST", name="Phone", warehouse_id=east_id, product_id="P1", product_variant_id="BLK")
        )
        await service.create_item(
            ItemCreate(sku="P1-EAST-W", name="Phone", warehouse_id=east_id, product_id="P1", product_variant_id="WHT")
        )
        standalone = await service.create_item(ItemCreate(sku="LOOSE", name="Loose", warehouse_id=main_id))

        found = await service.find_item_in_warehouse(phone_main, east_id)
        assert found.id == phone_east.id
        assert await service.find_item_in_warehouse(phone_main, main_id) is phone_main
        assert await service.find_item_in_warehouse(standalone, east_id) is None

    async def test_list_items_filters(self, db_session: AsyncSession):
        main_id = await self._create_warehouse(db_session, "MAIN")
        east_id = await self._create_warehouse(db_session, "EAST")
        service = ItemService(db_session)
        await service.create_item(ItemCreate(sku="A-1", name="Apple", warehouse_id=main_id))
        await service.create_item(ItemCreate(sku="B-1", name="Banana", warehouse_id=main_id))
        await service.create_item(ItemCreate(sku="C-1", name="Cherry", warehouse_id=east_id))

        items, total = await service.list_items(warehouse_id=main_id)
        assert total == 2
        assert [i.name for i in items] == ["Apple", "Banana"]

        items, total = await service.list_items(search="cher")
        assert total == 1
        assert items[0].sku == "C-1"

        items, total = await service.list_items(page=2, limit=2)
        assert total == 3
        assert len(items) == 1


class TestStockReservation:
    """Tests for reserve/release and the stock mutation primitive."""

    async def _create_item_with_stock(self, db_session: AsyncSession, stock: Decimal) -> int:
        """Helper to create an item holding ``stock`` units."""
        warehouse = await WarehouseService(db_session).create_warehouse("MAIN", "Main")
        service = ItemService(db_session)
        item = await service.create_item(ItemCreate(sku="SKU-1", name="Widget", warehouse_id=warehouse.id))
        await service.update_stock_quantities(item.id, stock, Decimal("0"))
        return item.id

    async def test_update_stock_quantities_recomputes_available(self, db_session: AsyncSession):
        item_id = await self._create_item_with_stock(db_session, Decimal("100"))
        item = await ItemService(db_session).update_stock_quantities(item_id, Decimal("80"), Decimal("30"))
        assert item.current_stock == Decimal("80")
        assert item.reserved_stock == Decimal("30")
        assert item.available_stock == Decimal("50")

    async def test_reserve_stock(self, db_session: AsyncSession):
        item_id = await self._create_item_with_stock(db_session, Decimal("100"))
        item = await ItemService(db_session).reserve_stock(item_id, Decimal("30"), performed_by="sales")

        assert item.reserved_stock == Decimal("30")
        assert item.available_stock == Decimal("70")

        result = await db_session.execute(select(AuditLog).where(AuditLog.action == "inventory.reserve"))
        assert result.scalar_one().performed_by == "sales"

    async def test_reserve_more_than_available_changes_nothing(self, db_session: AsyncSession):
        item_id = await self._create_item_with_stock(db_session, Decimal("10"))
        service = ItemService(db_session)

        with pytest.raises(InsufficientStockError) as exc_info:
            await service.reserve_stock(item_id, Decimal("11"))

        assert exc_info.value.requested == Decimal("11")
        assert exc_info.value.available == Decimal("10")
        item = await service.get_item(item_id)
        assert item.reserved_stock == 0
        assert item.available_stock == Decimal("10")

    async def test_reserve_rejects_non_positive(self, db_session: AsyncSession):
        item_id = await self._create_item_with_stock(db_session, Decimal("10"))
        with pytest.raises(ValidationError):
            await ItemService(db_session).reserve_stock(item_id, Decimal("0"))

    async def test_release_reserved_stock(self, db_session: AsyncSession):
        item_id = await self._create_item_with_stock(db_session, Decimal("10"))
        service = ItemService(db_session)
        await service.reserve_stock(item_id, Decimal("6"))

        item = await service.release_reserved_stock(item_id, Decimal("4"))
        assert item.reserved_stock == Decimal("2")
        assert item.available_stock == Decimal("8")

    async def test_release_clamps_at_zero_and_logs(self, db_session: AsyncSession, caplog):
        item_id = await self._create_item_with_stock(db_session, Decimal("10"))
        service = ItemService(db_session)
        await service.reserve_stock(item_id, Decimal("3"))

        with caplog.at_level(logging.WARNING, logger="src.modules.items.service"):
            item = await service.release_reserved_stock(item_id, Decimal("5"))

        assert item.reserved_stock == 0
        assert item.available_stock == Decimal("10")
        assert "clamping to zero" in caplog.text


class TestStockAlerts:
    """Tests for low/out-of/over-stock filters."""

    async def test_alert_filters(self, db_session: AsyncSession):
        warehouse = await WarehouseService(db_session).create_warehouse("MAIN", "Main")
        service = ItemService(db_session)
        low = await service.create_item(
            ItemCreate(sku="LOW", name="Low", warehouse_id=warehouse.id, reorder_level=Decimal("10"))
        )
        empty = await service.create_item(ItemCreate(sku="EMPTY", name="Empty", warehouse_id=warehouse.id))
        over = await service.create_item(
            ItemCreate(sku="OVER", name="Over", warehouse_id=warehouse.id, max_stock_level=Decimal("50"))
        )
        fine = await service.create_item(
            ItemCreate(
                sku="FINE",
                name="Fine",
                warehouse_id=warehouse.id,
                reorder_level=Decimal("5"),
                max_stock_level=Decimal("100"),
            )
        )
        await service.update_stock_quantities(low.id, Decimal("8"), Decimal("0"))
        await service.update_stock_quantities(over.id, Decimal("60"), Decimal("0"))
        await service.update_stock_quantities(fine.id, Decimal("20"), Decimal("0"))

        low_skus = {i.sku for i in await service.get_low_stock_items()}
        assert low_skus == {"LOW", "EMPTY"}
        assert {i.sku for i in await service.get_out_of_stock_items()} == {"EMPTY"}
        assert {i.sku for i in await service.get_overstock_items()} == {"OVER"}
        assert (await service.get_item(over.id)).is_overstock is True
        assert (await service.get_item(fine.id)).is_overstock is False
        assert await service.count_low_stock_items(warehouse.id) == 2

        await service.deactivate_item(empty.id)
        assert await service.count_low_stock_items() == 1

    async def test_overstock_is_logged(self, db_session: AsyncSession, caplog):
        warehouse = await WarehouseService(db_session).create_warehouse("MAIN", "Main")
        service = ItemService(db_session)
        item = await service.create_item(
            ItemCreate(sku="OVER", name="Over", warehouse_id=warehouse.id, max_stock_level=Decimal("50"))
        )

        with caplog.at_level(logging.INFO, logger="src.modules.items.service"):
            await service.update_stock_quantities(item.id, Decimal("60"), Decimal("0"))

        assert "above its max stock level" in caplog.text


class TestItemEndpoints:
    """Tests for item API endpoints."""

    async def _create_warehouse(self, db_session: AsyncSession) -> int:
        """Helper to create a warehouse."""
        warehouse = await WarehouseService(db_session).create_warehouse("MAIN", "Main")
        await db_session.commit()
        return warehouse.id

    async def test_create_and_get_item(self, client: AsyncClient, db_session: AsyncSession):
        warehouse_id = await self._create_warehouse(db_session)

        response = await client.post(
            "/api/v1/items",
            json={"sku": "SKU-1", "name": "Widget", "warehouse_id": warehouse_id, "cost_price": "10.00"},
        )
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["sku"] == "SKU-1"
        assert Decimal(data["current_stock"]) == 0
        assert data["is_out_of_stock"] is True
        assert data["is_overstock"] is False

        response = await client.get(f"/api/v1/items/{data['id']}")
        assert response.status_code == 200
        assert response.json()["data"]["name"] == "Widget"

    async def test_duplicate_sku_is_conflict(self, client: AsyncClient, db_session: AsyncSession):
        warehouse_id = await self._create_warehouse(db_session)
        payload = {"sku": "SKU-1", "name": "Widget", "warehouse_id": warehouse_id}
        await client.post("/api/v1/items", json=payload)

        response = await client.post("/api/v1/items", json=payload)
        assert response.status_code == 409
        assert response.json()["success"] is False

    async def test_missing_item_is_not_found(self, client: AsyncClient):
        response = await client.get("/api/v1/items/999")
        assert response.status_code == 404

    async def test_reserve_and_release(self, client: AsyncClient, db_session: AsyncSession):
        warehouse_id = await self._create_warehouse(db_session)
        created = await client.post(
            "/api/v1/items", json={"sku": "SKU-1", "name": "Widget", "warehouse_id": warehouse_id}
        )
        item_id = created.json()["data"]["id"]
        await ItemService(db_session).update_stock_quantities(item_id, Decimal("20"), Decimal("0"))

        response = await client.post(f"/api/v1/items/{item_id}/reserve", json={"quantity": "5"})
        assert response.status_code == 200
        assert Decimal(response.json()["data"]["available_stock"]) == Decimal("15")

        response = await client.post(f"/api/v1/items/{item_id}/reserve", json={"quantity": "50"})
        assert response.status_code == 400

        response = await client.post(f"/api/v1/items/{item_id}/release", json={"quantity": "5"})
        assert response.status_code == 200
        assert Decimal(response.json()["data"]["reserved_stock"]) == 0

    async def test_alerts_endpoint(self, client: AsyncClient, db_session: AsyncSession):
        warehouse_id = await self._create_warehouse(db_session)
        await client.post(
            "/api/v1/items", json={"sku": "SKU-1", "name": "Widget", "warehouse_id": warehouse_id}
        )

        response = await client.get("/api/v1/items/alerts")
        assert response.status_code == 200
        assert response.json()["data"] == {"low_stock": 1, "out_of_stock": 1, "overstock": 0}
