"""Service for Items module."""

import logging
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.service import AuditAction, AuditService
from src.core.exceptions import DuplicateError, InsufficientStockError, NotFoundError, ValidationError
from src.modules.items.models import InventoryItem
from src.modules.items.schemas import ItemCreate, ItemUpdate
from src.modules.warehouses.service import WarehouseService
from src.shared.utils.money import round_quantity, to_decimal
from src.shared.utils.stock_math import ZERO

logger = logging.getLogger(__name__)


class ItemService:
    """Service for inventory items and their stock quantities."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)
        self.warehouses = WarehouseService(db)

    async def get_item_for_update(self, item_id: int) -> InventoryItem:
        result = await self.db.execute(
            select(InventoryItem).where(InventoryItem.id == item_id).with_for_update()
        )
        item = result.scalar_one_or_none()
        if not item:
            raise NotFoundError("Inventory item", item_id)
        return item

    async def _check_sku_free(self, sku: str, exclude_id: int | None = None) -> None:
        query = select(InventoryItem.id).where(InventoryItem.sku == sku)
        if exclude_id is not None:
            query = query.where(InventoryItem.id != exclude_id)
        result = await self.db.execute(query)
        if result.scalar_one_or_none() is not None:
            raise DuplicateError("Inventory item", "sku", sku)

    # --- CRUD ---

    async def create_item(self, data: ItemCreate, commit: bool = True) -> InventoryItem:
        """Create an inventory item with zero stock.

        Stock only arrives through transactions (an OPENING stock-in for initial balances).
        """
        await self._check_sku_free(data.sku)
        await self.warehouses.require_active(data.warehouse_id)

        if data.product_id is not None:
            existing = await self.db.execute(
                select(InventoryItem.id).where(
                    InventoryItem.warehouse_id == data.warehouse_id,
                    InventoryItem.product_id == data.product_id,
                    InventoryItem.product_variant_id.is_(None)
                    if data.product_variant_id is None
                    else InventoryItem.product_variant_id == data.product_variant_id,
                )
            )
            if existing.scalar_one_or_none() is not None:
                raise DuplicateError(
                    "Inventory item",
                    "product_id",
                    f"{data.product_id}/{data.product_variant_id or '-'} in warehouse {data.warehouse_id}",
                )

        item = InventoryItem(
            sku=data.sku,
            name=data.name,
            description=data.description,
            unit=data.unit,
            warehouse_id=data.warehouse_id,
            product_id=data.product_id,
            product_variant_id=data.product_variant_id,
            reorder_level=round_quantity(data.reorder_level),
            max_stock_level=round_quantity(data.max_stock_level),
            cost_price=data.cost_price,
            selling_price=data.selling_price,
            batch_tracking_enabled=data.batch_tracking_enabled,
            serial_tracking_enabled=data.serial_tracking_enabled,
            expiry_tracking_enabled=data.expiry_tracking_enabled,
            is_active=True,
        )
        item.set_quantities(ZERO, ZERO)
        self.db.add(item)
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.CREATE,
            entity_type="InventoryItem",
            entity_id=item.id,
            entity_identifier=item.uid,
            performed_by=data.performed_by,
            new_values={"sku": item.sku, "name": item.name, "warehouse_id": item.warehouse_id},
        )

        if commit:
            await self.db.commit()
            await self.db.refresh(item)
        return item

    async def update_item(
        self, item_id: int, data: ItemUpdate, commit: bool = True
    ) -> InventoryItem:
        """Replace the descriptive fields of an item. Stock quantities are left alone."""
        item = await self.get_item_for_update(item_id)
        if data.sku != item.sku:
            await self._check_sku_free(data.sku, exclude_id=item.id)

        old_values = {"sku": item.sku, "name": item.name, "is_active": item.is_active}
        item.sku = data.sku
        item.name = data.name
        item.description = data.description
        item.unit = data.unit
        item.reorder_level = round_quantity(data.reorder_level)
        item.max_stock_level = round_quantity(data.max_stock_level)
        item.cost_price = data.cost_price
        item.selling_price = data.selling_price
        item.batch_tracking_enabled = data.batch_tracking_enabled
        item.serial_tracking_enabled = data.serial_tracking_enabled
        item.expiry_tracking_enabled = data.expiry_tracking_enabled
        item.is_active = data.is_active
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.UPDATE,
            entity_type="InventoryItem",
            entity_id=item.id,
            entity_identifier=item.uid,
            performed_by=data.performed_by,
            old_values=old_values,
            new_values={"sku": item.sku, "name": item.name, "is_active": item.is_active},
        )

        if commit:
            await self.db.commit()
            await self.db.refresh(item)
        return item

    async def deactivate_item(
        self, item_id: int, performed_by: str | None = None, commit: bool = True
    ) -> InventoryItem:
        """Soft delete: the row stays for its transactions, ledger and serial history."""
        item = await self.get_item_for_update(item_id)
        if item.is_active:
            item.is_active = False
            await self.audit.log(
                action=AuditAction.DELETE,
                entity_type="InventoryItem",
                entity_id=item.id,
                entity_identifier=item.uid,
                performed_by=performed_by,
                old_values={"is_active": True},
                new_values={"is_active": False},
            )
        if commit:
            await self.db.commit()
            await self.db.refresh(item)
        return item

    # --- Lookups ---

    async def get_item(self, item_id: int) -> InventoryItem:
        result = await self.db.execute(select(InventoryItem).where(InventoryItem.id == item_id))
        item = result.scalar_one_or_none()
        if not item:
            raise NotFoundError("Inventory item", item_id)
        return item

    async def get_item_by_uid(self, uid: str) -> InventoryItem:
        result = await self.db.execute(select(InventoryItem).where(InventoryItem.uid == uid))
        item = result.scalar_one_or_none()
        if not item:
            raise NotFoundError("Inventory item", uid)
        return item

    async def get_item_by_sku(self, sku: str) -> InventoryItem:
        result = await self.db.execute(select(InventoryItem).where(InventoryItem.sku == sku))
        item = result.scalar_one_or_none()
        if not item:
            raise NotFoundError("Inventory item", sku)
        return item

    async def find_item_in_warehouse(
        self, item: InventoryItem, warehouse_id: int, lock: bool = False
    ) -> InventoryItem | None:
        """Find the row for the same product (and variant) in another warehouse.

        Items without a product link are standalone: they only match themselves.
        """
        if item.warehouse_id == warehouse_id:
            return item
        if item.product_id is None:
            return None

        query = select(InventoryItem).where(
            InventoryItem.warehouse_id == warehouse_id,
            InventoryItem.product_id == item.product_id,
        )
        if item.product_variant_id is None:
            query = query.where(InventoryItem.product_variant_id.is_(None))
        else:
            query = query.where(InventoryItem.product_variant_id == item.product_variant_id)
        if lock:
            query = query.with_for_update()
        result = await self.db.execute(query.order_by(InventoryItem.id).limit(1))
        return result.scalar_one_or_none()

    async def list_items(
        self,
        warehouse_id: int | None = None,
        active_only: bool = False,
        search: str | None = None,
        page: int = 1,
        limit: int = 100,
    ) -> tuple[list[InventoryItem], int]:
        """List items with optional filters, ordered by name."""
        query = select(InventoryItem).order_by(InventoryItem.name, InventoryItem.id)

        if warehouse_id is not None:
            query = query.where(InventoryItem.warehouse_id == warehouse_id)
        if active_only:
            query = query.where(InventoryItem.is_active.is_(True))
        if search and search.strip():
            s = f"%{search.strip()}%"
            query = query.where(InventoryItem.name.ilike(s) | InventoryItem.sku.ilike(s))

        count_query = select(func.count()).select_from(query.subquery())
        total_result = await self.db.execute(count_query)
        total = total_result.scalar() or 0

        offset = (page - 1) * limit
        result = await self.db.execute(query.offset(offset).limit(limit))
        return list(result.scalars().all()), total

    # --- Stock quantities ---

    async def update_stock_quantities(
        self,
        item_id: int,
        new_current: Decimal,
        new_reserved: Decimal,
        commit: bool = True,
    ) -> InventoryItem:
        """Assign current and reserved stock; available is always recomputed."""
        item = await self.get_item_for_update(item_id)
        item.set_quantities(round_quantity(new_current), round_quantity(new_reserved))
        await self.db.flush()

        if item.is_out_of_stock:
            logger.warning("Item %s is out of stock in warehouse %s", item.sku, item.warehouse_id)
        elif item.is_low_stock:
            logger.info(
                "Item %s is at or below reorder level (%s <= %s)",
                item.sku,
                item.current_stock,
                item.reorder_level,
            )
        elif item.is_overstock:
            logger.info(
                "Item %s is above its max stock level (%s > %s)",
                item.sku,
                item.current_stock,
                item.max_stock_level,
            )

        if commit:
            await self.db.commit()
            await self.db.refresh(item)
        return item

    async def reserve_stock(
        self,
        item_id: int,
        quantity: Decimal,
        performed_by: str | None = None,
        commit: bool = True,
    ) -> InventoryItem:
        """Move ``quantity`` from available to reserved."""
        quantity = round_quantity(quantity)
        if quantity <= 0:
            raise ValidationError("Reservation quantity must be positive", field="quantity")

        item = await self.get_item_for_update(item_id)
        available = to_decimal(item.available_stock)
        if available < quantity:
            raise InsufficientStockError(item.uid, quantity, available)

        old_reserved = item.reserved_stock
        item.set_quantities(item.current_stock, item.reserved_stock + quantity)
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.RESERVE_STOCK,
            entity_type="InventoryItem",
            entity_id=item.id,
            entity_identifier=item.uid,
            performed_by=performed_by,
            old_values={"reserved_stock": str(old_reserved)},
            new_values={"reserved_stock": str(item.reserved_stock), "quantity": str(quantity)},
        )

        if commit:
            await self.db.commit()
            await self.db.refresh(item)
        return item

    async def release_reserved_stock(
        self,
        item_id: int,
        quantity: Decimal,
        performed_by: str | None = None,
        commit: bool = True,
    ) -> InventoryItem:
        """Return ``quantity`` from reserved to available, never below zero reserved."""
        quantity = round_quantity(quantity)
        if quantity <= 0:
            raise ValidationError("Release quantity must be positive", field="quantity")

        item = await self.get_item_for_update(item_id)
        old_reserved = to_decimal(item.reserved_stock)
        new_reserved = old_reserved - quantity
        if new_reserved < 0:
            logger.warning(
                "Release of %s on item %s exceeds reserved stock %s; clamping to zero",
                quantity,
                item.sku,
                old_reserved,
            )
            new_reserved = ZERO

        item.set_quantities(item.current_stock, new_reserved)
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.RELEASE_STOCK,
            entity_type="InventoryItem",
            entity_id=item.id,
            entity_identifier=item.uid,
            performed_by=performed_by,
            old_values={"reserved_stock": str(old_reserved)},
            new_values={"reserved_stock": str(item.reserved_stock), "quantity": str(quantity)},
        )

        if commit:
            await self.db.commit()
            await self.db.refresh(item)
        return item

    # --- Alerts (read-only) ---

    def _alert_query(self, warehouse_id: int | None):
        query = select(InventoryItem).where(InventoryItem.is_active.is_(True))
        if warehouse_id is not None:
            query = query.where(InventoryItem.warehouse_id == warehouse_id)
        return query.order_by(InventoryItem.name, InventoryItem.id)

    async def get_low_stock_items(self, warehouse_id: int | None = None) -> list[InventoryItem]:
        query = self._alert_query(warehouse_id).where(
            InventoryItem.current_stock <= InventoryItem.reorder_level
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_out_of_stock_items(self, warehouse_id: int | None = None) -> list[InventoryItem]:
        query = self._alert_query(warehouse_id).where(InventoryItem.current_stock <= 0)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_overstock_items(self, warehouse_id: int | None = None) -> list[InventoryItem]:
        query = self._alert_query(warehouse_id).where(
            InventoryItem.max_stock_level > 0,
            InventoryItem.current_stock > InventoryItem.max_stock_level,
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count_low_stock_items(self, warehouse_id: int | None = None) -> int:
        query = select(func.count()).select_from(
            self._alert_query(warehouse_id)
            .where(InventoryItem.current_stock <= InventoryItem.reorder_level)
            .subquery()
        )
        result = await self.db.execute(query)
        return result.scalar() or 0
