"""Service for inventory settings (single row)."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.service import AuditAction, AuditService
from src.core.config import settings
from src.core.inventory_settings.models import ConsumptionStrategy, InventoryConfig
from src.core.inventory_settings.schemas import InventoryConfigUpdate
from src.modules.warehouses.service import WarehouseService


async def get_inventory_config(db: AsyncSession) -> InventoryConfig:
    """Get the single inventory settings row; create with defaults from Settings if missing."""
    result = await db.execute(select(InventoryConfig).order_by(InventoryConfig.id).limit(1))
    row = result.scalar_one_or_none()
    if row is None:
        row = InventoryConfig(
            stock_consumption_strategy=ConsumptionStrategy.parse(
                settings.default_consumption_strategy
            ).value,
            allow_negative_stock=settings.default_allow_negative_stock,
            expiry_alert_days=settings.expiry_alert_days,
        )
        db.add(row)
        await db.flush()
    return row


async def update_inventory_config(
    db: AsyncSession,
    data: InventoryConfigUpdate,
) -> InventoryConfig:
    """Update inventory settings (only provided fields)."""
    row = await get_inventory_config(db)
    update = data.model_dump(exclude_unset=True, exclude={"performed_by"})
    if update.get("default_warehouse_id") is not None:
        await WarehouseService(db).require_active(update["default_warehouse_id"])

    old_values = {key: _plain(getattr(row, key)) for key in update}
    for key, value in update.items():
        if key == "stock_consumption_strategy" and value is not None:
            value = ConsumptionStrategy.parse(value).value
        setattr(row, key, value)
    await db.flush()

    if update:
        await AuditService(db).log(
            action=AuditAction.UPDATE_SETTINGS,
            entity_type="InventoryConfig",
            entity_id=row.id,
            performed_by=data.performed_by,
            old_values=old_values,
            new_values={key: _plain(getattr(row, key)) for key in update},
        )
    return row


async def get_stock_consumption_strategy(db: AsyncSession) -> ConsumptionStrategy:
    row = await get_inventory_config(db)
    return ConsumptionStrategy.parse(row.stock_consumption_strategy)


async def allow_negative_stock(db: AsyncSession) -> bool:
    row = await get_inventory_config(db)
    return bool(row.allow_negative_stock)


def _plain(value):
    return value.value if isinstance(value, ConsumptionStrategy) else value
