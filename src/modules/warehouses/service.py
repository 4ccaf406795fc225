"""Warehouse lookups used as existence checks by the stock services."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import DuplicateError, NotFoundError, ValidationError
from src.modules.warehouses.models import Warehouse


class WarehouseService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_warehouse(self, code: str, name: str, is_active: bool = True) -> Warehouse:
        """Register a warehouse (seeding and tests; full CRUD is external)."""
        existing = await self.db.execute(select(Warehouse.id).where(Warehouse.code == code))
        if existing.scalar_one_or_none() is not None:
            raise DuplicateError("Warehouse", "code", code)

        warehouse = Warehouse(code=code, name=name, is_active=is_active)
        self.db.add(warehouse)
        await self.db.flush()
        return warehouse

    async def get_warehouse(self, warehouse_id: int) -> Warehouse:
        result = await self.db.execute(select(Warehouse).where(Warehouse.id == warehouse_id))
        warehouse = result.scalar_one_or_none()
        if not warehouse:
            raise NotFoundError("Warehouse", warehouse_id)
        return warehouse

    async def get_warehouse_by_uid(self, uid: str) -> Warehouse:
        result = await self.db.execute(select(Warehouse).where(Warehouse.uid == uid))
        warehouse = result.scalar_one_or_none()
        if not warehouse:
            raise NotFoundError("Warehouse", uid)
        return warehouse

    async def require_active(self, warehouse_id: int) -> Warehouse:
        """Return the warehouse, refusing unknown or deactivated ones."""
        warehouse = await self.get_warehouse(warehouse_id)
        if not warehouse.is_active:
            raise ValidationError(f"Warehouse {warehouse.code} is not active", field="warehouse_id")
        return warehouse
