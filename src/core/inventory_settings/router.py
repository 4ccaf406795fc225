"""API for inventory settings (consumption strategy and stock policy)."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.session import get_db
from src.core.inventory_settings.schemas import InventoryConfigResponse, InventoryConfigUpdate
from src.core.inventory_settings.service import get_inventory_config, update_inventory_config
from src.shared.schemas.base import ApiResponse

router = APIRouter(prefix="/inventory-settings", tags=["Inventory Settings"])


@router.get("", response_model=ApiResponse[InventoryConfigResponse])
async def get_settings(db: AsyncSession = Depends(get_db)):
    """Get inventory settings (strategy, negative stock, expiry alert window)."""
    row = await get_inventory_config(db)
    await db.commit()
    return ApiResponse(success=True, data=InventoryConfigResponse.model_validate(row))


@router.put("", response_model=ApiResponse[InventoryConfigResponse])
async def put_settings(
    data: InventoryConfigUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Update inventory settings."""
    row = await update_inventory_config(db, data)
    await db.commit()
    return ApiResponse(
        success=True,
        message="Inventory settings updated",
        data=InventoryConfigResponse.model_validate(row),
    )
