"""Schemas for inventory settings (consumption policy)."""

from pydantic import BaseModel, Field

from src.core.inventory_settings.models import ConsumptionStrategy


class InventoryConfigUpdate(BaseModel):
    """Update inventory settings (all optional)."""

    stock_consumption_strategy: ConsumptionStrategy | None = None
    allow_negative_stock: bool | None = None
    expiry_alert_days: int | None = Field(None, ge=0, le=3650)
    default_warehouse_id: int | None = None
    performed_by: str | None = None


class InventoryConfigResponse(BaseModel):
    """Inventory settings for API response."""

    id: int
    stock_consumption_strategy: ConsumptionStrategy
    allow_negative_stock: bool
    expiry_alert_days: int
    default_warehouse_id: int | None = None

    model_config = {"from_attributes": True}
