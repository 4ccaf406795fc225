"""Schemas for Items module."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class ItemCreate(BaseModel):
    """Schema for creating an inventory item."""

    sku: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    unit: str | None = Field(None, max_length=20)
    warehouse_id: int
    product_id: str | None = Field(None, max_length=100)
    product_variant_id: str | None = Field(None, max_length=100)
    reorder_level: Decimal = Field(Decimal("0"), ge=0, decimal_places=3)
    max_stock_level: Decimal = Field(Decimal("0"), ge=0, decimal_places=3)
    cost_price: Decimal = Field(Decimal("0.00"), ge=0, decimal_places=2)
    selling_price: Decimal = Field(Decimal("0.00"), ge=0, decimal_places=2)
    batch_tracking_enabled: bool = False
    serial_tracking_enabled: bool = False
    expiry_tracking_enabled: bool = False
    performed_by: str | None = None


class ItemUpdate(BaseModel):
    """Full replacement of the descriptive fields; stock quantities are not part of it."""

    sku: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    unit: str | None = Field(None, max_length=20)
    reorder_level: Decimal = Field(Decimal("0"), ge=0, decimal_places=3)
    max_stock_level: Decimal = Field(Decimal("0"), ge=0, decimal_places=3)
    cost_price: Decimal = Field(Decimal("0.00"), ge=0, decimal_places=2)
    selling_price: Decimal = Field(Decimal("0.00"), ge=0, decimal_places=2)
    batch_tracking_enabled: bool = False
    serial_tracking_enabled: bool = False
    expiry_tracking_enabled: bool = False
    is_active: bool = True
    performed_by: str | None = None


class StockReservationRequest(BaseModel):
    """Reserve or release a quantity on an item."""

    quantity: Decimal = Field(..., gt=0, decimal_places=3)
    performed_by: str | None = None


class ItemResponse(BaseModel):
    """Schema for inventory item response."""

    id: int
    uid: str
    sku: str
    name: str
    description: str | None = None
    unit: str | None = None
    warehouse_id: int
    product_id: str | None = None
    product_variant_id: str | None = None
    current_stock: Decimal
    reserved_stock: Decimal
    available_stock: Decimal
    reorder_level: Decimal
    max_stock_level: Decimal
    cost_price: Decimal
    selling_price: Decimal
    batch_tracking_enabled: bool
    serial_tracking_enabled: bool
    expiry_tracking_enabled: bool
    is_active: bool
    is_low_stock: bool
    is_out_of_stock: bool
    is_overstock: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class StockAlertSummary(BaseModel):
    """Counts for the stock alert badges."""

    low_stock: int
    out_of_stock: int
    overstock: int
