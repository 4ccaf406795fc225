"""Schemas for Transactions module."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator

from src.core.inventory_settings.models import ConsumptionStrategy
from src.modules.transactions.models import TransactionReason, TransactionType


class _Reference(BaseModel):
    reference_type: str | None = Field(None, max_length=50)
    reference_id: str | None = Field(None, max_length=100)
    reference_number: str | None = Field(None, max_length=100)
    transaction_date: datetime | None = None  # defaults to now
    notes: str | None = None
    performed_by: str | None = Field(None, max_length=200)


class StockInRequest(_Reference):
    """Receive stock into a warehouse."""

    inventory_item_id: int
    warehouse_id: int
    quantity: Decimal = Field(..., gt=0, decimal_places=3)
    unit_cost: Decimal | None = Field(None, ge=0, decimal_places=2)  # defaults to item cost price
    reason: TransactionReason = TransactionReason.PURCHASE
    batch_number: str | None = Field(None, max_length=100)
    lot_number: str | None = Field(None, max_length=100)
    manufacturing_date: datetime | None = None
    expiry_date: datetime | None = None
    supplier_id: str | None = Field(None, max_length=100)
    supplier_name: str | None = Field(None, max_length=255)
    serial_numbers: list[str] | None = None
    warranty_expiry_date: datetime | None = None


class StockOutRequest(_Reference):
    """Issue stock from a warehouse."""

    inventory_item_id: int
    warehouse_id: int
    quantity: Decimal = Field(..., gt=0, decimal_places=3)
    reason: TransactionReason = TransactionReason.SALE
    batch_id: int | None = None  # consume from this batch instead of allocating
    strategy: ConsumptionStrategy | None = None  # overrides the configured strategy
    serial_numbers: list[str] | None = None
    customer_id: str | None = Field(None, max_length=100)
    customer_name: str | None = Field(None, max_length=255)


class StockTransferRequest(_Reference):
    """Move stock of one item between two warehouses."""

    inventory_item_id: int  # item row in the source warehouse
    from_warehouse_id: int
    to_warehouse_id: int
    quantity: Decimal = Field(..., gt=0, decimal_places=3)
    batch_id: int | None = None
    serial_numbers: list[str] | None = None


class StockAdjustmentRequest(_Reference):
    """Correct stock by a signed delta."""

    inventory_item_id: int
    warehouse_id: int
    quantity: Decimal = Field(..., decimal_places=3)  # positive adds, negative removes
    reason: TransactionReason = TransactionReason.CORRECTION
    unit_cost: Decimal | None = Field(None, ge=0, decimal_places=2)

    @model_validator(mode="after")
    def non_zero(self):
        if self.quantity == 0:
            raise ValueError("Adjustment quantity must be non-zero")
        return self


class PhysicalCountRequest(_Reference):
    """Record a counted quantity; it replaces the system quantity."""

    inventory_item_id: int
    warehouse_id: int
    counted_quantity: Decimal = Field(..., ge=0, decimal_places=3)


class TransactionResponse(BaseModel):
    """Schema for transaction response."""

    id: int
    uid: str
    transaction_number: str
    transaction_type: TransactionType
    transaction_reason: str
    inventory_item_id: int
    warehouse_id: int
    from_warehouse_id: int | None = None
    to_warehouse_id: int | None = None
    quantity: Decimal
    balance_after: Decimal
    unit_cost: Decimal
    total_cost: Decimal
    batch_id: int | None = None
    serial_numbers: list[str] | None = None
    reference_type: str | None = None
    reference_id: str | None = None
    reference_number: str | None = None
    transaction_date: datetime
    notes: str | None = None
    performed_by: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
