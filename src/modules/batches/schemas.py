"""Schemas for Batches module."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, computed_field

from src.core.inventory_settings.models import ConsumptionStrategy


class BatchCreate(BaseModel):
    """Schema for creating a batch."""

    batch_number: str = Field(..., min_length=1, max_length=100)
    lot_number: str | None = Field(None, max_length=100)
    inventory_item_id: int
    warehouse_id: int
    quantity: Decimal = Field(..., ge=0, decimal_places=3)
    manufacturing_date: datetime | None = None
    expiry_date: datetime | None = None
    received_date: datetime | None = None  # defaults to now
    supplier_id: str | None = Field(None, max_length=100)
    supplier_name: str | None = Field(None, max_length=255)
    purchase_order_number: str | None = Field(None, max_length=100)
    cost_per_unit: Decimal | None = Field(None, ge=0, decimal_places=2)
    notes: str | None = None
    performed_by: str | None = None


class BatchUpdate(BaseModel):
    """Descriptive fields of a batch (full replacement); quantities are not editable here."""

    lot_number: str | None = Field(None, max_length=100)
    manufacturing_date: datetime | None = None
    expiry_date: datetime | None = None
    supplier_id: str | None = Field(None, max_length=100)
    supplier_name: str | None = Field(None, max_length=255)
    purchase_order_number: str | None = Field(None, max_length=100)
    cost_per_unit: Decimal | None = Field(None, ge=0, decimal_places=2)
    notes: str | None = None
    is_active: bool = True
    performed_by: str | None = None


class BatchAllocationRequest(BaseModel):
    """Allocate (consume) or reserve a quantity across batches."""

    inventory_item_id: int
    warehouse_id: int
    quantity: Decimal = Field(..., gt=0, decimal_places=3)
    strategy: ConsumptionStrategy | None = None
    performed_by: str | None = None


class BatchAllocationLine(BaseModel):
    """One batch's share of an allocation."""

    batch_uid: str
    quantity: Decimal


class BatchReleaseRequest(BaseModel):
    """Return reserved quantities to available on the listed batches."""

    lines: list[BatchAllocationLine] = Field(..., min_length=1)
    performed_by: str | None = None


class BatchResponse(BaseModel):
    """Schema for batch response."""

    id: int
    uid: str
    batch_number: str
    lot_number: str | None = None
    inventory_item_id: int
    warehouse_id: int
    total_quantity: Decimal
    available_quantity: Decimal
    reserved_quantity: Decimal
    manufacturing_date: datetime | None = None
    expiry_date: datetime | None = None
    received_date: datetime
    supplier_id: str | None = None
    supplier_name: str | None = None
    purchase_order_number: str | None = None
    cost_per_unit: Decimal | None = None
    notes: str | None = None
    is_active: bool
    is_expired: bool

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def consumed_quantity(self) -> Decimal:
        return self.total_quantity - self.available_quantity - self.reserved_quantity


class ExpirySweepResponse(BaseModel):
    """Result of flagging expired batches."""

    expired_count: int
