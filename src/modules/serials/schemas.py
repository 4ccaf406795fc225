"""Schemas for Serials module."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from src.modules.serials.models import SerialStatus


class SerialCreate(BaseModel):
    """Schema for creating a single serial."""

    serial_number: str = Field(..., min_length=1, max_length=100)
    inventory_item_id: int
    warehouse_id: int
    batch_id: int | None = None
    received_date: datetime | None = None
    warranty_expiry_date: datetime | None = None
    cost_price: Decimal = Field(Decimal("0.00"), ge=0, decimal_places=2)
    selling_price: Decimal = Field(Decimal("0.00"), ge=0, decimal_places=2)
    notes: str | None = None
    performed_by: str | None = None


class BulkSerialCreate(BaseModel):
    """Create many serials for one item at once (all or nothing)."""

    inventory_item_id: int
    warehouse_id: int
    batch_id: int | None = None
    serial_numbers: list[str] = Field(..., min_length=1)
    received_date: datetime | None = None
    warranty_expiry_date: datetime | None = None
    cost_price: Decimal = Field(Decimal("0.00"), ge=0, decimal_places=2)
    selling_price: Decimal = Field(Decimal("0.00"), ge=0, decimal_places=2)
    notes: str | None = None
    performed_by: str | None = None

    @field_validator("serial_numbers")
    @classmethod
    def strip_numbers(cls, v: list[str]) -> list[str]:
        numbers = [n.strip() for n in v]
        if any(not n for n in numbers):
            raise ValueError("Serial numbers must not be blank")
        return numbers


class SerialUpdate(BaseModel):
    """Descriptive fields of a serial (full replacement); status changes use the lifecycle endpoints."""

    warranty_expiry_date: datetime | None = None
    cost_price: Decimal = Field(Decimal("0.00"), ge=0, decimal_places=2)
    selling_price: Decimal = Field(Decimal("0.00"), ge=0, decimal_places=2)
    notes: str | None = None
    performed_by: str | None = None


class SerialNumbersRequest(BaseModel):
    """A set of serial numbers to act on."""

    serial_numbers: list[str] = Field(..., min_length=1)
    performed_by: str | None = None


class SerialSaleRequest(BaseModel):
    """Mark serials as sold against a reference document."""

    serial_numbers: list[str] = Field(..., min_length=1)
    reference_type: str = Field(..., min_length=1, max_length=50)
    reference_id: str = Field(..., min_length=1, max_length=100)
    reference_number: str | None = Field(None, max_length=100)
    customer_id: str | None = Field(None, max_length=100)
    customer_name: str | None = Field(None, max_length=255)
    sold_at: datetime | None = None
    performed_by: str | None = None


class SerialReturnRequest(BaseModel):
    """Mark a sold serial as returned."""

    reference_type: str = Field(..., min_length=1, max_length=50)
    reference_id: str = Field(..., min_length=1, max_length=100)
    notes: str | None = None
    returned_at: datetime | None = None
    performed_by: str | None = None


class SerialNoteRequest(BaseModel):
    """Status change carrying an optional note (damage, repair)."""

    notes: str | None = None
    performed_by: str | None = None


class SerialResponse(BaseModel):
    """Schema for serial response."""

    id: int
    uid: str
    serial_number: str
    inventory_item_id: int
    warehouse_id: int
    batch_id: int | None = None
    status: SerialStatus
    received_date: datetime
    sold_date: datetime | None = None
    returned_date: datetime | None = None
    warranty_expiry_date: datetime | None = None
    sold_reference_type: str | None = None
    sold_reference_id: str | None = None
    sold_reference_number: str | None = None
    return_reference_type: str | None = None
    return_reference_id: str | None = None
    customer_id: str | None = None
    customer_name: str | None = None
    cost_price: Decimal
    selling_price: Decimal
    notes: str | None = None

    model_config = {"from_attributes": True}


class SerialStatusSummary(BaseModel):
    """Number of serials per status for one item/warehouse."""

    available: int = 0
    reserved: int = 0
    sold: int = 0
    returned: int = 0
    damaged: int = 0
