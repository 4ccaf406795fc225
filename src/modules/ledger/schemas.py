"""Schemas for Ledger module."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, computed_field, model_validator


class LedgerResponse(BaseModel):
    """Schema for ledger row response."""

    id: int
    uid: str
    inventory_item_id: int
    warehouse_id: int
    ledger_date: date
    opening_stock: Decimal
    stock_in: Decimal
    stock_out: Decimal
    transfer_in: Decimal
    transfer_out: Decimal
    adjustment_in: Decimal
    adjustment_out: Decimal
    closing_stock: Decimal
    average_cost: Decimal
    closing_value: Decimal
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def total_inflows(self) -> Decimal:
        return self.stock_in + self.transfer_in + self.adjustment_in

    @computed_field
    @property
    def total_outflows(self) -> Decimal:
        return self.stock_out + self.transfer_out + self.adjustment_out

    @computed_field
    @property
    def net_movement(self) -> Decimal:
        return self.total_inflows - self.total_outflows


class LedgerGenerateRequest(BaseModel):
    """Generate ledger rows for one day or an inclusive range of days."""

    start_date: date
    end_date: date | None = None  # defaults to start_date

    @model_validator(mode="after")
    def check_range(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class LedgerGenerateResponse(BaseModel):
    start_date: date
    end_date: date
    entries: int


class WarehouseStockTotals(BaseModel):
    """Closing quantity and value of a warehouse on a day."""

    warehouse_id: int
    ledger_date: date
    total_quantity: Decimal
    total_value: Decimal
