"""Inventory transaction model: the append-only record of every stock movement."""

from datetime import datetime
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import JSON, BigInteger, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import BaseModel


class TransactionType(StrEnum):
    """Stock movement type."""

    STOCK_IN = "STOCK_IN"
    STOCK_OUT = "STOCK_OUT"
    TRANSFER = "TRANSFER"
    ADJUSTMENT = "ADJUSTMENT"
    COUNT = "COUNT"


class TransactionReason(StrEnum):
    """Why the stock moved."""

    PURCHASE = "PURCHASE"
    SALE = "SALE"
    RETURN = "RETURN"
    DAMAGE = "DAMAGE"
    LOSS = "LOSS"
    OPENING = "OPENING"
    CORRECTION = "CORRECTION"
    TRANSFER = "TRANSFER"
    COUNT_ADJUSTMENT = "COUNT_ADJUSTMENT"


class InventoryTransaction(BaseModel):
    """One stock movement for one item row.

    ``warehouse_id`` is the warehouse whose balance this row changed. Transfers
    produce two rows (source leg and destination leg) that both carry
    ``from_warehouse_id`` and ``to_warehouse_id``.

    ``quantity`` is positive for STOCK_IN, STOCK_OUT and TRANSFER and signed for
    ADJUSTMENT and COUNT. Rows are never updated or deleted.
    """

    __tablename__ = "inventory_transactions"
    uid_prefix = "ITX"

    transaction_number: Mapped[str] = mapped_column(
        String(50), nullable=False, unique=True, index=True
    )  # TXN-YYYYMMDD-NNNN
    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    transaction_reason: Mapped[str] = mapped_column(String(50), nullable=False)

    inventory_item_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("inventory_items.id"), nullable=False, index=True
    )
    warehouse_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("warehouses.id"), nullable=False, index=True
    )
    from_warehouse_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("warehouses.id"), nullable=True
    )
    to_warehouse_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("warehouses.id"), nullable=True
    )

    quantity: Mapped[Decimal] = mapped_column(Numeric(15, 3), nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Numeric(15, 3), nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    total_cost: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))

    batch_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("inventory_batches.id"), nullable=True, index=True
    )
    serial_numbers: Mapped[list | None] = mapped_column(JSON, nullable=True)

    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    transaction_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    performed_by: Mapped[str | None] = mapped_column(String(200), nullable=True)

    @property
    def is_transfer_in(self) -> bool:
        """Destination leg of a transfer."""
        return (
            self.transaction_type == TransactionType.TRANSFER
            and self.to_warehouse_id is not None
            and self.warehouse_id == self.to_warehouse_id
        )

    @property
    def is_transfer_out(self) -> bool:
        """Source leg of a transfer."""
        return (
            self.transaction_type == TransactionType.TRANSFER
            and self.from_warehouse_id is not None
            and self.warehouse_id == self.from_warehouse_id
        )
