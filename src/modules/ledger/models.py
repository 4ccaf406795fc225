"""Daily inventory ledger: one balance row per item, warehouse and day."""

from datetime import date
from decimal import Decimal

from sqlalchemy import BigInteger, Date, ForeignKey, Numeric, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import BaseModel
from src.shared.utils.stock_math import ZERO


def _quantity_column() -> Mapped[Decimal]:
    return mapped_column(Numeric(15, 3), nullable=False, default=Decimal("0"))


class InventoryLedger(BaseModel):
    """Opening balance, six movement buckets and closing balance for a day.

    closing = opening + stock_in + transfer_in + adjustment_in
              - stock_out - transfer_out - adjustment_out
    """

    __tablename__ = "inventory_ledgers"
    uid_prefix = "LED"

    inventory_item_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("inventory_items.id"), nullable=False, index=True
    )
    warehouse_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("warehouses.id"), nullable=False, index=True
    )
    ledger_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    opening_stock: Mapped[Decimal] = _quantity_column()
    stock_in: Mapped[Decimal] = _quantity_column()
    stock_out: Mapped[Decimal] = _quantity_column()
    transfer_in: Mapped[Decimal] = _quantity_column()
    transfer_out: Mapped[Decimal] = _quantity_column()
    adjustment_in: Mapped[Decimal] = _quantity_column()
    adjustment_out: Mapped[Decimal] = _quantity_column()
    closing_stock: Mapped[Decimal] = _quantity_column()

    average_cost: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )
    closing_value: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )

    __table_args__ = (
        UniqueConstraint(
            "inventory_item_id",
            "warehouse_id",
            "ledger_date",
            name="uq_inventory_ledger_item_warehouse_date",
        ),
    )

    @property
    def total_inflows(self) -> Decimal:
        return (self.stock_in or ZERO) + (self.transfer_in or ZERO) + (self.adjustment_in or ZERO)

    @property
    def total_outflows(self) -> Decimal:
        return (self.stock_out or ZERO) + (self.transfer_out or ZERO) + (self.adjustment_out or ZERO)

    @property
    def net_movement(self) -> Decimal:
        return self.total_inflows - self.total_outflows

    @property
    def has_movement(self) -> bool:
        return self.total_inflows != 0 or self.total_outflows != 0
