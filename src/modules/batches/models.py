"""Batch (lot) model with its quantity bookkeeping."""

from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import BaseModel
from src.core.exceptions import InsufficientStockError, ValidationError
from src.shared.utils.dates import as_utc
from src.shared.utils.money import round_quantity, to_decimal
from src.shared.utils.stock_math import ZERO


class InventoryBatch(BaseModel):
    """A received quantity of one item sharing manufacturing/expiry data.

    Quantity leaves the batch only through ``consume`` (available or reserved
    goes away) and moves between buckets through ``reserve`` / ``release_reserved``.
    ``available_quantity + reserved_quantity <= total_quantity`` always holds.
    """

    __tablename__ = "inventory_batches"
    uid_prefix = "BAT"

    batch_number: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    lot_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    inventory_item_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("inventory_items.id"), nullable=False, index=True
    )
    warehouse_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("warehouses.id"), nullable=False, index=True
    )

    total_quantity: Mapped[Decimal] = mapped_column(
        Numeric(15, 3), nullable=False, default=Decimal("0")
    )
    available_quantity: Mapped[Decimal] = mapped_column(
        Numeric(15, 3), nullable=False, default=Decimal("0")
    )
    reserved_quantity: Mapped[Decimal] = mapped_column(
        Numeric(15, 3), nullable=False, default=Decimal("0")
    )

    manufacturing_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expiry_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    received_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    supplier_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    supplier_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    purchase_order_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    cost_per_unit: Mapped[Decimal | None] = mapped_column(Numeric(15, 2), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_expired: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint(
            "inventory_item_id",
            "warehouse_id",
            "batch_number",
            name="uq_inventory_batch_item_warehouse_number",
        ),
    )

    @property
    def consumed_quantity(self) -> Decimal:
        return round_quantity(
            to_decimal(self.total_quantity)
            - to_decimal(self.available_quantity)
            - to_decimal(self.reserved_quantity)
        )

    def has_expired(self, now: datetime) -> bool:
        if self.expiry_date is None:
            return False
        return as_utc(now) >= as_utc(self.expiry_date)

    def is_expiring_soon(self, days: int, now: datetime) -> bool:
        if self.expiry_date is None or self.has_expired(now):
            return False
        return as_utc(self.expiry_date) <= as_utc(now) + timedelta(days=days)

    def has_available_stock(self) -> bool:
        return to_decimal(self.available_quantity) > 0 and self.is_active and not self.is_expired

    def can_receive(self) -> bool:
        """New stock may only land in an active batch that has not been flagged expired."""
        return self.is_active and not self.is_expired

    def _item_ref(self, item_uid: str | None) -> str:
        return item_uid or str(self.inventory_item_id)

    def reserve(self, quantity: Decimal, item_uid: str | None = None) -> None:
        """available -> reserved. ``item_uid`` names the item in a shortfall error."""
        quantity = _positive(quantity)
        available = to_decimal(self.available_quantity)
        if available < quantity:
            raise InsufficientStockError(
                self._item_ref(item_uid), quantity, available, scope=f"batch {self.batch_number}"
            )
        self.available_quantity = round_quantity(available - quantity)
        self.reserved_quantity = round_quantity(to_decimal(self.reserved_quantity) + quantity)

    def release_reserved(self, quantity: Decimal) -> Decimal:
        """reserved -> available, clamped to what is reserved. Returns the amount released."""
        quantity = _positive(quantity)
        reserved = to_decimal(self.reserved_quantity)
        released = min(quantity, reserved)
        self.reserved_quantity = round_quantity(reserved - released)
        self.available_quantity = round_quantity(to_decimal(self.available_quantity) + released)
        return released

    def consume(
        self, quantity: Decimal, from_reserved: bool = False, item_uid: str | None = None
    ) -> None:
        """Take stock out of the batch.

        With ``from_reserved`` the reserved bucket is drawn first and the rest comes
        from available; otherwise only available is used.
        """
        quantity = _positive(quantity)
        reserved = to_decimal(self.reserved_quantity)
        available = to_decimal(self.available_quantity)

        from_reserved_qty = min(quantity, reserved) if from_reserved else ZERO
        remaining = quantity - from_reserved_qty
        if remaining > available:
            raise InsufficientStockError(
                self._item_ref(item_uid),
                quantity,
                available + from_reserved_qty,
                scope=f"batch {self.batch_number}",
            )
        self.reserved_quantity = round_quantity(reserved - from_reserved_qty)
        self.available_quantity = round_quantity(available - remaining)

    def add_stock(self, quantity: Decimal) -> None:
        quantity = _positive(quantity)
        self.total_quantity = round_quantity(to_decimal(self.total_quantity) + quantity)
        self.available_quantity = round_quantity(to_decimal(self.available_quantity) + quantity)


def _positive(quantity: Decimal) -> Decimal:
    quantity = round_quantity(quantity)
    if quantity <= 0:
        raise ValidationError("Quantity must be positive", field="quantity")
    return quantity
