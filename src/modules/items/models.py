"""Inventory item model: stock quantities per item and warehouse."""

from decimal import Decimal

from sqlalchemy import BigInteger, Boolean, ForeignKey, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import BaseModel
from src.shared.utils.stock_math import available_stock


class InventoryItem(BaseModel):
    """Stock row for one item in one warehouse.

    ``available_stock`` is stored for querying but is never written on its own:
    every change of current/reserved goes through ``set_quantities`` which
    recomputes it.
    """

    __tablename__ = "inventory_items"
    uid_prefix = "ITM"

    sku: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    unit: Mapped[str | None] = mapped_column(String(20), nullable=True)

    warehouse_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("warehouses.id"), nullable=False, index=True
    )
    # Optional link to the product catalogue (external)
    product_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    product_variant_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    current_stock: Mapped[Decimal] = mapped_column(
        Numeric(15, 3), nullable=False, default=Decimal("0")
    )
    reserved_stock: Mapped[Decimal] = mapped_column(
        Numeric(15, 3), nullable=False, default=Decimal("0")
    )
    available_stock: Mapped[Decimal] = mapped_column(
        Numeric(15, 3), nullable=False, default=Decimal("0")
    )
    reorder_level: Mapped[Decimal] = mapped_column(
        Numeric(15, 3), nullable=False, default=Decimal("0")
    )
    max_stock_level: Mapped[Decimal] = mapped_column(
        Numeric(15, 3), nullable=False, default=Decimal("0")
    )  # 0 = no ceiling

    cost_price: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )
    selling_price: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )

    batch_tracking_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    serial_tracking_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    expiry_tracking_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint(
            "warehouse_id",
            "product_id",
            "product_variant_id",
            name="uq_inventory_item_product_warehouse",
        ),
    )

    def set_quantities(self, current: Decimal, reserved: Decimal) -> None:
        self.current_stock = current
        self.reserved_stock = reserved
        self.available_stock = available_stock(current, reserved)

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock <= self.reorder_level

    @property
    def is_out_of_stock(self) -> bool:
        return self.current_stock <= 0

    @property
    def is_overstock(self) -> bool:
        return self.max_stock_level > 0 and self.current_stock > self.max_stock_level
