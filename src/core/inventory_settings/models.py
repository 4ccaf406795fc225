"""Inventory settings model: one row holding the stock consumption policy."""

from enum import StrEnum

from sqlalchemy import BigInteger, Boolean, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, BigIntPK


class ConsumptionStrategy(StrEnum):
    """Order in which batches are drawn down."""

    FIFO = "FIFO"  # oldest received first
    FEFO = "FEFO"  # soonest expiry first
    LIFO = "LIFO"  # newest received first

    @classmethod
    def parse(cls, value: "str | ConsumptionStrategy | None") -> "ConsumptionStrategy":
        """Unknown or missing values fall back to FIFO."""
        if isinstance(value, cls):
            return value
        if value:
            try:
                return cls(str(value).strip().upper())
            except ValueError:
                pass
        return cls.FIFO


class InventoryConfig(Base):
    """Single row: consumption strategy, negative-stock policy, expiry alert window."""

    __tablename__ = "inventory_config"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    stock_consumption_strategy: Mapped[str] = mapped_column(
        String(10), nullable=False, default="FIFO"
    )
    allow_negative_stock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    expiry_alert_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    default_warehouse_id: Mapped[int | None] = mapped_column(
        BigInteger,
        ForeignKey("warehouses.id", ondelete="SET NULL"),
        nullable=True,
    )
