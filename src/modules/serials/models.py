"""Serial number model: one physically identifiable unit and its lifecycle."""

from datetime import datetime, timedelta
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import BigInteger, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import BaseModel
from src.core.exceptions import InvalidStateError
from src.shared.utils.dates import as_utc


class SerialStatus(StrEnum):
    """Serial unit status."""

    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    SOLD = "SOLD"
    RETURNED = "RETURNED"
    DAMAGED = "DAMAGED"


class InventorySerial(BaseModel):
    """Serialized unit of an inventory item.

    Transitions:
        AVAILABLE -> RESERVED -> AVAILABLE
        AVAILABLE | RESERVED -> SOLD -> RETURNED
        any -> DAMAGED
        RETURNED | DAMAGED | RESERVED -> AVAILABLE (never from SOLD)
    """

    __tablename__ = "inventory_serials"
    uid_prefix = "SER"

    serial_number: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    inventory_item_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("inventory_items.id"), nullable=False, index=True
    )
    warehouse_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("warehouses.id"), nullable=False, index=True
    )
    batch_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("inventory_batches.id"), nullable=True, index=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SerialStatus.AVAILABLE.value, index=True
    )

    received_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    sold_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    returned_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    warranty_expiry_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    sold_reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    sold_reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    sold_reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    return_reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    return_reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    customer_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    cost_price: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    selling_price: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def _refuse(self, action: str) -> InvalidStateError:
        return InvalidStateError(
            f"Cannot {action} serial {self.serial_number}. Current status: {self.status}",
            details={"serial_number": self.serial_number, "status": self.status},
        )

    def reserve(self) -> None:
        if self.status != SerialStatus.AVAILABLE:
            raise self._refuse("reserve")
        self.status = SerialStatus.RESERVED.value

    def release_reservation(self) -> None:
        if self.status != SerialStatus.RESERVED:
            raise self._refuse("release reservation for")
        self.status = SerialStatus.AVAILABLE.value

    def mark_as_sold(
        self,
        sold_at: datetime,
        reference_type: str,
        reference_id: str,
        reference_number: str | None = None,
        customer_id: str | None = None,
        customer_name: str | None = None,
    ) -> None:
        if self.status not in (SerialStatus.AVAILABLE, SerialStatus.RESERVED):
            raise self._refuse("sell")
        self.status = SerialStatus.SOLD.value
        self.sold_date = as_utc(sold_at)
        self.sold_reference_type = reference_type
        self.sold_reference_id = reference_id
        self.sold_reference_number = reference_number
        self.customer_id = customer_id
        self.customer_name = customer_name

    def mark_as_returned(
        self,
        returned_at: datetime,
        reference_type: str,
        reference_id: str,
        notes: str | None = None,
    ) -> None:
        if self.status != SerialStatus.SOLD:
            raise self._refuse("return")
        self.status = SerialStatus.RETURNED.value
        self.returned_date = as_utc(returned_at)
        self.return_reference_type = reference_type
        self.return_reference_id = reference_id
        if notes is not None:
            self.notes = notes

    def mark_as_damaged(self, notes: str | None = None) -> None:
        self.status = SerialStatus.DAMAGED.value
        if notes is not None:
            self.notes = notes

    def make_available(self) -> None:
        """Back to stock after repair, return or a dropped reservation. Sold units must be returned first."""
        if self.status == SerialStatus.SOLD:
            raise self._refuse("make available (return it first)")
        self.status = SerialStatus.AVAILABLE.value

    def has_warranty_expired(self, now: datetime) -> bool:
        if self.warranty_expiry_date is None:
            return False
        return as_utc(now) > as_utc(self.warranty_expiry_date)

    def is_warranty_expiring_soon(self, days: int, now: datetime) -> bool:
        if self.warranty_expiry_date is None or self.has_warranty_expired(now):
            return False
        return as_utc(self.warranty_expiry_date) <= as_utc(now) + timedelta(days=days)
