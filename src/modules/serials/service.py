"""Service for Serials module: serial records and their lifecycle."""

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.service import AuditAction, AuditService
from src.core.exceptions import (
    DuplicateError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from src.modules.items.models import InventoryItem
from src.modules.items.service import ItemService
from src.modules.serials.models import InventorySerial, SerialStatus
from src.modules.serials.schemas import BulkSerialCreate, SerialCreate, SerialUpdate
from src.modules.warehouses.service import WarehouseService
from src.shared.utils.dates import Clock, as_utc, utc_now

logger = logging.getLogger(__name__)


def _unique_in_order(numbers: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for number in numbers:
        if number not in seen:
            seen.add(number)
            result.append(number)
    return result


class SerialService:
    """Service for serialized units."""

    def __init__(self, db: AsyncSession, clock: Clock = utc_now):
        self.db = db
        self.clock = clock
        self.audit = AuditService(db)
        self.items = ItemService(db)
        self.warehouses = WarehouseService(db)

    async def _get_item_in_warehouse(self, item_id: int, warehouse_id: int) -> InventoryItem:
        item = await self.items.get_item(item_id)
        await self.warehouses.get_warehouse(warehouse_id)
        if item.warehouse_id != warehouse_id:
            raise ValidationError(
                f"Item {item.sku} is not stocked in warehouse {warehouse_id}",
                field="warehouse_id",
            )
        return item

    async def _get_by_number_for_update(self, serial_number: str) -> InventorySerial:
        result = await self.db.execute(
            select(InventorySerial)
            .where(InventorySerial.serial_number == serial_number)
            .with_for_update()
        )
        serial = result.scalar_one_or_none()
        if not serial:
            raise NotFoundError("Serial", serial_number)
        return serial

    async def require_serials(self, serial_numbers: list[str]) -> list[InventorySerial]:
        """Load and lock every listed serial; fail before any change if one is missing."""
        numbers = _unique_in_order(serial_numbers)
        serials = await self.find_serials_by_numbers(numbers, lock=True)
        found = {s.serial_number: s for s in serials}
        missing = [n for n in numbers if n not in found]
        if missing:
            raise NotFoundError("Serial", ", ".join(missing))
        return [found[n] for n in numbers]

    async def _log_status(
        self,
        serial: InventorySerial,
        old_status: str,
        performed_by: str | None,
        comment: str | None = None,
    ) -> None:
        await self.audit.log(
            action=AuditAction.SERIAL_STATUS,
            entity_type="InventorySerial",
            entity_id=serial.id,
            entity_identifier=serial.serial_number,
            performed_by=performed_by,
            old_values={"status": old_status},
            new_values={"status": serial.status},
            comment=comment,
        )

    # --- CRUD ---

    async def create_serial(self, data: SerialCreate, commit: bool = True) -> InventorySerial:
        """Create one AVAILABLE serial. Serial numbers are globally unique."""
        await self._get_item_in_warehouse(data.inventory_item_id, data.warehouse_id)

        existing = await self.db.execute(
            select(InventorySerial.id).where(InventorySerial.serial_number == data.serial_number)
        )
        if existing.scalar_one_or_none() is not None:
            raise DuplicateError("Serial", "serial_number", data.serial_number)

        serial = InventorySerial(
            serial_number=data.serial_number,
            inventory_item_id=data.inventory_item_id,
            warehouse_id=data.warehouse_id,
            batch_id=data.batch_id,
            status=SerialStatus.AVAILABLE.value,
            received_date=as_utc(data.received_date) or self.clock(),
            warranty_expiry_date=as_utc(data.warranty_expiry_date),
            cost_price=data.cost_price,
            selling_price=data.selling_price,
            notes=data.notes,
        )
        self.db.add(serial)
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.CREATE,
            entity_type="InventorySerial",
            entity_id=serial.id,
            entity_identifier=serial.serial_number,
            performed_by=data.performed_by,
            new_values={"status": serial.status, "warehouse_id": serial.warehouse_id},
        )

        if commit:
            await self.db.commit()
            await self.db.refresh(serial)
        return serial

    async def create_bulk_serials(
        self, data: BulkSerialCreate, commit: bool = True
    ) -> list[InventorySerial]:
        """Create all listed serials, or none of them.

        Any number repeated in the request or already present anywhere rejects
        the whole request.
        """
        await self._get_item_in_warehouse(data.inventory_item_id, data.warehouse_id)
        await self.ensure_serial_numbers_free(data.serial_numbers)

        received = as_utc(data.received_date) or self.clock()
        serials = [
            InventorySerial(
                serial_number=number,
                inventory_item_id=data.inventory_item_id,
                warehouse_id=data.warehouse_id,
                batch_id=data.batch_id,
                status=SerialStatus.AVAILABLE.value,
                received_date=received,
                warranty_expiry_date=as_utc(data.warranty_expiry_date),
                cost_price=data.cost_price,
                selling_price=data.selling_price,
                notes=data.notes,
            )
            for number in data.serial_numbers
        ]
        self.db.add_all(serials)
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.CREATE,
            entity_type="InventoryItem",
            entity_id=data.inventory_item_id,
            performed_by=data.performed_by,
            new_values={"serial_numbers": list(data.serial_numbers)},
            comment="Bulk serial creation",
        )

        if commit:
            await self.db.commit()
        return serials

    async def ensure_serial_numbers_free(self, serial_numbers: list[str]) -> None:
        """Raise DuplicateError for numbers repeated in the list or already stored."""
        repeated = sorted({n for n in serial_numbers if serial_numbers.count(n) > 1})
        if repeated:
            raise DuplicateError("Serial", "serial_number", ", ".join(repeated))

        existing = await self.db.execute(
            select(InventorySerial.serial_number).where(
                InventorySerial.serial_number.in_(serial_numbers)
            )
        )
        existing_numbers = sorted(existing.scalars().all())
        if existing_numbers:
            raise DuplicateError("Serial", "serial_number", ", ".join(existing_numbers))

    async def update_serial(
        self, serial_id: int, data: SerialUpdate, commit: bool = True
    ) -> InventorySerial:
        result = await self.db.execute(
            select(InventorySerial).where(InventorySerial.id == serial_id).with_for_update()
        )
        serial = result.scalar_one_or_none()
        if not serial:
            raise NotFoundError("Serial", serial_id)

        serial.warranty_expiry_date = as_utc(data.warranty_expiry_date)
        serial.cost_price = data.cost_price
        serial.selling_price = data.selling_price
        serial.notes = data.notes
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.UPDATE,
            entity_type="InventorySerial",
            entity_id=serial.id,
            entity_identifier=serial.serial_number,
            performed_by=data.performed_by,
        )
        if commit:
            await self.db.commit()
            await self.db.refresh(serial)
        return serial

    async def delete_serial(
        self, serial_id: int, performed_by: str | None = None, commit: bool = True
    ) -> None:
        """Delete a serial that never left stock. Anything else is history and stays."""
        serial = await self.get_serial(serial_id)
        if serial.status != SerialStatus.AVAILABLE:
            raise InvalidStateError(
                f"Only AVAILABLE serials can be deleted; {serial.serial_number} is {serial.status}",
                details={"serial_number": serial.serial_number, "status": serial.status},
            )
        await self.audit.log(
            action=AuditAction.DELETE,
            entity_type="InventorySerial",
            entity_id=serial.id,
            entity_identifier=serial.serial_number,
            performed_by=performed_by,
            old_values={"status": serial.status},
        )
        await self.db.delete(serial)
        await self.db.flush()
        if commit:
            await self.db.commit()

    # --- Lookups ---

    async def get_serial(self, serial_id: int) -> InventorySerial:
        result = await self.db.execute(select(InventorySerial).where(InventorySerial.id == serial_id))
        serial = result.scalar_one_or_none()
        if not serial:
            raise NotFoundError("Serial", serial_id)
        return serial

    async def get_serial_by_number(self, serial_number: str) -> InventorySerial:
        result = await self.db.execute(
            select(InventorySerial).where(InventorySerial.serial_number == serial_number)
        )
        serial = result.scalar_one_or_none()
        if not serial:
            raise NotFoundError("Serial", serial_number)
        return serial

    async def find_serials_by_numbers(
        self, serial_numbers: list[str], lock: bool = False
    ) -> list[InventorySerial]:
        if not serial_numbers:
            return []
        query = select(InventorySerial).where(InventorySerial.serial_number.in_(serial_numbers))
        if lock:
            query = query.with_for_update()
        result = await self.db.execute(query.order_by(InventorySerial.id))
        return list(result.scalars().all())

    async def list_serials(
        self,
        item_id: int | None = None,
        warehouse_id: int | None = None,
        status: SerialStatus | None = None,
        page: int = 1,
        limit: int = 100,
    ) -> tuple[list[InventorySerial], int]:
        query = select(InventorySerial).order_by(
            InventorySerial.received_date.asc(), InventorySerial.id.asc()
        )
        if item_id is not None:
            query = query.where(InventorySerial.inventory_item_id == item_id)
        if warehouse_id is not None:
            query = query.where(InventorySerial.warehouse_id == warehouse_id)
        if status is not None:
            query = query.where(InventorySerial.status == SerialStatus(status).value)

        count_query = select(func.count()).select_from(query.subquery())
        total_result = await self.db.execute(count_query)
        total = total_result.scalar() or 0

        offset = (page - 1) * limit
        result = await self.db.execute(query.offset(offset).limit(limit))
        return list(result.scalars().all()), total

    async def get_serials_by_customer(self, customer_id: str) -> list[InventorySerial]:
        result = await self.db.execute(
            select(InventorySerial)
            .where(InventorySerial.customer_id == customer_id)
            .order_by(InventorySerial.sold_date.desc(), InventorySerial.id.desc())
        )
        return list(result.scalars().all())

    # --- Allocation and reservation ---

    async def allocate_serials(
        self, item_id: int, warehouse_id: int, quantity: int
    ) -> list[InventorySerial]:
        """Pick the ``quantity`` oldest AVAILABLE serials. Nothing is changed."""
        if quantity <= 0:
            raise ValidationError("Quantity must be positive", field="quantity")
        item = await self._get_item_in_warehouse(item_id, warehouse_id)

        result = await self.db.execute(
            select(InventorySerial)
            .where(
                InventorySerial.inventory_item_id == item_id,
                InventorySerial.warehouse_id == warehouse_id,
                InventorySerial.status == SerialStatus.AVAILABLE.value,
            )
            .order_by(InventorySerial.received_date.asc(), InventorySerial.id.asc())
            .limit(quantity)
        )
        serials = list(result.scalars().all())
        if len(serials) < quantity:
            raise InsufficientStockError(item.uid, quantity, len(serials), scope="serials")
        return serials

    async def reserve_serials(
        self,
        serial_numbers: list[str],
        performed_by: str | None = None,
        commit: bool = True,
    ) -> list[InventorySerial]:
        """Reserve every listed serial; all must exist and be AVAILABLE."""
        serials = await self.require_serials(serial_numbers)
        not_available = [s.serial_number for s in serials if s.status != SerialStatus.AVAILABLE]
        if not_available:
            raise InvalidStateError(
                f"Serials not available: {', '.join(not_available)}",
                details={"serial_numbers": not_available},
            )
        for serial in serials:
            serial.reserve()
            await self._log_status(serial, SerialStatus.AVAILABLE.value, performed_by)
        await self.db.flush()
        if commit:
            await self.db.commit()
        return serials

    async def release_serial_reservations(
        self,
        serial_numbers: list[str],
        performed_by: str | None = None,
        commit: bool = True,
    ) -> list[InventorySerial]:
        """Release the listed serials that are RESERVED; others are skipped."""
        serials = await self.find_serials_by_numbers(_unique_in_order(serial_numbers), lock=True)
        released: list[InventorySerial] = []
        for serial in serials:
            if serial.status != SerialStatus.RESERVED:
                logger.debug("Serial %s is %s, nothing to release", serial.serial_number, serial.status)
                continue
            serial.release_reservation()
            await self._log_status(serial, SerialStatus.RESERVED.value, performed_by)
            released.append(serial)
        await self.db.flush()
        if commit:
            await self.db.commit()
        return released

    # --- Lifecycle ---

    async def mark_serials_as_sold(
        self,
        serial_numbers: list[str],
        reference_type: str,
        reference_id: str,
        reference_number: str | None = None,
        customer_id: str | None = None,
        customer_name: str | None = None,
        sold_at: datetime | None = None,
        performed_by: str | None = None,
        commit: bool = True,
    ) -> list[InventorySerial]:
        """Sell every listed serial or none: all must be AVAILABLE or RESERVED."""
        serials = await self.require_serials(serial_numbers)
        self.check_sellable(serials)

        sold_at = sold_at or self.clock()
        for serial in serials:
            old_status = serial.status
            serial.mark_as_sold(
                sold_at,
                reference_type,
                reference_id,
                reference_number=reference_number,
                customer_id=customer_id,
                customer_name=customer_name,
            )
            await self._log_status(serial, old_status, performed_by, comment=f"{reference_type} {reference_id}")
        await self.db.flush()
        if commit:
            await self.db.commit()
        return serials

    @staticmethod
    def check_sellable(serials: list[InventorySerial]) -> None:
        blocked = [
            s.serial_number
            for s in serials
            if s.status not in (SerialStatus.AVAILABLE, SerialStatus.RESERVED)
        ]
        if blocked:
            raise InvalidStateError(
                f"Serials cannot be sold: {', '.join(blocked)}",
                details={"serial_numbers": blocked},
            )

    async def mark_serial_as_sold(
        self,
        serial_number: str,
        reference_type: str,
        reference_id: str,
        reference_number: str | None = None,
        customer_id: str | None = None,
        customer_name: str | None = None,
        sold_at: datetime | None = None,
        performed_by: str | None = None,
        commit: bool = True,
    ) -> InventorySerial:
        serials = await self.mark_serials_as_sold(
            [serial_number],
            reference_type,
            reference_id,
            reference_number=reference_number,
            customer_id=customer_id,
            customer_name=customer_name,
            sold_at=sold_at,
            performed_by=performed_by,
            commit=commit,
        )
        return serials[0]

    async def mark_serial_as_returned(
        self,
        serial_number: str,
        reference_type: str,
        reference_id: str,
        notes: str | None = None,
        returned_at: datetime | None = None,
        performed_by: str | None = None,
        commit: bool = True,
    ) -> InventorySerial:
        serial = await self._get_by_number_for_update(serial_number)
        old_status = serial.status
        serial.mark_as_returned(returned_at or self.clock(), reference_type, reference_id, notes)
        await self._log_status(serial, old_status, performed_by, comment=f"{reference_type} {reference_id}")
        await self.db.flush()
        if commit:
            await self.db.commit()
            await self.db.refresh(serial)
        return serial

    async def mark_serial_as_damaged(
        self,
        serial_number: str,
        notes: str | None = None,
        performed_by: str | None = None,
        commit: bool = True,
    ) -> InventorySerial:
        serial = await self._get_by_number_for_update(serial_number)
        old_status = serial.status
        serial.mark_as_damaged(notes)
        await self._log_status(serial, old_status, performed_by, comment=notes)
        await self.db.flush()
        if commit:
            await self.db.commit()
            await self.db.refresh(serial)
        return serial

    async def make_serial_available(
        self,
        serial_number: str,
        performed_by: str | None = None,
        commit: bool = True,
    ) -> InventorySerial:
        serial = await self._get_by_number_for_update(serial_number)
        old_status = serial.status
        serial.make_available()
        await self._log_status(serial, old_status, performed_by)
        await self.db.flush()
        if commit:
            await self.db.commit()
            await self.db.refresh(serial)
        return serial

    async def move_serials(
        self,
        serial_numbers: list[str],
        warehouse_id: int,
        inventory_item_id: int | None = None,
        performed_by: str | None = None,
        commit: bool = True,
    ) -> list[InventorySerial]:
        """Reassign serials to another warehouse (and that warehouse's item row)."""
        serials = await self.require_serials(serial_numbers)
        for serial in serials:
            old_warehouse = serial.warehouse_id
            serial.warehouse_id = warehouse_id
            if inventory_item_id is not None:
                serial.inventory_item_id = inventory_item_id
            await self.audit.log(
                action=AuditAction.SERIAL_MOVE,
                entity_type="InventorySerial",
                entity_id=serial.id,
                entity_identifier=serial.serial_number,
                performed_by=performed_by,
                old_values={"warehouse_id": old_warehouse},
                new_values={"warehouse_id": warehouse_id},
            )
        await self.db.flush()
        if commit:
            await self.db.commit()
        return serials

    # --- Warranty and summaries ---

    async def get_serials_with_expiring_warranty(
        self, days: int, now: datetime | None = None
    ) -> list[InventorySerial]:
        """Sold serials whose warranty ends within ``days``."""
        now = as_utc(now or self.clock())
        result = await self.db.execute(
            select(InventorySerial)
            .where(
                InventorySerial.status == SerialStatus.SOLD.value,
                InventorySerial.warranty_expiry_date.is_not(None),
                InventorySerial.warranty_expiry_date <= now + timedelta(days=days),
            )
            .order_by(InventorySerial.warranty_expiry_date.asc(), InventorySerial.id.asc())
        )
        return list(result.scalars().all())

    async def get_customer_serials_with_active_warranty(
        self, customer_id: str, now: datetime | None = None
    ) -> list[InventorySerial]:
        now = as_utc(now or self.clock())
        result = await self.db.execute(
            select(InventorySerial)
            .where(
                InventorySerial.customer_id == customer_id,
                InventorySerial.status == SerialStatus.SOLD.value,
                or_(
                    InventorySerial.warranty_expiry_date.is_(None),
                    InventorySerial.warranty_expiry_date > now,
                ),
            )
            .order_by(InventorySerial.sold_date.desc(), InventorySerial.id.desc())
        )
        return list(result.scalars().all())

    async def get_status_summary(self, item_id: int, warehouse_id: int) -> dict[str, int]:
        """Count of serials per status (every status present, zero when none)."""
        result = await self.db.execute(
            select(InventorySerial.status, func.count())
            .where(
                InventorySerial.inventory_item_id == item_id,
                InventorySerial.warehouse_id == warehouse_id,
            )
            .group_by(InventorySerial.status)
        )
        summary = {status.value: 0 for status in SerialStatus}
        for status, count in result.all():
            summary[status] = count
        return summary

    async def count_available_serials(self, item_id: int, warehouse_id: int) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(InventorySerial)
            .where(
                InventorySerial.inventory_item_id == item_id,
                InventorySerial.warehouse_id == warehouse_id,
                InventorySerial.status == SerialStatus.AVAILABLE.value,
            )
        )
        return result.scalar() or 0
