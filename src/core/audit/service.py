from datetime import date
from enum import StrEnum
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.models import AuditLog
from src.shared.utils.dates import utc_day_bounds


class AuditAction(StrEnum):
    """Audit actions for stock state changes outside the transaction log."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"

    RESERVE_STOCK = "inventory.reserve"
    RELEASE_STOCK = "inventory.release"
    RESERVE_BATCHES = "batch.reserve"
    RELEASE_BATCHES = "batch.release"
    EXPIRE_BATCHES = "batch.expire"
    SERIAL_STATUS = "serial.status"
    SERIAL_MOVE = "serial.move"
    UPDATE_SETTINGS = "settings.update"


class AuditService:
    """Writes audit rows inside the caller's unit of work (never commits)."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        action: str | AuditAction,
        entity_type: str,
        entity_id: int,
        performed_by: str | None = None,
        entity_identifier: str | None = None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
        comment: str | None = None,
    ) -> AuditLog:
        entry = AuditLog(
            performed_by=performed_by,
            action=str(action),
            entity_type=entity_type,
            entity_id=entity_id,
            entity_identifier=entity_identifier,
            old_values=old_values,
            new_values=new_values,
            comment=comment,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry


async def list_audit_entries(
    session: AsyncSession,
    *,
    date_from: date | None = None,
    date_to: date | None = None,
    entity_type: str | None = None,
    entity_id: int | None = None,
    action: str | None = None,
    performed_by: str | None = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[AuditLog], int]:
    """
    Audit entries, newest first. Both dates are inclusive UTC days.
    Returns (entries, total_count).
    """
    q = select(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    if date_from is not None:
        q = q.where(AuditLog.created_at >= utc_day_bounds(date_from)[0])
    if date_to is not None:
        q = q.where(AuditLog.created_at < utc_day_bounds(date_to)[1])
    if entity_type is not None:
        q = q.where(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        q = q.where(AuditLog.entity_id == entity_id)
    if action is not None:
        q = q.where(AuditLog.action == action)
    if performed_by is not None:
        q = q.where(AuditLog.performed_by == performed_by)

    total_result = await session.execute(select(func.count()).select_from(q.subquery()))
    total = total_result.scalar_one()

    result = await session.execute(q.offset((page - 1) * limit).limit(limit))
    return list(result.scalars().all()), total
