"""API endpoint for the audit trail (read-only)."""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.schemas import AuditEntryResponse
from src.core.audit.service import list_audit_entries
from src.core.database.session import get_db
from src.shared.schemas.base import ApiResponse, PaginatedResponse

router = APIRouter(prefix="/audit", tags=["Audit"])


@router.get("", response_model=ApiResponse[PaginatedResponse[AuditEntryResponse]])
async def get_audit_trail(
    date_from: date | None = Query(None, description="Filter from date (inclusive)"),
    date_to: date | None = Query(None, description="Filter to date (inclusive)"),
    entity_type: str | None = Query(None),
    entity_id: int | None = Query(None),
    action: str | None = Query(None),
    performed_by: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Reservations, serial transitions, expiry sweeps and settings changes."""
    entries, total = await list_audit_entries(
        db,
        date_from=date_from,
        date_to=date_to,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        performed_by=performed_by,
        page=page,
        limit=limit,
    )
    return ApiResponse(
        data=PaginatedResponse.create(
            items=[AuditEntryResponse.model_validate(a) for a in entries],
            total=total,
            page=page,
            limit=limit,
        ),
    )
