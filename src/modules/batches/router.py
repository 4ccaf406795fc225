"""API endpoints for batches."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.session import get_db
from src.modules.batches.schemas import (
    BatchAllocationLine,
    BatchAllocationRequest,
    BatchCreate,
    BatchReleaseRequest,
    BatchResponse,
    BatchUpdate,
    ExpirySweepResponse,
)
from src.modules.batches.service import BatchService
from src.shared.schemas.base import ApiResponse, PaginatedResponse

router = APIRouter(prefix="/batches", tags=["Batches"])


def _lines(lines: list[tuple[str, object]]) -> list[BatchAllocationLine]:
    return [BatchAllocationLine(batch_uid=uid, quantity=qty) for uid, qty in lines]


@router.post(
    "",
    response_model=ApiResponse[BatchResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_batch(data: BatchCreate, db: AsyncSession = Depends(get_db)):
    """Create a batch."""
    batch = await BatchService(db).create_batch(data)
    return ApiResponse(success=True, message="Batch created", data=BatchResponse.model_validate(batch))


@router.get("", response_model=ApiResponse[PaginatedResponse[BatchResponse]])
async def list_batches(
    item_id: int | None = Query(None),
    warehouse_id: int | None = Query(None),
    active_only: bool = Query(False),
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """List batches."""
    batches, total = await BatchService(db).list_batches(
        item_id=item_id,
        warehouse_id=warehouse_id,
        active_only=active_only,
        page=page,
        limit=limit,
    )
    return ApiResponse(
        success=True,
        data=PaginatedResponse.create(
            items=[BatchResponse.model_validate(b) for b in batches],
            total=total,
            page=page,
            limit=limit,
        ),
    )


@router.get("/expiring", response_model=ApiResponse[list[BatchResponse]])
async def get_expiring_batches(
    days: int | None = Query(None, ge=0, description="Defaults to the configured alert window"),
    warehouse_id: int | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Batches with stock that expire within the alert window."""
    batches = await BatchService(db).get_expiring_batches(days=days, warehouse_id=warehouse_id)
    return ApiResponse(success=True, data=[BatchResponse.model_validate(b) for b in batches])


@router.post("/mark-expired", response_model=ApiResponse[ExpirySweepResponse])
async def mark_expired_batches(
    now: datetime | None = Query(None, description="Reference time (defaults to now)"),
    db: AsyncSession = Depends(get_db),
):
    """Flag batches whose expiry date has passed."""
    count = await BatchService(db).mark_expired_batches(now=now)
    return ApiResponse(success=True, data=ExpirySweepResponse(expired_count=count))


@router.post("/allocate", response_model=ApiResponse[list[BatchAllocationLine]])
async def allocate_batches(data: BatchAllocationRequest, db: AsyncSession = Depends(get_db)):
    """Consume a quantity across batches using the consumption strategy."""
    lines = await BatchService(db).allocate_batches(
        data.inventory_item_id, data.warehouse_id, data.quantity, data.strategy
    )
    return ApiResponse(success=True, data=_lines(lines))


@router.post("/reserve", response_model=ApiResponse[list[BatchAllocationLine]])
async def reserve_batches(data: BatchAllocationRequest, db: AsyncSession = Depends(get_db)):
    """Reserve a quantity across batches using the consumption strategy."""
    lines = await BatchService(db).reserve_batches(
        data.inventory_item_id,
        data.warehouse_id,
        data.quantity,
        data.strategy,
        performed_by=data.performed_by,
    )
    return ApiResponse(success=True, data=_lines(lines))


@router.post("/release", response_model=ApiResponse[list[BatchAllocationLine]])
async def release_reservations(data: BatchReleaseRequest, db: AsyncSession = Depends(get_db)):
    """Release batch reservations."""
    lines = await BatchService(db).release_reservations(
        [(line.batch_uid, line.quantity) for line in data.lines],
        performed_by=data.performed_by,
    )
    return ApiResponse(success=True, data=_lines(lines))


@router.get("/{batch_id}", response_model=ApiResponse[BatchResponse])
async def get_batch(batch_id: int, db: AsyncSession = Depends(get_db)):
    """Get batch by ID."""
    batch = await BatchService(db).get_batch(batch_id)
    return ApiResponse(success=True, data=BatchResponse.model_validate(batch))


@router.put("/{batch_id}", response_model=ApiResponse[BatchResponse])
async def update_batch(batch_id: int, data: BatchUpdate, db: AsyncSession = Depends(get_db)):
    """Update batch details."""
    batch = await BatchService(db).update_batch(batch_id, data)
    return ApiResponse(success=True, message="Batch updated", data=BatchResponse.model_validate(batch))


@router.delete("/{batch_id}", response_model=ApiResponse[BatchResponse])
async def delete_batch(batch_id: int, db: AsyncSession = Depends(get_db)):
    """Delete an empty batch (soft delete)."""
    batch = await BatchService(db).delete_batch(batch_id)
    return ApiResponse(success=True, message="Batch deleted", data=BatchResponse.model_validate(batch))
