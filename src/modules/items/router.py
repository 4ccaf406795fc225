"""API endpoints for inventory items."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.session import get_db
from src.modules.items.schemas import (
    ItemCreate,
    ItemResponse,
    ItemUpdate,
    StockAlertSummary,
    StockReservationRequest,
)
from src.modules.items.service import ItemService
from src.shared.schemas.base import ApiResponse, PaginatedResponse

router = APIRouter(prefix="/items", tags=["Items"])


@router.post(
    "",
    response_model=ApiResponse[ItemResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_item(data: ItemCreate, db: AsyncSession = Depends(get_db)):
    """Create an inventory item (stock starts at zero)."""
    service = ItemService(db)
    item = await service.create_item(data)
    return ApiResponse(
        success=True,
        message="Item created",
        data=ItemResponse.model_validate(item),
    )


@router.get("", response_model=ApiResponse[PaginatedResponse[ItemResponse]])
async def list_items(
    warehouse_id: int | None = Query(None),
    active_only: bool = Query(False),
    search: str | None = Query(None, description="Search by name or SKU"),
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """List inventory items."""
    service = ItemService(db)
    items, total = await service.list_items(
        warehouse_id=warehouse_id,
        active_only=active_only,
        search=search,
        page=page,
        limit=limit,
    )
    return ApiResponse(
        success=True,
        data=PaginatedResponse.create(
            items=[ItemResponse.model_validate(i) for i in items],
            total=total,
            page=page,
            limit=limit,
        ),
    )


@router.get("/alerts", response_model=ApiResponse[StockAlertSummary])
async def get_stock_alerts(
    warehouse_id: int | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Counts of low-stock, out-of-stock and overstock items."""
    service = ItemService(db)
    return ApiResponse(
        success=True,
        data=StockAlertSummary(
            low_stock=await service.count_low_stock_items(warehouse_id),
            out_of_stock=len(await service.get_out_of_stock_items(warehouse_id)),
            overstock=len(await service.get_overstock_items(warehouse_id)),
        ),
    )


@router.get("/low-stock", response_model=ApiResponse[list[ItemResponse]])
async def get_low_stock_items(
    warehouse_id: int | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Active items at or below their reorder level."""
    items = await ItemService(db).get_low_stock_items(warehouse_id)
    return ApiResponse(success=True, data=[ItemResponse.model_validate(i) for i in items])


@router.get("/{item_id}", response_model=ApiResponse[ItemResponse])
async def get_item(item_id: int, db: AsyncSession = Depends(get_db)):
    """Get inventory item by ID."""
    item = await ItemService(db).get_item(item_id)
    return ApiResponse(success=True, data=ItemResponse.model_validate(item))


@router.put("/{item_id}", response_model=ApiResponse[ItemResponse])
async def update_item(item_id: int, data: ItemUpdate, db: AsyncSession = Depends(get_db)):
    """Replace item details (stock quantities are changed only by transactions)."""
    item = await ItemService(db).update_item(item_id, data)
    return ApiResponse(
        success=True,
        message="Item updated",
        data=ItemResponse.model_validate(item),
    )


@router.delete("/{item_id}", response_model=ApiResponse[ItemResponse])
async def deactivate_item(item_id: int, db: AsyncSession = Depends(get_db)):
    """Deactivate an item (soft delete)."""
    item = await ItemService(db).deactivate_item(item_id)
    return ApiResponse(
        success=True,
        message="Item deactivated",
        data=ItemResponse.model_validate(item),
    )


@router.post("/{item_id}/reserve", response_model=ApiResponse[ItemResponse])
async def reserve_stock(
    item_id: int,
    data: StockReservationRequest,
    db: AsyncSession = Depends(get_db),
):
    """Reserve stock on an item."""
    item = await ItemService(db).reserve_stock(item_id, data.quantity, data.performed_by)
    return ApiResponse(
        success=True,
        message="Stock reserved",
        data=ItemResponse.model_validate(item),
    )


@router.post("/{item_id}/release", response_model=ApiResponse[ItemResponse])
async def release_reserved_stock(
    item_id: int,
    data: StockReservationRequest,
    db: AsyncSession = Depends(get_db),
):
    """Release reserved stock on an item."""
    item = await ItemService(db).release_reserved_stock(item_id, data.quantity, data.performed_by)
    return ApiResponse(
        success=True,
        message="Reservation released",
        data=ItemResponse.model_validate(item),
    )
