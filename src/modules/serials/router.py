"""API endpoints for serial numbers."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.session import get_db
from src.modules.serials.models import SerialStatus
from src.modules.serials.schemas import (
    BulkSerialCreate,
    SerialCreate,
    SerialNoteRequest,
    SerialNumbersRequest,
    SerialResponse,
    SerialReturnRequest,
    SerialSaleRequest,
    SerialStatusSummary,
    SerialUpdate,
)
from src.modules.serials.service import SerialService
from src.shared.schemas.base import ApiResponse, PaginatedResponse

router = APIRouter(prefix="/serials", tags=["Serials"])


def _many(serials) -> list[SerialResponse]:
    return [SerialResponse.model_validate(s) for s in serials]


@router.post(
    "",
    response_model=ApiResponse[SerialResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_serial(data: SerialCreate, db: AsyncSession = Depends(get_db)):
    """Create a serial."""
    serial = await SerialService(db).create_serial(data)
    return ApiResponse(success=True, message="Serial created", data=SerialResponse.model_validate(serial))


@router.post(
    "/bulk",
    response_model=ApiResponse[list[SerialResponse]],
    status_code=status.HTTP_201_CREATED,
)
async def create_bulk_serials(data: BulkSerialCreate, db: AsyncSession = Depends(get_db)):
    """Create several serials at once (all or nothing)."""
    serials = await SerialService(db).create_bulk_serials(data)
    return ApiResponse(success=True, message=f"{len(serials)} serials created", data=_many(serials))


@router.get("", response_model=ApiResponse[PaginatedResponse[SerialResponse]])
async def list_serials(
    item_id: int | None = Query(None),
    warehouse_id: int | None = Query(None),
    serial_status: SerialStatus | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """List serials."""
    serials, total = await SerialService(db).list_serials(
        item_id=item_id,
        warehouse_id=warehouse_id,
        status=serial_status,
        page=page,
        limit=limit,
    )
    return ApiResponse(
        success=True,
        data=PaginatedResponse.create(items=_many(serials), total=total, page=page, limit=limit),
    )


@router.get("/summary", response_model=ApiResponse[SerialStatusSummary])
async def get_status_summary(
    item_id: int = Query(...),
    warehouse_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Serial counts per status for an item in a warehouse."""
    summary = await SerialService(db).get_status_summary(item_id, warehouse_id)
    return ApiResponse(
        success=True,
        data=SerialStatusSummary(**{key.lower(): value for key, value in summary.items()}),
    )


@router.get("/warranty-expiring", response_model=ApiResponse[list[SerialResponse]])
async def get_serials_with_expiring_warranty(
    days: int = Query(30, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """Sold serials whose warranty ends within the given number of days."""
    serials = await SerialService(db).get_serials_with_expiring_warranty(days)
    return ApiResponse(success=True, data=_many(serials))


@router.get("/customer/{customer_id}", response_model=ApiResponse[list[SerialResponse]])
async def get_serials_by_customer(
    customer_id: str,
    active_warranty_only: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    """Serials sold to a customer."""
    service = SerialService(db)
    if active_warranty_only:
        serials = await service.get_customer_serials_with_active_warranty(customer_id)
    else:
        serials = await service.get_serials_by_customer(customer_id)
    return ApiResponse(success=True, data=_many(serials))


@router.post("/reserve", response_model=ApiResponse[list[SerialResponse]])
async def reserve_serials(data: SerialNumbersRequest, db: AsyncSession = Depends(get_db)):
    """Reserve serials (all must be available)."""
    serials = await SerialService(db).reserve_serials(data.serial_numbers, data.performed_by)
    return ApiResponse(success=True, data=_many(serials))


@router.post("/release", response_model=ApiResponse[list[SerialResponse]])
async def release_serial_reservations(data: SerialNumbersRequest, db: AsyncSession = Depends(get_db)):
    """Release reserved serials."""
    serials = await SerialService(db).release_serial_reservations(
        data.serial_numbers, data.performed_by
    )
    return ApiResponse(success=True, data=_many(serials))


@router.post("/sell", response_model=ApiResponse[list[SerialResponse]])
async def mark_serials_as_sold(data: SerialSaleRequest, db: AsyncSession = Depends(get_db)):
    """Mark serials as sold (all or nothing)."""
    serials = await SerialService(db).mark_serials_as_sold(
        data.serial_numbers,
        data.reference_type,
        data.reference_id,
        reference_number=data.reference_number,
        customer_id=data.customer_id,
        customer_name=data.customer_name,
        sold_at=data.sold_at,
        performed_by=data.performed_by,
    )
    return ApiResponse(success=True, data=_many(serials))


@router.get("/by-number/{serial_number}", response_model=ApiResponse[SerialResponse])
async def get_serial_by_number(serial_number: str, db: AsyncSession = Depends(get_db)):
    """Get serial by serial number."""
    serial = await SerialService(db).get_serial_by_number(serial_number)
    return ApiResponse(success=True, data=SerialResponse.model_validate(serial))


@router.post("/by-number/{serial_number}/return", response_model=ApiResponse[SerialResponse])
async def mark_serial_as_returned(
    serial_number: str,
    data: SerialReturnRequest,
    db: AsyncSession = Depends(get_db),
):
    """Mark a sold serial as returned."""
    serial = await SerialService(db).mark_serial_as_returned(
        serial_number,
        data.reference_type,
        data.reference_id,
        notes=data.notes,
        returned_at=data.returned_at,
        performed_by=data.performed_by,
    )
    return ApiResponse(success=True, data=SerialResponse.model_validate(serial))


@router.post("/by-number/{serial_number}/damage", response_model=ApiResponse[SerialResponse])
async def mark_serial_as_damaged(
    serial_number: str,
    data: SerialNoteRequest,
    db: AsyncSession = Depends(get_db),
):
    """Mark a serial as damaged."""
    serial = await SerialService(db).mark_serial_as_damaged(
        serial_number, notes=data.notes, performed_by=data.performed_by
    )
    return ApiResponse(success=True, data=SerialResponse.model_validate(serial))


@router.post("/by-number/{serial_number}/make-available", response_model=ApiResponse[SerialResponse])
async def make_serial_available(
    serial_number: str,
    data: SerialNoteRequest,
    db: AsyncSession = Depends(get_db),
):
    """Put a returned, damaged or reserved serial back into stock."""
    serial = await SerialService(db).make_serial_available(serial_number, performed_by=data.performed_by)
    return ApiResponse(success=True, data=SerialResponse.model_validate(serial))


@router.get("/{serial_id}", response_model=ApiResponse[SerialResponse])
async def get_serial(serial_id: int, db: AsyncSession = Depends(get_db)):
    """Get serial by ID."""
    serial = await SerialService(db).get_serial(serial_id)
    return ApiResponse(success=True, data=SerialResponse.model_validate(serial))


@router.put("/{serial_id}", response_model=ApiResponse[SerialResponse])
async def update_serial(serial_id: int, data: SerialUpdate, db: AsyncSession = Depends(get_db)):
    """Update serial details."""
    serial = await SerialService(db).update_serial(serial_id, data)
    return ApiResponse(success=True, message="Serial updated", data=SerialResponse.model_validate(serial))


@router.delete("/{serial_id}", response_model=ApiResponse[None])
async def delete_serial(serial_id: int, db: AsyncSession = Depends(get_db)):
    """Delete an AVAILABLE serial."""
    await SerialService(db).delete_serial(serial_id)
    return ApiResponse(success=True, message="Serial deleted", data=None)
