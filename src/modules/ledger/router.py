"""API endpoints for the daily inventory ledger."""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.session import get_db
from src.modules.ledger.schemas import (
    LedgerGenerateRequest,
    LedgerGenerateResponse,
    LedgerResponse,
    WarehouseStockTotals,
)
from src.modules.ledger.service import LedgerService
from src.shared.schemas.base import ApiResponse

router = APIRouter(prefix="/ledger", tags=["Ledger"])


def _many(ledgers) -> list[LedgerResponse]:
    return [LedgerResponse.model_validate(row) for row in ledgers]


@router.post("/generate", response_model=ApiResponse[LedgerGenerateResponse])
async def generate_ledger(data: LedgerGenerateRequest, db: AsyncSession = Depends(get_db)):
    """Generate (or regenerate) ledger rows for a day or a range of days."""
    end_date = data.end_date or data.start_date
    entries = await LedgerService(db).generate_ledger_for_date_range(data.start_date, end_date)
    return ApiResponse(
        success=True,
        message=f"{entries} ledger entries generated",
        data=LedgerGenerateResponse(start_date=data.start_date, end_date=end_date, entries=entries),
    )


@router.get("/daily", response_model=ApiResponse[list[LedgerResponse]])
async def get_daily_ledger(
    ledger_date: date = Query(...),
    movement_only: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    """All ledger rows of a day."""
    service = LedgerService(db)
    if movement_only:
        ledgers = await service.get_items_with_movement(ledger_date)
    else:
        ledgers = await service.get_daily_ledger(ledger_date)
    return ApiResponse(success=True, data=_many(ledgers))


@router.get("/item", response_model=ApiResponse[list[LedgerResponse]])
async def get_item_ledger(
    item_id: int = Query(...),
    warehouse_id: int = Query(...),
    start_date: date = Query(...),
    end_date: date = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Ledger history of one item in one warehouse."""
    ledgers = await LedgerService(db).get_ledgers_by_date_range(
        item_id, warehouse_id, start_date, end_date
    )
    return ApiResponse(success=True, data=_many(ledgers))


@router.get("/warehouse/{warehouse_id}", response_model=ApiResponse[list[LedgerResponse]])
async def get_warehouse_ledger(
    warehouse_id: int,
    ledger_date: date = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Ledger rows of a warehouse on a day."""
    ledgers = await LedgerService(db).get_warehouse_ledger(warehouse_id, ledger_date)
    return ApiResponse(success=True, data=_many(ledgers))


@router.get("/warehouse/{warehouse_id}/totals", response_model=ApiResponse[WarehouseStockTotals])
async def get_warehouse_totals(
    warehouse_id: int,
    ledger_date: date = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Closing quantity and value of a warehouse on a day."""
    service = LedgerService(db)
    return ApiResponse(
        success=True,
        data=WarehouseStockTotals(
            warehouse_id=warehouse_id,
            ledger_date=ledger_date,
            total_quantity=await service.get_warehouse_stock_quantity(warehouse_id, ledger_date),
            total_value=await service.get_warehouse_stock_value(warehouse_id, ledger_date),
        ),
    )


@router.get("/{ledger_id}", response_model=ApiResponse[LedgerResponse])
async def get_ledger(ledger_id: int, db: AsyncSession = Depends(get_db)):
    """Get ledger row by ID."""
    ledger = await LedgerService(db).get_ledger(ledger_id)
    return ApiResponse(success=True, data=LedgerResponse.model_validate(ledger))
