"""API endpoints for stock movements."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.session import get_db
from src.modules.transactions.models import TransactionType
from src.modules.transactions.schemas import (
    PhysicalCountRequest,
    StockAdjustmentRequest,
    StockInRequest,
    StockOutRequest,
    StockTransferRequest,
    TransactionResponse,
)
from src.modules.transactions.service import TransactionService
from src.shared.schemas.base import ApiResponse, PaginatedResponse

router = APIRouter(prefix="/transactions", tags=["Transactions"])


def _many(transactions) -> list[TransactionResponse]:
    return [TransactionResponse.model_validate(t) for t in transactions]


@router.post(
    "/stock-in",
    response_model=ApiResponse[TransactionResponse],
    status_code=status.HTTP_201_CREATED,
)
async def stock_in(data: StockInRequest, db: AsyncSession = Depends(get_db)):
    """Receive stock into a warehouse."""
    transaction = await TransactionService(db).stock_in(data)
    return ApiResponse(
        success=True,
        message="Stock received",
        data=TransactionResponse.model_validate(transaction),
    )


@router.post(
    "/stock-out",
    response_model=ApiResponse[TransactionResponse],
    status_code=status.HTTP_201_CREATED,
)
async def stock_out(data: StockOutRequest, db: AsyncSession = Depends(get_db)):
    """Issue stock from a warehouse."""
    transaction = await TransactionService(db).stock_out(data)
    return ApiResponse(
        success=True,
        message="Stock issued",
        data=TransactionResponse.model_validate(transaction),
    )


@router.post(
    "/transfer",
    response_model=ApiResponse[list[TransactionResponse]],
    status_code=status.HTTP_201_CREATED,
)
async def transfer_stock(data: StockTransferRequest, db: AsyncSession = Depends(get_db)):
    """Move stock between warehouses (returns both legs)."""
    transactions = await TransactionService(db).transfer_stock(data)
    return ApiResponse(success=True, message="Stock transferred", data=_many(transactions))


@router.post(
    "/adjust",
    response_model=ApiResponse[TransactionResponse],
    status_code=status.HTTP_201_CREATED,
)
async def adjust_stock(data: StockAdjustmentRequest, db: AsyncSession = Depends(get_db)):
    """Correct stock by a signed quantity."""
    transaction = await TransactionService(db).adjust_stock(data)
    return ApiResponse(
        success=True,
        message="Stock adjusted",
        data=TransactionResponse.model_validate(transaction),
    )


@router.post(
    "/count",
    response_model=ApiResponse[TransactionResponse],
    status_code=status.HTTP_201_CREATED,
)
async def physical_count(data: PhysicalCountRequest, db: AsyncSession = Depends(get_db)):
    """Record a physical count."""
    transaction = await TransactionService(db).physical_count(data)
    return ApiResponse(
        success=True,
        message="Count recorded",
        data=TransactionResponse.model_validate(transaction),
    )


@router.get("", response_model=ApiResponse[PaginatedResponse[TransactionResponse]])
async def list_transactions(
    item_id: int | None = Query(None),
    warehouse_id: int | None = Query(None),
    transaction_type: TransactionType | None = Query(None),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None, description="Exclusive upper bound"),
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """List transactions, newest first."""
    transactions, total = await TransactionService(db).list_transactions(
        item_id=item_id,
        warehouse_id=warehouse_id,
        transaction_type=transaction_type,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit,
    )
    return ApiResponse(
        success=True,
        data=PaginatedResponse.create(items=_many(transactions), total=total, page=page, limit=limit),
    )


@router.get("/by-reference", response_model=ApiResponse[list[TransactionResponse]])
async def get_transactions_by_reference(
    reference_type: str = Query(...),
    reference_id: str = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Transactions raised for a source document."""
    transactions = await TransactionService(db).get_transactions_by_reference(
        reference_type, reference_id
    )
    return ApiResponse(success=True, data=_many(transactions))


@router.get("/by-number/{transaction_number}", response_model=ApiResponse[TransactionResponse])
async def get_transaction_by_number(transaction_number: str, db: AsyncSession = Depends(get_db)):
    """Get transaction by its number."""
    transaction = await TransactionService(db).get_transaction_by_number(transaction_number)
    return ApiResponse(success=True, data=TransactionResponse.model_validate(transaction))


@router.get("/{transaction_id}", response_model=ApiResponse[TransactionResponse])
async def get_transaction(transaction_id: int, db: AsyncSession = Depends(get_db)):
    """Get transaction by ID."""
    transaction = await TransactionService(db).get_transaction(transaction_id)
    return ApiResponse(success=True, data=TransactionResponse.model_validate(transaction))
