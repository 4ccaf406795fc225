from src.core.exceptions.base import (
    AppException,
    DuplicateError,
    InsufficientStockError,
    InvalidStateError,
    ItemNotFoundInWarehouseError,
    NotFoundError,
    ValidationError,
)

__all__ = [
    "AppException",
    "DuplicateError",
    "InsufficientStockError",
    "InvalidStateError",
    "ItemNotFoundInWarehouseError",
    "NotFoundError",
    "ValidationError",
]
