from decimal import Decimal
from typing import Any

Quantity = Decimal | int | float


class AppException(Exception):
    """Domain error carrying the HTTP status it maps to and a details payload."""

    status_code: int = 400

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}


class NotFoundError(AppException):
    status_code = 404

    def __init__(self, resource: str, identifier: Any = None):
        suffix = f": {identifier}" if identifier else ""
        super().__init__(f"{resource} not found{suffix}")


class ItemNotFoundInWarehouseError(NotFoundError):
    """The item exists, but not in the warehouse the operation names."""

    def __init__(self, item_id: str, warehouse_id: str):
        super().__init__("Inventory item in warehouse", f"{item_id} @ {warehouse_id}")
        self.details = {"item_id": item_id, "warehouse_id": warehouse_id}


class ValidationError(AppException):
    status_code = 422

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, details={"field": field} if field else None)


class InvalidStateError(AppException):
    """Operation refused in the entity's current state (inactive, sold, not empty...)."""

    status_code = 409

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, details=details)


class InsufficientStockError(AppException):
    """Requested more than is available. ``scope`` narrows it, e.g. "batch B1"."""

    def __init__(self, item_id: str, requested: Quantity, available: Quantity, scope: str | None = None):
        target = f"{scope} for item {item_id}" if scope else f"item {item_id}"
        super().__init__(
            f"Insufficient stock for {target}: requested {requested}, available {available}",
            details={"item_id": item_id, "requested": str(requested), "available": str(available)},
        )
        self.requested = requested
        self.available = available


class DuplicateError(AppException):
    status_code = 409

    def __init__(self, resource: str, field: str, value: Any):
        super().__init__(
            f"{resource} with {field}={value} already exists",
            details={"field": field, "value": value},
        )
