import logging

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from src.core.config import settings
from src.core.exceptions import AppException
from src.shared.schemas import ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)

# Natural keys whose unique constraints map to 409, checked in this order.
_UNIQUE_FIELDS = ("transaction_number", "serial_number", "batch_number", "sku")


def _error_response(
    status_code: int,
    message: str,
    errors: list[ErrorDetail] | None = None,
    details: dict | None = None,
) -> JSONResponse:
    body = ErrorResponse(
        message=message,
        errors=errors if errors is not None else [ErrorDetail(message=message)],
        details=details or {},
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Domain errors keep their status code and details."""
    field = exc.details.get("field")
    return _error_response(
        exc.status_code,
        exc.message,
        errors=[ErrorDetail(field=field, message=exc.message)],
        details=exc.details,
    )


def _format_validation_errors(errors: list[dict]) -> list[ErrorDetail]:
    details: list[ErrorDetail] = []
    for error in errors:
        loc = error.get("loc", ())
        # "body.quantity" reads better as "quantity"
        if loc and loc[0] == "body":
            loc = loc[1:]
        field = ".".join(str(part) for part in loc) if loc else None
        details.append(ErrorDetail(field=field, message=error.get("msg", "Invalid value")))
    return details


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return _error_response(422, "Validation error", errors=_format_validation_errors(exc.errors()))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    message = str(exc.detail) if exc.detail else "HTTP error"
    return _error_response(exc.status_code, message)


def _friendly_db_error(exc: Exception) -> tuple[str, str | None, int]:
    """
    Turn a constraint violation into (message, field, status code).

    A unique violation on a natural key is what a concurrent writer hits after
    passing the same pre-check, so it gets the same 409 as the pre-check.
    """
    raw = str(getattr(exc, "orig", exc))
    lower = raw.lower()

    if "unique" in lower or "duplicate key" in lower:
        for field in _UNIQUE_FIELDS:
            if field in lower:
                return (f"Duplicate value for {field}", field, 409)
        return ("Duplicate value", None, 409)

    if settings.debug:
        return (raw, None, 500)
    return ("Database error", None, 500)


async def sqlalchemy_db_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    message, field, status_code = _friendly_db_error(exc)
    if status_code >= 500:
        logger.error("Integrity error on %s %s: %s", request.method, request.url.path, exc)
    return _error_response(
        status_code,
        message,
        errors=[ErrorDetail(field=field, message=message)],
        details={"field": field} if field else None,
    )
