from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Envelope for every successful response."""

    model_config = ConfigDict(from_attributes=True)

    success: bool = True
    data: T
    message: str | None = None


class PaginatedResponse(BaseModel, Generic[T]):
    """One page of a list plus its totals."""

    model_config = ConfigDict(from_attributes=True)

    items: list[T]
    total: int
    page: int
    limit: int
    pages: int

    @classmethod
    def create(cls, items: list[T], total: int, page: int, limit: int) -> "PaginatedResponse[T]":
        pages = (total + limit - 1) // limit if limit > 0 else 0
        return cls(items=items, total=total, page=page, limit=limit, pages=pages)


class ErrorDetail(BaseModel):
    """Error for one field (or the request as a whole when ``field`` is None)."""

    field: str | None = None
    message: str


class ErrorResponse(BaseModel):
    """Envelope for error responses.

    ``details`` carries the machine-readable context of the error, e.g. the
    requested and available quantities of an insufficient-stock refusal.
    """

    success: bool = False
    data: None = None
    message: str
    errors: list[ErrorDetail] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)
