from src.shared.schemas.base import ApiResponse, ErrorDetail, ErrorResponse, PaginatedResponse

__all__ = ["ApiResponse", "ErrorDetail", "ErrorResponse", "PaginatedResponse"]
