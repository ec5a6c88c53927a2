"""API error handling and response helpers."""

from typing import Any, Dict

from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from esusu.services.errors import ErrorKind, OperationResult

HTTP_STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.ALREADY_IN_TERMINAL_STATE: status.HTTP_409_CONFLICT,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        message: str,
        code: str,
        http_status: int = 400,
        details: Dict[str, Any] | None = None,
    ):
        """Initialize error."""
        self.message = message
        self.code = code
        self.http_status = http_status
        self.details = details or {}
        super().__init__(message)

    @classmethod
    def from_result(cls, result: OperationResult) -> "AppError":
        """Build the HTTP error for a failed ledger result."""
        return cls(
            result.message or "Request failed",
            result.error_code.value,
            HTTP_STATUS_BY_KIND[result.error_kind],
            result.details,
        )


class NotFoundError(AppError):
    """Requested resource does not exist."""

    def __init__(self, message: str = "Not found"):
        super().__init__(message, "not_found", status.HTTP_404_NOT_FOUND)


def error_response(error: AppError) -> Dict[str, Any]:
    """Create a standardized error response."""
    body: Dict[str, Any] = {
        "code": error.code,
        "message": error.message,
    }
    if error.details:
        body["details"] = error.details
    return {"error": body}


def raise_for_result(result: OperationResult) -> OperationResult:
    """Raise an AppError for a failed result, return it unchanged otherwise."""
    if not result.success:
        raise AppError.from_result(result)
    return result


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render an AppError as the JSON error envelope."""
    return JSONResponse(status_code=exc.http_status, content=jsonable_encoder(error_response(exc)))


__all__ = [
    "AppError",
    "HTTP_STATUS_BY_KIND",
    "NotFoundError",
    "app_error_handler",
    "error_response",
    "raise_for_result",
]
