"""
API error types with stable error codes.

Every error response body has the shape
``{"error": CODE, "message": "...", ...details}`` so the frontend can switch
on the code without parsing messages.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class APIError(HTTPException):
    """HTTPException carrying an error code and optional extra body fields."""

    def __init__(
        self,
        status_code: int,
        error: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(status_code=status_code, detail=message, headers=headers)
        self.error = error
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error, "message": self.message}
        body.update(self.details)
        return body


class UnauthorizedError(APIError):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(status.HTTP_401_UNAUTHORIZED, "UNAUTHORIZED", message)


class ForbiddenError(APIError):
    def __init__(self, message: str = "Access denied"):
        super().__init__(status.HTTP_403_FORBIDDEN, "FORBIDDEN", message)


class NotFoundError(APIError):
    def __init__(self, message: str = "Resource not found"):
        super().__init__(status.HTTP_404_NOT_FOUND, "NOT_FOUND", message)


class ValidationError(APIError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR", message, details)


class DatabaseError(APIError):
    def __init__(self, message: str = "Database operation failed"):
        super().__init__(status.HTTP_500_INTERNAL_SERVER_ERROR, "DATABASE_ERROR", message)


class StorageError(APIError):
    def __init__(self, message: str = "Storage operation failed"):
        super().__init__(status.HTTP_500_INTERNAL_SERVER_ERROR, "STORAGE_ERROR", message)


class ServerError(APIError):
    def __init__(self, message: str = "Internal server error"):
        super().__init__(status.HTTP_500_INTERNAL_SERVER_ERROR, "SERVER_ERROR", message)


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Multipart bodies can carry raw bytes in "input"
    errors = [{k: v for k, v in err.items() if k not in ("input", "ctx")} for err in exc.errors()]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Invalid request",
            "details": jsonable_encoder(errors),
        },
    )
