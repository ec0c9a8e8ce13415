"""
Custom exceptions and error handlers for consistent error responses.

Provides the shared error-code vocabulary and global exception handlers.
Every failure leaves the API as:

    {"success": false, "error": "...", "error_code": "...", "details": {}}
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from typing import Any, Dict

logger = logging.getLogger("backoffice.errors")


class ErrorCode:
    """Error codes shared by every service."""
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    STORAGE_BUCKET_MISSING = "STORAGE_BUCKET_MISSING"
    PRICING_DEADLINE_PASSED = "PRICING_DEADLINE_PASSED"
    INTERNAL = "INTERNAL_SERVER_ERROR"


ERROR_CODE_STATUS = {
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.DATABASE_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.ALREADY_EXISTS: status.HTTP_409_CONFLICT,
    ErrorCode.INVALID_STATUS_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorCode.STORAGE_BUCKET_MISSING: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.PRICING_DEADLINE_PASSED: status.HTTP_409_CONFLICT,
}


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code=ErrorCode.NOT_FOUND,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class ValidationFailedError(AppException):
    """Raised when a business rule rejects the input."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_ERROR,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class InvalidStatusTransitionError(AppException):
    """Raised when a row is not in a state that allows the requested change."""

    def __init__(self, resource: str, current: str, target: str = None):
        message = f"Cannot change {resource} with status: {current}"
        if target:
            message = f"Cannot change {resource} from {current} to {target}"
        super().__init__(
            message=message,
            error_code=ErrorCode.INVALID_STATUS_TRANSITION,
            status_code=status.HTTP_409_CONFLICT,
            details={"resource": resource, "current": current, "target": target}
        )


class ForbiddenActionError(AppException):
    """Raised when user doesn't have permission to perform an action."""

    def __init__(self, message: str = "Insufficient permissions", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.FORBIDDEN,
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class ConflictError(AppException):
    """Raised when the target already is in the requested state or is locked."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.ALREADY_EXISTS,
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class DatabaseError(AppException):
    """Raised when the database rejects a statement."""

    def __init__(self, message: str = "Database operation failed", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.DATABASE_ERROR,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=details
        )


class AuthenticationError(AppException):
    """Raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            error_code=ErrorCode.UNAUTHORIZED,
            status_code=status.HTTP_401_UNAUTHORIZED
        )


class StorageBucketMissingError(AppException):
    """Raised when the object storage bucket has not been provisioned."""

    def __init__(self, bucket: str):
        super().__init__(
            message=(
                f"Storage bucket '{bucket}' does not exist. Create a public bucket "
                f"named '{bucket}' in the storage dashboard, then retry the upload."
            ),
            error_code=ErrorCode.STORAGE_BUCKET_MISSING,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"bucket": bucket}
        )


class PricingDeadlinePassedError(AppException):
    """Raised when a merchant submits pricing after the request expired."""

    def __init__(self, request_id: int):
        super().__init__(
            message="Pricing deadline has passed for this request",
            error_code=ErrorCode.PRICING_DEADLINE_PASSED,
            status_code=status.HTTP_409_CONFLICT,
            details={"request_id": request_id}
        )


def exception_from_code(error: str, error_code: str) -> AppException:
    """Rebuild an AppException from a failed OperationResult."""
    return AppException(
        message=error,
        error_code=error_code,
        status_code=ERROR_CODE_STATUS.get(error_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
    )


# Global Exception Handlers

def _error_body(message: str, error_code: str, details: Dict[str, Any] = None) -> dict:
    return {
        "success": False,
        "error": message,
        "error_code": error_code,
        "details": details or {}
    }


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.message, exc.error_code, exc.details)
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    error_code_map = {
        400: ErrorCode.VALIDATION_ERROR,
        401: ErrorCode.UNAUTHORIZED,
        403: ErrorCode.FORBIDDEN,
        404: ErrorCode.NOT_FOUND,
        409: ErrorCode.ALREADY_EXISTS,
        500: ErrorCode.INTERNAL
    }

    error_code = error_code_map.get(exc.status_code, "UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.detail, error_code),
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body(
            "Validation error",
            ErrorCode.VALIDATION_ERROR,
            {"errors": jsonable_encoder(exc.errors())}
        )
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s: %s", type(exc).__name__, exc)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("An internal server error occurred", ErrorCode.INTERNAL)
    )
