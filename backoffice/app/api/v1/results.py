"""
Bridge between OperationResult-returning helpers and HTTP responses.
"""

from typing import Any

from backoffice.app.core.exceptions import exception_from_code, ErrorCode
from backoffice.app.schemas.common import OperationResult


def unwrap(result: OperationResult) -> Any:
    """Return the payload, or raise the AppException matching the error code."""
    if not result.success:
        raise exception_from_code(result.error or "Operation failed", result.error_code or ErrorCode.INTERNAL)
    return result.data
