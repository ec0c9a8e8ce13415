"""
Shared response envelopes.
"""

from pydantic import BaseModel
from typing import Any, Optional, List


class OperationResult(BaseModel):
    """
    Outcome of an admin data-access helper.

    Helpers never raise for expected failures; they return
    `success=False` with one of the `ErrorCode` values instead.
    """
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, error_code: str) -> "OperationResult":
        return cls(success=False, error=error, error_code=error_code)


class PageMeta(BaseModel):
    """Pagination block returned by list endpoints."""
    page: int
    page_size: int
    total: int
    total_pages: int


class PagedResponse(BaseModel):
    items: List[Any]
    meta: PageMeta


class MessageResponse(BaseModel):
    success: bool = True
    message: str
