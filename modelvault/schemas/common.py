"""
Common schema types used across the API.
"""

from typing import Any, Generic, List, Optional, TypeVar
from pydantic import BaseModel

T = TypeVar("T")


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
    level: Optional[str] = None


class SuccessResponse(BaseModel):
    """Standard success response."""

    message: str
    data: Optional[Any] = None


class PaginatedResponse(BaseModel, Generic[T]):
    """Paginated list response (limit/skip)."""

    items: List[T]
    limit: int = 0
    skip: int = 0
    count: int = 0

    @classmethod
    def create(cls, items: List[T], limit: int = 0, skip: int = 0) -> "PaginatedResponse[T]":
        return cls(items=items, limit=limit, skip=skip, count=len(items))


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str
    database: str = "connected"
