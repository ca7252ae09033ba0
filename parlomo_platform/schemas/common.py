"""
Common schemas for API responses and pagination.
"""

import math
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Schema for detailed error information."""

    error_code: str = Field(..., description="Error code for programmatic handling")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error context")
    suggestions: Optional[List[str]] = Field(None, description="Helpful suggestions for resolving the error")


class ErrorResponse(BaseModel):
    """Schema for API error responses."""

    error: ErrorDetail
    error_id: Optional[str] = None
    timestamp: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "error": {
                        "error_code": "INSUFFICIENT_CAPACITY",
                        "message": "Not enough tickets available for VIP: requested 4, available 2",
                        "details": {"requested": 4, "available": 2},
                        "suggestions": ["Try fewer tickets", "Choose another ticket type"]
                    },
                    "error_id": "3f1c2d4e-8d55-4a55-9a3e-6f1f4f0f6b10",
                    "timestamp": "2026-05-01T12:00:00+00:00"
                }
            ]
        }
    }


class SuccessResponse(BaseModel):
    """Schema for simple success responses."""

    message: str = Field(..., description="Success message")
    data: Optional[Dict[str, Any]] = Field(None, description="Additional response data")


class PageMeta(BaseModel):
    """Laravel-style paging block used by category listings."""

    current_page: int
    last_page: int
    per_page: int
    total: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PageMeta":
        return cls(
            current_page=page,
            last_page=max(1, math.ceil(total / limit)) if limit else 1,
            per_page=limit,
            total=total,
        )


class Pagination(BaseModel):
    """Paging block used by event and financial request listings."""

    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        total_pages = math.ceil(total / limit) if limit and total else 0
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


class OffsetPagination(BaseModel):
    """Offset paging block used by event order listings."""

    total: int
    limit: int
    offset: int
    has_more: bool
