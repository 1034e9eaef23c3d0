# volunteer_board/core/pagination.py
"""
Pagination parameters and response envelope shared by list endpoints
"""
from typing import TypeVar, Generic, List, Optional
from pydantic import BaseModel, Field, computed_field
from fastapi import Query as QueryParam
from math import ceil

T = TypeVar('T')


class PaginationParams(BaseModel):
    """Base pagination parameters used across all endpoints"""
    page: int = Field(1, ge=1, description="Page number (1-indexed)")
    size: int = Field(50, ge=1, le=500, description="Items per page")

    @computed_field
    @property
    def offset(self) -> int:
        """Calculate offset for database query"""
        return (self.page - 1) * self.size


class PaginatedResponse(BaseModel, Generic[T]):
    """
    Generic paginated response that all list endpoints use
    """
    items: List[T]
    total: int
    page: int
    size: int
    pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, items: List[T], total: int, params: PaginationParams) -> "PaginatedResponse[T]":
        pages = ceil(total / params.size) if total > 0 else 0
        return cls(
            items=items,
            total=total,
            page=params.page,
            size=params.size,
            pages=pages,
            has_next=params.page < pages,
            has_prev=params.page > 1
        )


# FastAPI dependency for pagination
def get_pagination(
        page: int = QueryParam(1, ge=1, description="Page number"),
        size: int = QueryParam(50, ge=1, le=500, description="Items per page")
) -> PaginationParams:
    """Dependency to extract pagination parameters"""
    return PaginationParams(page=page, size=size)


def get_sort(
        sort: Optional[str] = QueryParam(
            None,
            pattern=r"^-?[a-z_]+(,-?[a-z_]+)*$",
            description="Comma-separated fields, '-' prefix for descending"
        )
) -> Optional[str]:
    return sort
