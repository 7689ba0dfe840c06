"""
Pagination Schemas

Reusable pagination models for list endpoints.
"""

from typing import TypeVar, Generic, List
from pydantic import BaseModel, Field
from math import ceil

T = TypeVar('T')

MAX_LIMIT = 100


def clamp_limit(limit: int) -> int:
    """Keep a page size within 1..MAX_LIMIT"""
    return max(1, min(limit, MAX_LIMIT))


class PaginatedResponse(BaseModel, Generic[T]):
    """Generic paginated response wrapper"""
    items: List[T]
    total: int = Field(description="Total matching items")
    page: int = Field(description="Current page")
    limit: int = Field(description="Page size")
    total_pages: int
    has_next: bool
    has_previous: bool

    @classmethod
    def create(
        cls,
        items: List[T],
        total: int,
        page: int,
        limit: int
    ) -> "PaginatedResponse[T]":
        """Factory method to create paginated response"""
        total_pages = ceil(total / limit) if limit > 0 else 0
        return cls(
            items=items,
            total=total,
            page=page,
            limit=limit,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_previous=page > 1
        )


def paginate_query(query, page: int, limit: int):
    """
    Apply pagination to a SQLAlchemy query.

    Returns:
        Tuple of (paginated_items, total_count)
    """
    limit = clamp_limit(limit)
    total = query.count()
    offset = (max(page, 1) - 1) * limit
    items = query.offset(offset).limit(limit).all()
    return items, total
