"""Paging and sorting helpers shared by staff list endpoints."""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from fastapi import Query
from sqlalchemy.orm import Query as SQLAlchemyQuery


T = TypeVar("T")

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

SORT_DIRECTIONS = ("asc", "desc")


@dataclass
class PaginationParams:
    page: int
    page_size: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


def get_pagination(
    page: int = Query(DEFAULT_PAGE, ge=1, description="Page number (1-indexed)"),
    page_size: int = Query(
        DEFAULT_PAGE_SIZE,
        ge=1,
        le=MAX_PAGE_SIZE,
        description=f"Links per page (max {MAX_PAGE_SIZE})",
    ),
) -> PaginationParams:
    return PaginationParams(page=page, page_size=page_size)


@dataclass
class PaginatedResponse(Generic[T]):
    items: list[T]
    total: int
    page: int
    page_size: int
    total_pages: int

    @classmethod
    def create(cls, items: list[T], total: int, pagination: PaginationParams) -> "PaginatedResponse[T]":
        return cls(
            items=items,
            total=total,
            page=pagination.page,
            page_size=pagination.page_size,
            total_pages=-(-total // pagination.page_size),
        )


def apply_sort(
    query: SQLAlchemyQuery,
    columns: Mapping[str, Any],
    sort_by: str,
    sort_dir: str,
    tiebreaker: Any,
) -> SQLAlchemyQuery:
    """
    Order ``query`` by one of the whitelisted ``columns``.

    ``tiebreaker`` keeps page boundaries stable when the sort column has ties.
    Raises ValueError for an unknown field or direction.
    """
    if sort_by not in columns:
        raise ValueError(f"Cannot sort by '{sort_by}'")
    if sort_dir not in SORT_DIRECTIONS:
        raise ValueError("sort_dir must be 'asc' or 'desc'")
    column = columns[sort_by]
    order = column.asc() if sort_dir == "asc" else column.desc()
    return query.order_by(order, tiebreaker.asc())


def paginate(query: SQLAlchemyQuery, pagination: PaginationParams) -> PaginatedResponse:
    """Count the full result, then fetch one page of it."""
    total = query.count()
    items = query.offset(pagination.offset).limit(pagination.page_size).all()
    return PaginatedResponse.create(items, total, pagination)
