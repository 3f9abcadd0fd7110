"""Cursor-based pagination over list endpoints."""

from .cursor import (
    CursorPaginator,
    ListMeta,
    ListOptions,
    ListResponse,
    OnPage,
    PaginationState,
    fetch_all_items,
    paginate_items,
)

__all__ = [
    "CursorPaginator",
    "ListMeta",
    "ListOptions",
    "ListResponse",
    "OnPage",
    "PaginationState",
    "fetch_all_items",
    "paginate_items",
]
