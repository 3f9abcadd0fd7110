"""
Cursor-based pagination over list endpoints.

CursorPaginator walks a list endpoint page by page, following the opaque
``meta.nextCursor`` returned with each page. It holds at most one page in
memory and never has more than one fetch in flight.

State machine:
    initial   {has_more_pages: True,  next_cursor: None}
    advancing {has_more_pages: True,  next_cursor: "c"}
    terminal  {has_more_pages: False}

A failed fetch leaves the state untouched, so the same next() call can be
retried. Paginators are single-consumer: callers must not await next()
concurrently on one instance. Use fork() to walk the same position from two
places.
"""

import inspect
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from midaz_core import metrics
from midaz_core.telemetry import get_sink, traced_span
from midaz_core.types import ObservabilitySink, Span

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Request / Response Models
# =============================================================================


class ListOptions(BaseModel):
    """Options passed to a page-fetch function. Unknown keys pass through."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    cursor: str | None = None
    limit: int | None = Field(default=None, ge=1)
    filter: dict[str, Any] | None = None
    sort: str | None = None

    def with_cursor(self, cursor: str | None) -> "ListOptions":
        return self.model_copy(update={"cursor": cursor})

    def to_params(self) -> dict[str, Any]:
        """Query parameters, without unset values."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ListMeta(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    next_cursor: str | None = Field(default=None, alias="nextCursor")
    prev_cursor: str | None = Field(default=None, alias="prevCursor")
    total: int | None = None
    count: int | None = None


class ListResponse(BaseModel):
    """One page of results: ``{"items": [...], "meta": {"nextCursor": ...}}``."""

    model_config = ConfigDict(populate_by_name=True)

    items: list[Any] = Field(default_factory=list)
    meta: ListMeta | None = None


FetchPage = Callable[[ListOptions], Awaitable["ListResponse | Mapping[str, Any]"]]
OnPage = Callable[[list[Any], "ListMeta | None"], Awaitable[None] | None]


@dataclass(frozen=True)
class PaginationState:
    """Immutable snapshot of a paginator's position."""

    next_cursor: str | None = None
    has_more_pages: bool = True
    pages_fetched: int = 0
    items_fetched: int = 0
    last_fetch_timestamp: float | None = None


def _coerce_options(options: "ListOptions | Mapping[str, Any] | None") -> ListOptions:
    if options is None:
        return ListOptions()
    if isinstance(options, ListOptions):
        return options
    return ListOptions.model_validate(dict(options))


def _coerce_response(response: Any) -> ListResponse:
    if isinstance(response, ListResponse):
        return response
    return ListResponse.model_validate(response)


async def _maybe_await(value: Any) -> None:
    if inspect.isawaitable(value):
        await value


# =============================================================================
# Paginator
# =============================================================================


class CursorPaginator(Generic[T]):
    """
    Streams items from a cursor-paginated list endpoint.

    Args:
        fetch_page: Async function taking ListOptions and returning a
                    ListResponse or an equivalent mapping
        options: Caller options forwarded on every fetch (cursor is managed
                 by the paginator)
        max_items: Stop once this many items have been fetched
        max_pages: Stop once this many pages have been fetched
        resource: Label for metrics and logs (e.g. "accounts")
        sink: Observability sink for spans (defaults to the module sink)
        span_attributes: Extra attributes added to every span
        metrics_enabled: Record Prometheus page/item counters
        initial_state: Resume from a previously captured PaginationState
        on_page: Called with (items, meta) after every successful fetch; its
                 errors propagate after the page has been counted
        page_size: Default ``limit`` when the options do not set one

    Usage:
        paginator = CursorPaginator(fetch_accounts, {"limit": 100})
        async for page in paginator:
            for account in page:
                ...
    """

    def __init__(
        self,
        fetch_page: FetchPage,
        options: ListOptions | Mapping[str, Any] | None = None,
        *,
        max_items: int | None = None,
        max_pages: int | None = None,
        resource: str = "items",
        sink: ObservabilitySink | None = None,
        span_attributes: Mapping[str, Any] | None = None,
        metrics_enabled: bool = True,
        initial_state: PaginationState | None = None,
        clock: Callable[[], float] = time.time,
        on_page: OnPage | None = None,
        page_size: int | None = None,
    ):
        if page_size is not None and page_size < 1:
            raise ValueError(f"page_size must be >= 1, got {page_size}")
        self._fetch_page = fetch_page
        self._options = _coerce_options(options)
        if page_size is not None and self._options.limit is None:
            self._options = self._options.model_copy(update={"limit": page_size})
        self._on_page = on_page
        self._max_items = max_items
        self._max_pages = max_pages
        self._resource = resource
        self._sink = sink
        self._span_attributes = dict(span_attributes or {})
        self._metrics_enabled = metrics_enabled
        self._clock = clock

        state = initial_state or PaginationState()
        self._next_cursor = state.next_cursor
        self._has_more_pages = state.has_more_pages
        self._pages_fetched = state.pages_fetched
        self._items_fetched = state.items_fetched
        self._last_fetch_timestamp = state.last_fetch_timestamp
        self._current_page: list[T] | None = None

    @property
    def sink(self) -> ObservabilitySink:
        return self._sink if self._sink is not None else get_sink()

    @property
    def options(self) -> ListOptions:
        return self._options

    @property
    def state(self) -> PaginationState:
        return PaginationState(
            next_cursor=self._next_cursor,
            has_more_pages=self._has_more_pages,
            pages_fetched=self._pages_fetched,
            items_fetched=self._items_fetched,
            last_fetch_timestamp=self._last_fetch_timestamp,
        )

    def get_pagination_state(self) -> PaginationState:
        return self.state

    def _span(self, operation: str) -> Any:
        attributes = {
            **self._span_attributes,
            "paginator.resource": self._resource,
            "paginator.pages_fetched": self._pages_fetched,
            "paginator.items_fetched": self._items_fetched,
            "paginator.has_more_pages": self._has_more_pages,
        }
        return traced_span(self.sink, f"paginator.{operation}", attributes)

    def _limits_reached(self) -> bool:
        if self._max_items is not None and self._items_fetched >= self._max_items:
            return True
        if self._max_pages is not None and self._pages_fetched >= self._max_pages:
            return True
        return False

    def has_next(self) -> bool:
        """Whether another page may exist. Never makes a remote call."""
        return self._has_more_pages and not self._limits_reached()

    async def next(self) -> list[T]:
        """
        Fetch the next page.

        Returns an empty list, without calling fetch_page, once the
        paginator is exhausted. Fetch errors propagate unchanged and leave
        the paginator state as it was.
        """
        with self._span("next") as span:
            if not self.has_next():
                span.set_attribute("paginator.item_count", 0)
                return []
            return await self._fetch_next(span)

    async def _fetch_next(self, span: Span) -> list[T]:
        request = self._options.with_cursor(self._next_cursor)
        response = _coerce_response(await self._fetch_page(request))

        # Only mutate state once the fetch has succeeded
        items: list[T] = list(response.items)
        self._next_cursor = (response.meta.next_cursor if response.meta else None) or None
        self._has_more_pages = bool(self._next_cursor)
        self._current_page = items
        self._pages_fetched += 1
        self._items_fetched += len(items)
        self._last_fetch_timestamp = self._clock()

        if self._metrics_enabled:
            metrics.record_page_fetched(self._resource, len(items))

        span.set_attribute("paginator.item_count", len(items))
        span.set_attribute("paginator.has_more", self._has_more_pages)
        logger.debug(
            "Fetched page %d of %s",
            self._pages_fetched,
            self._resource,
            extra={
                "operation": "paginator.next",
                "resource": self._resource,
                "page_number": self._pages_fetched,
                "item_count": len(items),
                "items_fetched": self._items_fetched,
                "has_more_pages": self._has_more_pages,
            },
        )
        if self._on_page is not None:
            await _maybe_await(self._on_page(items, response.meta))
        return items

    async def get_current_page(self) -> list[T]:
        """Last fetched page, fetching the first one if nothing was fetched yet."""
        with self._span("get_current_page") as span:
            if self._current_page is None:
                await self.next()
            page = self._current_page or []
            span.set_attribute("paginator.item_count", len(page))
            return page

    async def get_all_items(self) -> list[T]:
        """Drain every remaining page into one list."""
        with self._span("get_all_items") as span:
            all_items: list[T] = []
            while self.has_next():
                all_items.extend(await self.next())
            span.set_attribute("paginator.total_items", len(all_items))
            return all_items

    async def for_each_page(
        self, callback: Callable[[list[T]], Awaitable[None] | None]
    ) -> None:
        """
        Call ``callback`` with each remaining page.

        The next page is only requested after the callback has returned (or
        its awaitable has completed).
        """
        with self._span("for_each_page") as span:
            while self.has_next():
                page = await self.next()
                await _maybe_await(callback(page))
            span.set_attribute("paginator.pages_processed", self._pages_fetched)

    async def for_each_item(
        self, callback: Callable[[T], Awaitable[None] | None]
    ) -> None:
        """Call ``callback`` with each remaining item, one page at a time."""
        with self._span("for_each_item") as span:
            processed = 0
            while self.has_next():
                for item in await self.next():
                    await _maybe_await(callback(item))
                    processed += 1
            span.set_attribute("paginator.items_processed", processed)

    def reset(self) -> None:
        """Go back to the initial state. The next fetch starts from the first page."""
        self._next_cursor = None
        self._has_more_pages = True
        self._current_page = None
        self._pages_fetched = 0
        self._items_fetched = 0
        self._last_fetch_timestamp = None

    def fork(self) -> "CursorPaginator[T]":
        """Independent paginator starting at this paginator's current position."""
        return CursorPaginator(
            self._fetch_page,
            self._options,
            max_items=self._max_items,
            max_pages=self._max_pages,
            resource=self._resource,
            sink=self._sink,
            span_attributes=self._span_attributes,
            metrics_enabled=self._metrics_enabled,
            initial_state=self.state,
            clock=self._clock,
            on_page=self._on_page,
        )

    def __aiter__(self) -> AsyncIterator[list[T]]:
        return self._iter_pages()

    async def _iter_pages(self) -> AsyncIterator[list[T]]:
        while self.has_next():
            yield await self.next()


async def paginate_items(
    fetch_page: FetchPage,
    options: ListOptions | Mapping[str, Any] | None = None,
    **kwargs: Any,
) -> AsyncIterator[Any]:
    """
    Async generator over individual items of a list endpoint.

    Usage:
        async for account in paginate_items(fetch_accounts, {"limit": 50}):
            ...
    """
    paginator: CursorPaginator[Any] = CursorPaginator(fetch_page, options, **kwargs)
    async for page in paginator:
        for item in page:
            yield item


async def fetch_all_items(
    fetch_page: FetchPage,
    options: ListOptions | Mapping[str, Any] | None = None,
    **kwargs: Any,
) -> list[Any]:
    """Fetch every item of a list endpoint into memory."""
    return await CursorPaginator(fetch_page, options, **kwargs).get_all_items()


__all__ = [
    "ListOptions",
    "ListMeta",
    "ListResponse",
    "OnPage",
    "PaginationState",
    "CursorPaginator",
    "paginate_items",
    "fetch_all_items",
]
