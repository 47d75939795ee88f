"""Cursor pagination engine for admin listing views.

A :class:`ListingView` belongs to one admin session and one listing screen.
Relational and flat-file backends are paged by offset, so any page can be
fetched directly. The document backend can only resume a query at or after a
previously returned record, so the view remembers the first and last record
marker of every page it has shown and only ever moves one page forward.
"""

import asyncio
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Optional

from newsdesk.errors import ValidationFailure
from newsdesk.records import Record
from newsdesk.storage.base import BackendKind
from newsdesk.storage.gateway import PersistenceGateway

DEFAULT_PAGE_SIZE = 20


@dataclass
class Page:
    """One rendered page of a listing."""

    items: list[Record] = field(default_factory=list)
    page: int = 0
    has_next: bool = False
    has_prev: bool = False

    def to_dict(self) -> dict:
        return {
            "items": [item.model_dump(mode="json", by_alias=True) for item in self.items],
            "page": self.page,
            "hasNext": self.has_next,
            "hasPrev": self.has_prev,
        }


class ListingView:
    """Stateful first/next/prev paging over one collection.

    Navigation calls on one view run one at a time, so a double-submitted
    ``next`` moves two pages instead of recording the same page twice.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        collection: str,
        page_size: int = DEFAULT_PAGE_SIZE,
        order_by: Optional[str] = None,
        descending: bool = False,
        filters: Optional[dict[str, Any]] = None,
    ):
        if page_size < 1:
            raise ValidationFailure("Page size must be at least 1")
        self.gateway = gateway
        self.collection = collection
        self.page_size = page_size
        self.order_by = order_by
        self.descending = descending
        self.filters: dict[str, Any] = dict(filters or {})
        self._lock = asyncio.Lock()
        self.reset()

    @property
    def current_page(self) -> int:
        return self._page_index

    def reset(self) -> None:
        """Forget every visited page; markers are only valid for one ordering."""
        self._page_index = 0
        self._start_markers: list[Any] = []
        self._end_markers: list[Any] = []
        self._last: Optional[Page] = None

    async def first(self) -> Page:
        async with self._lock:
            return await self._first()

    async def next(self) -> Page:
        async with self._lock:
            if self._last is None:
                return await self._first()
            if not self._last.has_next:
                return self._last
            return await self._fetch(self._page_index + 1)

    async def prev(self) -> Page:
        async with self._lock:
            if self._last is None:
                return await self._first()
            if self._page_index == 0:
                return self._last
            return await self._fetch(self._page_index - 1)

    async def set_filters(self, filters: Optional[dict[str, Any]]) -> Page:
        async with self._lock:
            self.filters = dict(filters or {})
            return await self._first()

    async def set_order(self, order_by: Optional[str], descending: bool = False) -> Page:
        async with self._lock:
            self.order_by = order_by
            self.descending = descending
            return await self._first()

    async def configure(
        self, order_by: Optional[str], descending: bool, filters: Optional[dict[str, Any]]
    ) -> Page:
        """Change ordering and filters together and return the new first page."""
        async with self._lock:
            self.order_by = order_by
            self.descending = descending
            self.filters = dict(filters or {})
            return await self._first()

    def matches(
        self, order_by: Optional[str], descending: bool, filters: Optional[dict[str, Any]]
    ) -> bool:
        """Whether the view is already configured this way."""
        return (
            self.order_by == order_by
            and self.descending == descending
            and self.filters == dict(filters or {})
        )

    async def fetch_page(self, page: int) -> Page:
        async with self._lock:
            return await self._fetch(page)

    async def _first(self) -> Page:
        self.reset()
        return await self._fetch(0)

    async def _fetch(self, page: int) -> Page:
        if page < 0:
            raise ValidationFailure("Page index cannot be negative")
        if self.gateway.kind() == BackendKind.DOCUMENT:
            result = await self._fetch_by_cursor(page)
        else:
            result = await self._fetch_by_offset(page)
        self._page_index = page
        self._last = result
        return result

    async def _fetch_by_offset(self, page: int) -> Page:
        records = await self.gateway.list_page(
            self.collection,
            filters=self.filters,
            order_by=self.order_by,
            descending=self.descending,
            offset=page * self.page_size,
            limit=self.page_size + 1,
        )
        return Page(
            items=records[: self.page_size],
            page=page,
            has_next=len(records) > self.page_size,
            has_prev=page > 0,
        )

    async def _fetch_by_cursor(self, page: int) -> Page:
        visited = len(self._start_markers)
        if page < visited:
            position = {"start_at": self._start_markers[page]}
        elif page == visited:
            position = {"start_after": self._end_markers[page - 1]} if page > 0 else {}
        else:
            raise ValidationFailure("Document listings can only advance one page at a time")

        rows = await self.gateway.cursor_query(
            self.collection,
            order_by=self.order_by or "id",
            descending=self.descending,
            filters=self.filters,
            limit=self.page_size + 1,
            **position,
        )
        # The extra row only tells us whether another page exists
        shown = rows[: self.page_size]
        if shown:
            if page == visited:
                self._start_markers.append(shown[0].marker)
                self._end_markers.append(shown[-1].marker)
            else:
                self._end_markers[page] = shown[-1].marker
        return Page(
            items=[row.record for row in shown],
            page=page,
            has_next=len(rows) > self.page_size,
            has_prev=page > 0,
        )


class ListingViews:
    """Listing views kept per admin session, least recently used evicted first."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_views: int = 256,
    ):
        self.gateway = gateway
        self.page_size = page_size
        self.max_views = max_views
        self._views: OrderedDict[tuple[str, str, str], ListingView] = OrderedDict()

    def __len__(self) -> int:
        return len(self._views)

    def get(self, session: str, collection: str, name: str = "default") -> ListingView:
        key = (session, collection, name)
        view = self._views.get(key)
        if view is not None:
            self._views.move_to_end(key)
            return view
        view = ListingView(self.gateway, collection, page_size=self.page_size)
        self._views[key] = view
        while len(self._views) > self.max_views:
            self._views.popitem(last=False)
        return view

    def drop_session(self, session: str) -> None:
        for key in [k for k in self._views if k[0] == session]:
            del self._views[key]
