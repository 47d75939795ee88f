"""Storage contract shared by every backend adapter."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Sequence

from newsdesk.records import Record, RecordId


class BackendKind(str, Enum):
    """Storage technologies a gateway can be bound to."""

    RELATIONAL = "relational"
    DOCUMENT = "document"
    FLATFILE = "flatfile"


@dataclass
class CursorItem:
    """A record returned by a cursor query, with the marker to resume after it."""

    record: Record
    marker: Any


class StorageBackend(ABC):
    """Uniform content-store contract.

    ``get_one``/``update`` return ``None`` and ``delete`` returns ``False``
    when the id does not exist; that is a normal outcome, not an error.
    Connectivity problems raise :class:`newsdesk.errors.BackendUnavailable`.
    """

    kind: BackendKind
    supports_batch: bool = False

    async def initialize(self) -> None:
        """Create schema/collections if needed. Must be idempotent."""

    async def close(self) -> None:
        """Release connections held by the backend."""

    @abstractmethod
    async def list_all(self, collection: str) -> list[Record]:
        ...

    @abstractmethod
    async def get_one(self, collection: str, record_id: RecordId) -> Optional[Record]:
        ...

    @abstractmethod
    async def insert(self, collection: str, record: Record) -> Record:
        ...

    @abstractmethod
    async def update(
        self,
        collection: str,
        record_id: RecordId,
        patch: dict[str, Any],
        now: Optional[datetime] = None,
    ) -> Optional[Record]:
        ...

    @abstractmethod
    async def delete(self, collection: str, record_id: RecordId) -> bool:
        ...

    @abstractmethod
    async def replace_all(self, collection: str, records: Sequence[Record]) -> None:
        """Overwrite the whole collection, keeping each record's id."""

    async def list_page(
        self,
        collection: str,
        *,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> list[Record]:
        """Filtered, ordered slice of a collection."""
        records = await self.list_all(collection)
        return slice_records(
            records,
            filters=filters,
            order_by=order_by,
            descending=descending,
            offset=offset,
            limit=limit,
        )

    async def cursor_query(
        self,
        collection: str,
        *,
        order_by: str,
        descending: bool = False,
        filters: Optional[dict[str, Any]] = None,
        limit: int,
        start_at: Any = None,
        start_after: Any = None,
    ) -> list[CursorItem]:
        """Up to ``limit`` records starting at, or strictly after, a marker."""
        raise NotImplementedError(f"{self.kind.value} backend has no cursor queries")

    async def batch_update(
        self,
        collection: str,
        ids: Sequence[RecordId],
        patch: dict[str, Any],
        now: Optional[datetime] = None,
    ) -> list[Record]:
        """Patch every id in one all-or-nothing write."""
        raise NotImplementedError(f"{self.kind.value} backend has no batch writes")

    async def batch_delete(self, collection: str, ids: Sequence[RecordId]) -> list[RecordId]:
        """Delete every id in one all-or-nothing write."""
        raise NotImplementedError(f"{self.kind.value} backend has no batch writes")


def same_id(left: Optional[RecordId], right: Optional[RecordId]) -> bool:
    return left is not None and right is not None and str(left) == str(right)


def slice_records(
    records: Sequence[Record],
    *,
    filters: Optional[dict[str, Any]] = None,
    order_by: Optional[str] = None,
    descending: bool = False,
    offset: int = 0,
    limit: Optional[int] = None,
) -> list[Record]:
    """In-memory equivalent of ``WHERE .. ORDER BY .. OFFSET .. LIMIT``."""
    selected = list(records)
    for field, value in (filters or {}).items():
        selected = [r for r in selected if getattr(r, field, None) == value]
    if order_by:
        present = [r for r in selected if getattr(r, order_by, None) is not None]
        missing = [r for r in selected if getattr(r, order_by, None) is None]
        present.sort(key=lambda r: getattr(r, order_by), reverse=descending)
        # NULLs last in both directions, the same as the relational backend
        selected = present + missing
    end = None if limit is None else offset + limit
    return selected[offset:end]
