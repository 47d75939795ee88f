"""Shared test fixtures."""

from typing import Any, Optional, Sequence

import pytest
import pytest_asyncio

from newsdesk.errors import BackendUnavailable, PartialBulkFailure
from newsdesk.records import Record, RecordId, apply_patch
from newsdesk.storage.base import BackendKind, CursorItem, StorageBackend, same_id, slice_records
from newsdesk.storage.flatfile import FlatFileBackend
from newsdesk.storage.gateway import PersistenceGateway


class InMemoryDocumentStore(StorageBackend):
    """Document-kind backend held in memory.

    Cursor markers are record ids; ``fail_writes`` makes every batch commit
    raise before anything is written.
    """

    kind = BackendKind.DOCUMENT
    supports_batch = True

    def __init__(self):
        self.collections: dict[str, list[Record]] = {}
        self.fail_writes = False
        self.queries: list[dict] = []
        self._counter = 0

    def _records(self, collection: str) -> list[Record]:
        return self.collections.setdefault(collection, [])

    def _find(self, collection: str, record_id: RecordId) -> Optional[int]:
        for index, record in enumerate(self._records(collection)):
            if same_id(record.id, record_id):
                return index
        return None

    async def list_all(self, collection):
        return list(self._records(collection))

    async def get_one(self, collection, record_id):
        index = self._find(collection, record_id)
        return None if index is None else self._records(collection)[index]

    async def insert(self, collection, record):
        if record.id is None:
            self._counter += 1
            record = record.model_copy(update={"id": f"doc{self._counter:03d}"})
        self._records(collection).append(record)
        return record

    async def update(self, collection, record_id, patch, now=None):
        index = self._find(collection, record_id)
        if index is None:
            return None
        records = self._records(collection)
        records[index] = apply_patch(collection, records[index], patch, now)
        return records[index]

    async def delete(self, collection, record_id):
        index = self._find(collection, record_id)
        if index is None:
            return False
        del self._records(collection)[index]
        return True

    async def replace_all(self, collection, records):
        self.collections[collection] = list(records)

    def _check_batch(self, collection: str, ids: Sequence[RecordId]) -> list[int]:
        positions = [self._find(collection, record_id) for record_id in ids]
        if any(position is None for position in positions):
            raise PartialBulkFailure("Some selected records no longer exist", ids=ids)
        if self.fail_writes:
            raise BackendUnavailable("commit failed", backend=self.kind.value)
        return positions

    async def batch_update(self, collection, ids, patch, now=None):
        positions = self._check_batch(collection, ids)
        records = self._records(collection)
        staged = [apply_patch(collection, records[p], patch, now) for p in positions]
        for position, record in zip(positions, staged):
            records[position] = record
        return staged

    async def batch_delete(self, collection, ids):
        self._check_batch(collection, ids)
        doomed = {str(record_id) for record_id in ids}
        self.collections[collection] = [
            r for r in self._records(collection) if str(r.id) not in doomed
        ]
        return list(ids)

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
        self.queries.append({"start_at": start_at, "start_after": start_after})
        ordered = slice_records(
            self._records(collection), filters=filters, order_by=order_by, descending=descending
        )
        ids = [str(record.id) for record in ordered]
        start = 0
        if start_at is not None:
            start = ids.index(str(start_at))
        elif start_after is not None:
            start = ids.index(str(start_after)) + 1
        return [CursorItem(record, record.id) for record in ordered[start:start + limit]]


@pytest.fixture
def document_store():
    return InMemoryDocumentStore()


@pytest.fixture
def document_gateway(document_store):
    return PersistenceGateway(document_store)


@pytest_asyncio.fixture
async def flatfile_gateway(tmp_path):
    gateway = PersistenceGateway(FlatFileBackend(tmp_path / "data"))
    await gateway.ensure_ready()
    return gateway
