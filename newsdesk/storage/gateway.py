"""Persistence gateway: one backend chosen at start-up behind a uniform contract."""

import asyncio
import logging
from datetime import datetime
from typing import Any, Optional, Sequence

from newsdesk.config import Settings
from newsdesk.records import Record, RecordId
from newsdesk.storage.base import BackendKind, CursorItem, StorageBackend

logger = logging.getLogger(__name__)


def select_backend(settings: Settings) -> StorageBackend:
    """Pick the backend from configuration.

    Priority: relational connection string, then document-store credentials,
    then the flat-file store as the fallback that always works.
    """
    if settings.has_relational:
        from newsdesk.storage.relational import RelationalBackend

        logger.info("Using relational backend")
        return RelationalBackend(settings.async_database_url)
    if settings.has_document_store:
        from newsdesk.storage.document import DocumentBackend

        logger.info("Using document backend (project %s)", settings.firestore_project_id)
        return DocumentBackend(settings.firestore_project_id, settings.firestore_database)
    from newsdesk.storage.flatfile import FlatFileBackend

    logger.info("Using flat-file backend in %s", settings.data_dir)
    return FlatFileBackend(settings.data_dir)


class PersistenceGateway:
    """Forwards every call to the selected backend.

    The gateway keeps no records between calls, so each call observes the
    backend's current state. Schema setup runs once, before the first call.
    """

    def __init__(self, backend: StorageBackend):
        self._backend = backend
        self._ready = False
        self._ready_lock = asyncio.Lock()

    def kind(self) -> BackendKind:
        return self._backend.kind

    @property
    def supports_batch(self) -> bool:
        return self._backend.supports_batch

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    async def ensure_ready(self) -> None:
        if self._ready:
            return
        async with self._ready_lock:
            if not self._ready:
                await self._backend.initialize()
                self._ready = True

    async def close(self) -> None:
        await self._backend.close()

    async def list_all(self, collection: str) -> list[Record]:
        await self.ensure_ready()
        return await self._backend.list_all(collection)

    async def get_one(self, collection: str, record_id: RecordId) -> Optional[Record]:
        await self.ensure_ready()
        return await self._backend.get_one(collection, record_id)

    async def insert(self, collection: str, record: Record) -> Record:
        await self.ensure_ready()
        return await self._backend.insert(collection, record)

    async def update(
        self,
        collection: str,
        record_id: RecordId,
        patch: dict[str, Any],
        now: Optional[datetime] = None,
    ) -> Optional[Record]:
        await self.ensure_ready()
        return await self._backend.update(collection, record_id, patch, now)

    async def delete(self, collection: str, record_id: RecordId) -> bool:
        await self.ensure_ready()
        return await self._backend.delete(collection, record_id)

    async def replace_all(self, collection: str, records: Sequence[Record]) -> None:
        await self.ensure_ready()
        await self._backend.replace_all(collection, records)

    async def list_page(self, collection: str, **query: Any) -> list[Record]:
        await self.ensure_ready()
        return await self._backend.list_page(collection, **query)

    async def cursor_query(self, collection: str, **query: Any) -> list[CursorItem]:
        await self.ensure_ready()
        return await self._backend.cursor_query(collection, **query)

    async def batch_update(
        self,
        collection: str,
        ids: Sequence[RecordId],
        patch: dict[str, Any],
        now: Optional[datetime] = None,
    ) -> list[Record]:
        await self.ensure_ready()
        return await self._backend.batch_update(collection, ids, patch, now)

    async def batch_delete(self, collection: str, ids: Sequence[RecordId]) -> list[RecordId]:
        await self.ensure_ready()
        return await self._backend.batch_delete(collection, ids)
