"""Document backend on Cloud Firestore.

Documents are keyed by Firestore-generated ids and hold camelCase fields.
Listing is only efficient through cursor queries, so the pagination engine
walks this backend with :meth:`DocumentBackend.cursor_query`.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Optional, Sequence

from google.api_core import exceptions as google_exceptions
from google.auth.exceptions import DefaultCredentialsError, TransportError
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from newsdesk.errors import BackendUnavailable, PartialBulkFailure, ValidationFailure
from newsdesk.records import Record, RecordId, apply_patch
from newsdesk.storage.base import BackendKind, CursorItem, StorageBackend
from newsdesk.storage.codec import decode, encode, storage_field

logger = logging.getLogger(__name__)

# Firestore rejects write batches with more operations than this
BATCH_LIMIT = 500

UNAVAILABLE_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
    google_exceptions.Unauthenticated,
    google_exceptions.PermissionDenied,
    google_exceptions.RetryError,
    DefaultCredentialsError,
    TransportError,
)


class DocumentBackend(StorageBackend):
    """One Firestore collection per entity type."""

    kind = BackendKind.DOCUMENT
    supports_batch = True

    def __init__(
        self,
        project: str = "",
        database: str = "(default)",
        client: Optional[firestore.AsyncClient] = None,
    ):
        self.project = project
        self.database = database
        self._client = client

    @property
    def client(self) -> firestore.AsyncClient:
        if self._client is None:
            # Credentials come from GOOGLE_APPLICATION_CREDENTIALS
            self._client = firestore.AsyncClient(project=self.project, database=self.database)
        return self._client

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except UNAVAILABLE_ERRORS as exc:
            logger.error("Firestore %s failed: %s", operation, exc)
            raise BackendUnavailable(str(exc), backend=self.kind.value) from exc

    async def initialize(self) -> None:
        # Firestore creates collections on first write; only resolve credentials here
        async with self._guard("initialize"):
            logger.info("Using Firestore project %s", self.client.project)

    def _decode(self, collection: str, snapshot) -> Record:
        return decode(collection, snapshot.to_dict() or {}, self.kind, snapshot.id)

    async def list_all(self, collection: str) -> list[Record]:
        async with self._guard("list"):
            return [
                self._decode(collection, snapshot)
                async for snapshot in self.client.collection(collection).stream()
            ]

    async def get_one(self, collection: str, record_id: RecordId) -> Optional[Record]:
        async with self._guard("get"):
            snapshot = await self.client.collection(collection).document(str(record_id)).get()
        if not snapshot.exists:
            return None
        return self._decode(collection, snapshot)

    async def insert(self, collection: str, record: Record) -> Record:
        refs = self.client.collection(collection)
        ref = refs.document() if record.id is None else refs.document(str(record.id))
        async with self._guard("insert"):
            await ref.set(encode(collection, record, self.kind))
        return record.model_copy(update={"id": ref.id})

    async def update(
        self,
        collection: str,
        record_id: RecordId,
        patch: dict[str, Any],
        now: Optional[datetime] = None,
    ) -> Optional[Record]:
        ref = self.client.collection(collection).document(str(record_id))
        async with self._guard("update"):
            snapshot = await ref.get()
            if not snapshot.exists:
                return None
            merged = apply_patch(collection, self._decode(collection, snapshot), patch, now)
            # set() rather than update() so cleared optionals disappear from the document
            await ref.set(encode(collection, merged, self.kind))
        return merged

    async def delete(self, collection: str, record_id: RecordId) -> bool:
        ref = self.client.collection(collection).document(str(record_id))
        async with self._guard("delete"):
            snapshot = await ref.get()
            if not snapshot.exists:
                return False
            await ref.delete()
        return True

    async def replace_all(self, collection: str, records: Sequence[Record]) -> None:
        refs = self.client.collection(collection)
        async with self._guard("replace_all"):
            operations = [("delete", ref, None) async for ref in refs.list_documents()]
            for record in records:
                ref = refs.document() if record.id is None else refs.document(str(record.id))
                operations.append(("set", ref, encode(collection, record, self.kind)))
            # Only each chunk of BATCH_LIMIT operations is atomic
            for start in range(0, len(operations), BATCH_LIMIT):
                batch = self.client.batch()
                for op, ref, data in operations[start:start + BATCH_LIMIT]:
                    if op == "delete":
                        batch.delete(ref)
                    else:
                        batch.set(ref, data)
                await batch.commit()
        logger.info("Replaced %s with %d records", collection, len(records))

    async def _existing_snapshots(self, collection: str, ids: Sequence[RecordId]) -> list:
        if len(ids) > BATCH_LIMIT:
            raise ValidationFailure(f"Cannot change more than {BATCH_LIMIT} records at once")
        refs = [self.client.collection(collection).document(str(i)) for i in dict.fromkeys(ids)]
        snapshots = [snapshot async for snapshot in self.client.get_all(refs)]
        if len(snapshots) != len(refs) or not all(s.exists for s in snapshots):
            raise PartialBulkFailure("Some selected records no longer exist", ids=ids)
        return snapshots

    async def batch_update(
        self,
        collection: str,
        ids: Sequence[RecordId],
        patch: dict[str, Any],
        now: Optional[datetime] = None,
    ) -> list[Record]:
        async with self._guard("batch_update"):
            snapshots = await self._existing_snapshots(collection, ids)
            batch = self.client.batch()
            updated = []
            for snapshot in snapshots:
                merged = apply_patch(collection, self._decode(collection, snapshot), patch, now)
                batch.set(snapshot.reference, encode(collection, merged, self.kind))
                updated.append(merged)
            await batch.commit()
        return updated

    async def batch_delete(self, collection: str, ids: Sequence[RecordId]) -> list[RecordId]:
        async with self._guard("batch_delete"):
            snapshots = await self._existing_snapshots(collection, ids)
            batch = self.client.batch()
            for snapshot in snapshots:
                batch.delete(snapshot.reference)
            await batch.commit()
        return [snapshot.id for snapshot in snapshots]

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
        query = self.client.collection(collection)
        for field, value in (filters or {}).items():
            query = query.where(filter=FieldFilter(storage_field(collection, field, self.kind), "==", value))
        direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
        # "id" lives in the document name, not in the document body
        sort_field = "__name__" if order_by == "id" else storage_field(collection, order_by, self.kind)
        query = query.order_by(sort_field, direction=direction)
        if start_at is not None:
            query = query.start_at(start_at)
        elif start_after is not None:
            query = query.start_after(start_after)
        query = query.limit(limit)
        async with self._guard("query"):
            snapshots = [snapshot async for snapshot in query.stream()]
        return [CursorItem(self._decode(collection, s), s) for s in snapshots]
