"""Relational backend on SQLAlchemy's async engine (SQLite or PostgreSQL)."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Optional, Sequence

from sqlalchemy import delete, func, select, text
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from newsdesk.database import create_engine, create_sessionmaker, init_db
from newsdesk.errors import BackendUnavailable, PartialBulkFailure, ValidationFailure
from newsdesk.models import TABLES
from newsdesk.records import STRING_KEYED, Record, RecordId, apply_patch
from newsdesk.storage.base import BackendKind, StorageBackend
from newsdesk.storage.codec import coerce_id, decode, encode, storage_field

logger = logging.getLogger(__name__)


class RelationalBackend(StorageBackend):
    """One table per collection, nested structures in JSON columns."""

    kind = BackendKind.RELATIONAL
    supports_batch = True

    def __init__(self, url: str = "", engine: Optional[AsyncEngine] = None, echo: bool = False):
        self.engine = engine if engine is not None else create_engine(url, echo=echo)
        self.sessions = create_sessionmaker(self.engine)

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self.sessions() as session:
                yield session
        except IntegrityError as exc:
            raise ValidationFailure("Record conflicts with an existing record") from exc
        except (OperationalError, InterfaceError, OSError, TimeoutError) as exc:
            logger.error("Relational backend unavailable: %s", exc)
            raise BackendUnavailable(str(exc), backend=self.kind.value) from exc

    async def initialize(self) -> None:
        try:
            await init_db(self.engine)
        except (OperationalError, InterfaceError, OSError) as exc:
            logger.error("Could not create relational schema: %s", exc)
            raise BackendUnavailable(str(exc), backend=self.kind.value) from exc

    async def close(self) -> None:
        await self.engine.dispose()

    def _decode_row(self, collection: str, row) -> Record:
        table = TABLES[collection]
        shape = {column.key: getattr(row, column.key) for column in table.__table__.columns}
        return decode(collection, shape, self.kind)

    async def list_all(self, collection: str) -> list[Record]:
        table = TABLES[collection]
        async with self._session() as session:
            result = await session.execute(select(table).order_by(table.id))
            return [self._decode_row(collection, row) for row in result.scalars().all()]

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
        table = TABLES[collection]
        query = select(table)
        for field, value in (filters or {}).items():
            query = query.where(getattr(table, storage_field(collection, field, self.kind)) == value)
        if order_by:
            column = getattr(table, storage_field(collection, order_by, self.kind))
            ordering = column.desc() if descending else column.asc()
            query = query.order_by(ordering.nulls_last(), table.id)
        else:
            query = query.order_by(table.id)
        query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        async with self._session() as session:
            result = await session.execute(query)
            return [self._decode_row(collection, row) for row in result.scalars().all()]

    async def get_one(self, collection: str, record_id: RecordId) -> Optional[Record]:
        key = coerce_id(collection, record_id)
        if key is None:
            return None
        async with self._session() as session:
            row = await session.get(TABLES[collection], key)
            return self._decode_row(collection, row) if row is not None else None

    async def insert(self, collection: str, record: Record) -> Record:
        table = TABLES[collection]
        if collection in STRING_KEYED and record.id is None:
            raise ValidationFailure(f"{collection} records need an explicit id")
        async with self._session() as session:
            async with session.begin():
                row = table(**encode(collection, record, self.kind))
                session.add(row)
                await session.flush()
                stored = self._decode_row(collection, row)
        logger.debug("Inserted %s/%s", collection, stored.id)
        return stored

    async def update(
        self,
        collection: str,
        record_id: RecordId,
        patch: dict[str, Any],
        now: Optional[datetime] = None,
    ) -> Optional[Record]:
        key = coerce_id(collection, record_id)
        if key is None:
            return None
        async with self._session() as session:
            async with session.begin():
                row = await session.get(TABLES[collection], key)
                if row is None:
                    return None
                merged = apply_patch(collection, self._decode_row(collection, row), patch, now)
                self._assign(collection, row, merged)
        return merged

    async def delete(self, collection: str, record_id: RecordId) -> bool:
        key = coerce_id(collection, record_id)
        if key is None:
            return False
        async with self._session() as session:
            async with session.begin():
                row = await session.get(TABLES[collection], key)
                if row is None:
                    return False
                await session.delete(row)
        return True

    async def replace_all(self, collection: str, records: Sequence[Record]) -> None:
        table = TABLES[collection]
        async with self._session() as session:
            async with session.begin():
                await session.execute(delete(table))
                for record in records:
                    session.add(table(**encode(collection, record, self.kind)))
                await session.flush()
                await self._sync_sequence(session, collection)
        logger.info("Replaced %s with %d records", collection, len(records))

    async def batch_update(
        self,
        collection: str,
        ids: Sequence[RecordId],
        patch: dict[str, Any],
        now: Optional[datetime] = None,
    ) -> list[Record]:
        table = TABLES[collection]
        keys = self._batch_keys(collection, ids)
        async with self._session() as session:
            async with session.begin():
                result = await session.execute(select(table).where(table.id.in_(keys)))
                rows = list(result.scalars().all())
                if len(rows) != len(keys):
                    # Raising inside the transaction rolls back every change
                    raise PartialBulkFailure("Some selected records no longer exist", ids=ids)
                updated = []
                for row in rows:
                    merged = apply_patch(collection, self._decode_row(collection, row), patch, now)
                    self._assign(collection, row, merged)
                    updated.append(merged)
        return updated

    async def batch_delete(self, collection: str, ids: Sequence[RecordId]) -> list[RecordId]:
        table = TABLES[collection]
        keys = self._batch_keys(collection, ids)
        async with self._session() as session:
            async with session.begin():
                result = await session.execute(delete(table).where(table.id.in_(keys)))
                if result.rowcount != len(keys):
                    raise PartialBulkFailure("Some selected records no longer exist", ids=ids)
        return keys

    def _batch_keys(self, collection: str, ids: Sequence[RecordId]) -> list[RecordId]:
        keys = [coerce_id(collection, record_id) for record_id in ids]
        if any(key is None for key in keys):
            raise PartialBulkFailure("Selection contains invalid ids", ids=ids)
        return list(dict.fromkeys(keys))

    def _assign(self, collection: str, row, record: Record) -> None:
        for key, value in encode(collection, record, self.kind).items():
            if key != "id":
                setattr(row, key, value)

    async def _sync_sequence(self, session: AsyncSession, collection: str) -> None:
        """Move a PostgreSQL serial past explicitly inserted ids."""
        if collection in STRING_KEYED or self.engine.dialect.name != "postgresql":
            return
        table_name = TABLES[collection].__tablename__
        max_id = (await session.execute(select(func.max(TABLES[collection].id)))).scalar()
        await session.execute(
            text("SELECT setval(pg_get_serial_sequence(:table, 'id'), :value, :called)"),
            {"table": table_name, "value": max_id or 1, "called": max_id is not None},
        )
