"""Flat-file backend: one JSON array file per collection.

Every mutation rewrites the whole file. There is no partial-write
protection: a crash in the middle of a write can leave a truncated file,
which is then read back as an empty collection.
"""

import asyncio
import json
import logging
from collections import defaultdict
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Sequence

from newsdesk.errors import BackendUnavailable, ValidationFailure
from newsdesk.records import STRING_KEYED, Record, RecordId, apply_patch
from newsdesk.storage.base import BackendKind, StorageBackend, same_id
from newsdesk.storage.codec import decode, encode

logger = logging.getLogger(__name__)

# File names used by the previous admin panel, read when no new file exists yet.
LEGACY_FILES = {
    "articles": "haberler.json",
    "polls": "anket.json",
    "ads": "reklamlar.json",
    "subscribers": "bulten.json",
}


class FlatFileBackend(StorageBackend):
    """JSON files under ``data_dir``; ids are ``max(id) + 1``."""

    kind = BackendKind.FLATFILE
    supports_batch = False

    def __init__(self, data_dir: str | Path):
        self.data_dir = Path(data_dir)
        # One lock per collection serialises readers against whole-file rewrites
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def initialize(self) -> None:
        try:
            await asyncio.to_thread(self.data_dir.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            raise BackendUnavailable(str(exc), backend=self.kind.value) from exc

    def path_for(self, collection: str) -> Path:
        return self.data_dir / f"{collection}.json"

    def _read_file(self, collection: str) -> list[dict]:
        path = self.path_for(collection)
        if not path.exists() and collection in LEGACY_FILES:
            path = self.data_dir / LEGACY_FILES[collection]
        if not path.exists():
            return []
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError:
            logger.warning("%s is empty or corrupted, treating it as an empty collection", path)
            return []
        except OSError as exc:
            raise BackendUnavailable(str(exc), backend=self.kind.value) from exc
        if not isinstance(data, list):
            logger.warning("%s does not hold a JSON array, ignoring it", path)
            return []
        return [item for item in data if isinstance(item, dict)]

    def _write_file(self, collection: str, items: list[dict]) -> None:
        path = self.path_for(collection)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(items, f, ensure_ascii=False, indent=2)
        except OSError as exc:
            logger.error("Could not write %s: %s", path, exc)
            raise BackendUnavailable(str(exc), backend=self.kind.value) from exc

    async def _load(self, collection: str) -> list[Record]:
        items = await asyncio.to_thread(self._read_file, collection)
        return [decode(collection, item, self.kind) for item in items]

    async def _save(self, collection: str, records: Sequence[Record]) -> None:
        items = [encode(collection, record, self.kind) for record in records]
        await asyncio.to_thread(self._write_file, collection, items)

    def _next_id(self, records: Sequence[Record]) -> int:
        numeric = [r.id for r in records if isinstance(r.id, int)]
        return max(numeric, default=0) + 1

    def _index_of(self, records: Sequence[Record], record_id: RecordId) -> int:
        for index, record in enumerate(records):
            if same_id(record.id, record_id):
                return index
        return -1

    async def list_all(self, collection: str) -> list[Record]:
        async with self._locks[collection]:
            return await self._load(collection)

    async def get_one(self, collection: str, record_id: RecordId) -> Optional[Record]:
        records = await self.list_all(collection)
        index = self._index_of(records, record_id)
        return records[index] if index != -1 else None

    async def insert(self, collection: str, record: Record) -> Record:
        async with self._locks[collection]:
            records = await self._load(collection)
            if record.id is None:
                if collection in STRING_KEYED:
                    raise ValidationFailure(f"{collection} records need an explicit id")
                record = record.model_copy(update={"id": self._next_id(records)})
            elif self._index_of(records, record.id) != -1:
                raise ValidationFailure(f"{collection}/{record.id} already exists")
            records.append(record)
            await self._save(collection, records)
        return record

    async def update(
        self,
        collection: str,
        record_id: RecordId,
        patch: dict[str, Any],
        now: Optional[datetime] = None,
    ) -> Optional[Record]:
        async with self._locks[collection]:
            records = await self._load(collection)
            index = self._index_of(records, record_id)
            if index == -1:
                return None
            records[index] = apply_patch(collection, records[index], patch, now)
            await self._save(collection, records)
            return records[index]

    async def delete(self, collection: str, record_id: RecordId) -> bool:
        async with self._locks[collection]:
            records = await self._load(collection)
            index = self._index_of(records, record_id)
            if index == -1:
                return False
            del records[index]
            await self._save(collection, records)
            return True

    async def replace_all(self, collection: str, records: Sequence[Record]) -> None:
        records = list(records)
        next_id = self._next_id(records)
        for index, record in enumerate(records):
            if record.id is None:
                records[index] = record.model_copy(update={"id": next_id})
                next_id += 1
        async with self._locks[collection]:
            await self._save(collection, records)
        logger.info("Replaced %s with %d records", collection, len(records))
