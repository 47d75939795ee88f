"""Bulk mutation engine: apply one admin action to a selection of records.

From the caller's point of view an action either changes every selected
record or none of them. Backends with a batch primitive get one batched
write; the flat-file backend gets the patch applied to an in-memory copy of
the collection followed by a single ``replace_all``.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from newsdesk.errors import BackendUnavailable, PartialBulkFailure, ValidationFailure
from newsdesk.records import ARTICLES, RecordId, apply_patch, to_timestamp, utc_now
from newsdesk.storage.gateway import PersistenceGateway

logger = logging.getLogger(__name__)

DELETE = "delete"

ACTION_PATCHES: dict[str, Callable[[datetime], dict[str, Any]]] = {
    "publish": lambda now: {"is_published": True, "published_at": to_timestamp(now)},
    "unpublish": lambda now: {"is_published": False},
    "setBreaking": lambda now: {"is_breaking": True},
    "unsetBreaking": lambda now: {"is_breaking": False},
    "setFeatured": lambda now: {"is_featured": True},
    "unsetFeatured": lambda now: {"is_featured": False},
}
ACTIONS = [*ACTION_PATCHES, DELETE]


class BulkFailure(str, Enum):
    """Why a bulk action did not complete."""

    VALIDATION = "validation"  # nothing was attempted
    BACKEND = "backend"  # attempted, rolled back


@dataclass
class BulkOutcome:
    action: str
    affected_ids: list[RecordId] = field(default_factory=list)
    failure: Optional[BulkFailure] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.failure is None

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "affectedIds": self.affected_ids,
            "ok": self.ok,
            "failure": self.failure.value if self.failure else None,
            "message": self.message,
        }


class BulkSelection:
    """Selection set for one admin listing, plus the actions run against it."""

    def __init__(self, gateway: PersistenceGateway, collection: str = ARTICLES):
        self.gateway = gateway
        self.collection = collection
        # dict keeps selection order for the outcome
        self._selected: dict[RecordId, None] = {}

    @property
    def selected_ids(self) -> list[RecordId]:
        return list(self._selected)

    def select(self, record_id: RecordId) -> None:
        self._selected[record_id] = None

    def deselect(self, record_id: RecordId) -> None:
        self._selected.pop(record_id, None)

    def toggle(self, record_id: RecordId) -> None:
        if record_id in self._selected:
            self.deselect(record_id)
        else:
            self.select(record_id)

    def select_all(self, ids: Iterable[RecordId]) -> None:
        """Replace the selection with ``ids``."""
        self._selected = dict.fromkeys(ids)

    def deselect_all(self) -> None:
        self._selected.clear()

    def is_selected(self, record_id: RecordId) -> bool:
        return record_id in self._selected

    def count(self) -> int:
        return len(self._selected)

    async def perform_action(
        self, action: str, confirmed: bool = False, now: Optional[datetime] = None
    ) -> BulkOutcome:
        """Run ``action`` on every selected id.

        On success the selection is cleared. On failure it is left as is so
        the admin can retry.
        """
        ids = self.selected_ids
        if not ids:
            return self._rejected(action, "Select at least one record.")
        if action not in ACTIONS:
            return self._rejected(action, f"Unknown bulk action: {action}")
        if action != DELETE and self.collection != ARTICLES:
            return self._rejected(action, f"{action} only applies to articles")
        if action == DELETE and not confirmed:
            return self._rejected(
                action, f"Deleting {len(ids)} records cannot be undone; confirm to continue."
            )

        now = now or utc_now()
        try:
            if self.gateway.supports_batch:
                await self._apply_batch(action, ids, now)
            else:
                await self._apply_in_memory(action, ids, now)
        except ValidationFailure as exc:
            return self._rejected(action, exc.message)
        except (BackendUnavailable, PartialBulkFailure) as exc:
            logger.warning("Bulk %s on %d %s failed: %s", action, len(ids), self.collection, exc.message)
            return BulkOutcome(action=action, failure=BulkFailure.BACKEND, message=exc.message)

        self.deselect_all()
        logger.info("Bulk %s applied to %d %s", action, len(ids), self.collection)
        return BulkOutcome(action=action, affected_ids=ids, message=f"{len(ids)} records updated.")

    def _rejected(self, action: str, message: str) -> BulkOutcome:
        return BulkOutcome(action=action, failure=BulkFailure.VALIDATION, message=message)

    async def _apply_batch(self, action: str, ids: list[RecordId], now: datetime) -> None:
        if action == DELETE:
            await self.gateway.batch_delete(self.collection, ids)
        else:
            await self.gateway.batch_update(self.collection, ids, ACTION_PATCHES[action](now), now)

    async def _apply_in_memory(self, action: str, ids: list[RecordId], now: datetime) -> None:
        records = await self.gateway.list_all(self.collection)
        positions = {str(record.id): index for index, record in enumerate(records)}
        missing = [record_id for record_id in ids if str(record_id) not in positions]
        if missing:
            raise PartialBulkFailure(f"{len(missing)} selected records no longer exist", ids=missing)

        if action == DELETE:
            doomed = {str(record_id) for record_id in ids}
            records = [record for record in records if str(record.id) not in doomed]
        else:
            patch = ACTION_PATCHES[action](now)
            for record_id in ids:
                index = positions[str(record_id)]
                records[index] = apply_patch(self.collection, records[index], patch, now)
        # Any failure above leaves the stored collection untouched
        await self.gateway.replace_all(self.collection, records)
