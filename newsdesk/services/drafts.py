"""Autosaved article drafts.

One snapshot is kept per (article, admin user); saving again overwrites it.
Snapshots expire seven days after they were last saved.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from newsdesk.records import (
    ARTICLES,
    DRAFT_TTL,
    DRAFTS,
    Article,
    DraftSnapshot,
    RecordId,
    to_timestamp,
    utc_now,
)
from newsdesk.services.content import create_article
from newsdesk.storage.gateway import PersistenceGateway

logger = logging.getLogger(__name__)


def draft_key(article_id: Optional[RecordId], user_id: str) -> str:
    """Storage id of a snapshot, e.g. ``"42_editor"`` or ``"new_editor"``."""
    return f"{article_id if article_id not in (None, '') else 'new'}_{user_id}"


async def save_draft(
    gateway: PersistenceGateway,
    article_id: Optional[RecordId],
    user_id: str,
    form_state: dict[str, Any],
    now: Optional[datetime] = None,
) -> DraftSnapshot:
    now = now or utc_now()
    key = draft_key(article_id, user_id)
    values = {
        "article_id": article_id,
        "user_id": user_id,
        "form_state": dict(form_state),
        "saved_at": to_timestamp(now),
        "expires_at": to_timestamp(now + DRAFT_TTL),
    }
    updated = await gateway.update(DRAFTS, key, values, now)
    if updated is not None:
        return updated
    return await gateway.insert(DRAFTS, DraftSnapshot(id=key, **values))


async def load_draft(
    gateway: PersistenceGateway,
    article_id: Optional[RecordId],
    user_id: str,
    now: Optional[datetime] = None,
) -> Optional[DraftSnapshot]:
    """The saved snapshot, or ``None`` if there is none or it has expired."""
    draft = await gateway.get_one(DRAFTS, draft_key(article_id, user_id))
    if draft is None or draft.is_expired(now):
        return None
    return draft


async def clear_draft(
    gateway: PersistenceGateway, article_id: Optional[RecordId], user_id: str
) -> bool:
    return await gateway.delete(DRAFTS, draft_key(article_id, user_id))


async def purge_expired_drafts(gateway: PersistenceGateway, now: Optional[datetime] = None) -> int:
    """Delete every expired snapshot and return how many were removed."""
    drafts = await gateway.list_all(DRAFTS)
    expired = [draft.id for draft in drafts if draft.is_expired(now)]
    for draft_id in expired:
        await gateway.delete(DRAFTS, draft_id)
    if expired:
        logger.info("Purged %d expired draft(s)", len(expired))
    return len(expired)


async def publish_article(
    gateway: PersistenceGateway,
    article_id: Optional[RecordId],
    user_id: str,
    payload: dict[str, Any],
    now: Optional[datetime] = None,
) -> Optional[Article]:
    """Save the article form and discard its draft.

    ``article_id=None`` creates a new article. Returns ``None`` when the
    article being edited no longer exists; the draft is kept in that case.
    """
    if article_id is None:
        article = await create_article(gateway, payload, now)
    else:
        article = await gateway.update(ARTICLES, article_id, payload, now)
        if article is None:
            return None
    await clear_draft(gateway, article_id, user_id)
    return article
