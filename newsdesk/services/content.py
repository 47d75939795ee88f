"""Per-entity rules on top of the gateway: articles, polls, ad slots, subscribers."""

import logging
from datetime import datetime
from typing import Any, Optional

from newsdesk.errors import ValidationFailure
from newsdesk.records import (
    AD_SLOTS,
    ADS,
    ARTICLES,
    DRAFTS,
    POLLS,
    SUBSCRIBERS,
    AdSlot,
    Article,
    Poll,
    PollOption,
    Record,
    RecordId,
    Subscriber,
    build_record,
    normalize_patch,
    to_timestamp,
    utc_now,
)
from newsdesk.storage.base import same_id
from newsdesk.storage.gateway import PersistenceGateway

logger = logging.getLogger(__name__)


async def create_record(
    gateway: PersistenceGateway, collection: str, payload: dict[str, Any], now: Optional[datetime] = None
) -> tuple[Record, bool]:
    """Create a record through the entity's own rules.

    Returns the stored record and whether it was newly created (ad slots and
    subscribers are unique by natural key and may resolve to an existing one).
    """
    if collection == ARTICLES:
        return await create_article(gateway, payload, now), True
    if collection == POLLS:
        return await create_poll(gateway, payload, now), True
    if collection == ADS:
        return await upsert_ad_slot(gateway, payload)
    if collection == SUBSCRIBERS:
        return await subscribe(gateway, payload.get("email", ""), now)
    if collection == DRAFTS:
        raise ValidationFailure("Drafts are saved through the draft endpoints")
    raise ValidationFailure(f"Unknown collection: {collection}")


async def update_record(
    gateway: PersistenceGateway,
    collection: str,
    record_id: RecordId,
    patch: dict[str, Any],
    now: Optional[datetime] = None,
) -> Optional[Record]:
    if collection == POLLS:
        return await update_poll(gateway, record_id, patch)
    return await gateway.update(collection, record_id, patch, now)


async def create_article(
    gateway: PersistenceGateway, payload: dict[str, Any], now: Optional[datetime] = None
) -> Article:
    if not str(payload.get("title") or "").strip():
        raise ValidationFailure("Title is required")
    article = build_record(ARTICLES, payload, now)
    return await gateway.insert(ARTICLES, article)


# ---------------------------------------------------------------- polls


def _option_texts(options: Any) -> list[str]:
    texts = []
    for option in options or []:
        text = option.get("text") if isinstance(option, dict) else option
        text = str(text or "").strip()
        if text:
            texts.append(text)
    return texts


async def _deactivate_other_polls(gateway: PersistenceGateway, keep_id: Optional[RecordId]) -> None:
    polls = await gateway.list_all(POLLS)
    active = [p.id for p in polls if p.is_active and not same_id(p.id, keep_id)]
    if not active:
        return
    if gateway.supports_batch:
        await gateway.batch_update(POLLS, active, {"is_active": False})
    else:
        for poll_id in active:
            await gateway.update(POLLS, poll_id, {"is_active": False})
    logger.info("Deactivated %d poll(s)", len(active))


async def create_poll(
    gateway: PersistenceGateway, payload: dict[str, Any], now: Optional[datetime] = None
) -> Poll:
    """Create a poll; creating it active deactivates every other poll."""
    now = now or utc_now()
    data = normalize_patch(Poll, payload)
    question = str(data.get("question") or "").strip()
    if not question:
        raise ValidationFailure("Question is required")
    texts = _option_texts(data.get("options"))
    if len(texts) < 2:
        raise ValidationFailure("At least two options are required")

    poll = Poll(
        question=question,
        options=[PollOption(text=text) for text in texts],
        is_active=bool(data.get("is_active", False)),
        start_date=data.get("start_date") or now.date().isoformat(),
        end_date=data.get("end_date") or None,
        created_at=to_timestamp(now),
    )
    if poll.is_active:
        await _deactivate_other_polls(gateway, keep_id=None)
    return await gateway.insert(POLLS, poll)


async def update_poll(
    gateway: PersistenceGateway, poll_id: RecordId, payload: dict[str, Any]
) -> Optional[Poll]:
    """Edit a poll. Vote counts survive option edits, matched by position."""
    current = await gateway.get_one(POLLS, poll_id)
    if current is None:
        return None
    changes = normalize_patch(Poll, payload)
    # Votes are only changed by voting
    changes.pop("total_votes", None)
    changes.pop("voters_seen", None)
    if "options" in changes:
        texts = _option_texts(changes["options"])
        if len(texts) < 2:
            raise ValidationFailure("At least two options are required")
        changes["options"] = [
            {
                "text": text,
                "vote_count": current.options[i].vote_count if i < len(current.options) else 0,
            }
            for i, text in enumerate(texts)
        ]
    if "question" in changes:
        changes["question"] = str(changes["question"] or "").strip()
        if not changes["question"]:
            raise ValidationFailure("Question is required")
    if changes.get("is_active") is True:
        await _deactivate_other_polls(gateway, keep_id=current.id)
    return await gateway.update(POLLS, current.id, changes)


async def activate_poll(gateway: PersistenceGateway, poll_id: RecordId) -> Optional[Poll]:
    return await update_poll(gateway, poll_id, {"is_active": True})


async def active_poll(gateway: PersistenceGateway) -> Optional[Poll]:
    polls = await gateway.list_all(POLLS)
    return next((poll for poll in polls if poll.is_active), None)


async def vote(
    gateway: PersistenceGateway, fingerprint: str, option_index: Any
) -> Optional[Poll]:
    """Count one vote on the active poll; ``None`` if no poll is active."""
    poll = await active_poll(gateway)
    if poll is None:
        return None
    if fingerprint in poll.voters_seen:
        raise ValidationFailure("You have already voted in this poll.")
    try:
        index = int(option_index)
    except (TypeError, ValueError):
        raise ValidationFailure("Invalid option")
    if not 0 <= index < len(poll.options):
        raise ValidationFailure("Invalid option")

    options = [option.model_dump() for option in poll.options]
    options[index]["vote_count"] += 1
    return await gateway.update(
        POLLS,
        poll.id,
        {
            "options": options,
            "total_votes": poll.total_votes + 1,
            "voters_seen": [*poll.voters_seen, fingerprint],
        },
    )


# ---------------------------------------------------------------- ads


async def upsert_ad_slot(
    gateway: PersistenceGateway, payload: dict[str, Any]
) -> tuple[AdSlot, bool]:
    """Write an ad slot; writing the same slot name again updates it."""
    data = normalize_patch(AdSlot, payload)
    slot = str(data.get("slot_name") or "").strip()
    if not slot:
        raise ValidationFailure("Slot is required")
    if slot not in AD_SLOTS:
        raise ValidationFailure(f"Unknown ad slot: {slot}")

    values = {
        "slot_name": slot,
        "title": str(data.get("title") or "").strip() or slot,
        "image": str(data.get("image") or "").strip(),
        "link_url": str(data.get("link_url") or "").strip(),
        "is_active": bool(data.get("is_active", True)),
    }
    ads = await gateway.list_all(ADS)
    existing = next((ad for ad in ads if ad.slot_name == slot), None)
    if existing is not None:
        return await gateway.update(ADS, existing.id, values), False
    return await gateway.insert(ADS, AdSlot(**values)), True


# ---------------------------------------------------------------- newsletter


async def subscribe(
    gateway: PersistenceGateway, email: str, now: Optional[datetime] = None
) -> tuple[Subscriber, bool]:
    """Add a subscriber; an address already on the list is returned as is."""
    email = str(email or "").strip().lower()
    if not email or "@" not in email:
        raise ValidationFailure("A valid e-mail address is required")
    subscribers = await gateway.list_all(SUBSCRIBERS)
    existing = next((s for s in subscribers if s.email.lower() == email), None)
    if existing is not None:
        return existing, False
    subscriber = Subscriber(email=email, subscribed_at=to_timestamp(now or utc_now()))
    return await gateway.insert(SUBSCRIBERS, subscriber), True
