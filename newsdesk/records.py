"""Canonical in-memory records and the rules applied when they change.

Every backend stores a different shape (see ``newsdesk.storage.codec``); the
rest of the application only ever sees these models. Attribute names are
snake_case, and each field also answers to its camelCase alias so payloads
from the admin UI validate directly.
"""

import math
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from newsdesk.errors import ValidationFailure

RecordId = Union[int, str]

ARTICLES = "articles"
POLLS = "polls"
ADS = "ads"
SUBSCRIBERS = "subscribers"
DRAFTS = "drafts"

CATEGORIES = [
    "Gündem",
    "Ekonomi",
    "Spor",
    "Magazin",
    "Kültür-Sanat",
    "Teknoloji",
    "Yaşam",
    "Üzüm & Bağcılık",
]
AD_SLOTS = ["ana-1", "ana-2", "sidebar-1"]

DEFAULT_AUTHOR = "Editör"
DEFAULT_CATEGORY = "Gündem"
DEFAULT_BREAKING_WINDOW_HOURS = 6
DRAFT_TTL = timedelta(days=7)
WORDS_PER_MINUTE = 200

_TURKISH_CHARS = str.maketrans({
    "ğ": "g", "Ğ": "g",
    "ü": "u", "Ü": "u",
    "ş": "s", "Ş": "s",
    "ı": "i", "İ": "i",
    "ö": "o", "Ö": "o",
    "ç": "c", "Ç": "c",
})
_TAG_RE = re.compile(r"<[^>]+>")


class Record(BaseModel):
    """Base for all canonical records."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: Optional[RecordId] = None


class Video(BaseModel):
    """Embedded video reference on an article."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    kind: str = ""
    url: str = ""
    embed_url: str = ""
    thumbnail: str = ""


class Article(Record):
    """A news article."""

    slug: str = ""
    category: str = DEFAULT_CATEGORY
    title: str = ""
    excerpt: str = ""
    body_html: str = ""
    author: str = DEFAULT_AUTHOR
    cover_image: str = ""
    published_at: Optional[str] = None
    reading_time_minutes: int = 1
    view_count: int = 0
    is_published: bool = True
    is_breaking: bool = False
    is_featured: bool = False
    breaking_window_hours: int = DEFAULT_BREAKING_WINDOW_HOURS
    breaking_started_at: Optional[str] = None
    video: Optional[Video] = None

    @field_validator("reading_time_minutes", mode="before")
    @classmethod
    def _at_least_one_minute(cls, value):
        try:
            return max(1, int(value))
        except (TypeError, ValueError):
            return 1

    @field_validator("author", mode="before")
    @classmethod
    def _default_author(cls, value):
        return (value or "").strip() or DEFAULT_AUTHOR

    @field_validator("cover_image", "excerpt", "body_html", mode="before")
    @classmethod
    def _empty_string_sentinel(cls, value):
        return value if value is not None else ""

    @field_validator("breaking_window_hours", mode="before")
    @classmethod
    def _default_window(cls, value):
        try:
            return int(value) or DEFAULT_BREAKING_WINDOW_HOURS
        except (TypeError, ValueError):
            return DEFAULT_BREAKING_WINDOW_HOURS

    @field_validator("video", mode="before")
    @classmethod
    def _drop_empty_video(cls, value):
        if isinstance(value, dict) and not value.get("url"):
            return None
        return value

    def is_breaking_active(self, now: Optional[datetime] = None) -> bool:
        """Whether the breaking flag is still inside its window."""
        if not self.is_breaking or not self.breaking_started_at:
            return False
        started = parse_timestamp(self.breaking_started_at)
        if started is None:
            return False
        now = now or utc_now()
        return now - started < timedelta(hours=self.breaking_window_hours)


class PollOption(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    text: str
    vote_count: int = 0


class Poll(Record):
    """A reader poll. At most one poll is active at a time."""

    question: str = ""
    options: list[PollOption] = Field(default_factory=list)
    is_active: bool = False
    total_votes: int = 0
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    created_at: Optional[str] = None
    voters_seen: list[str] = Field(default_factory=list)


class AdSlot(Record):
    """An advertisement placement, unique by ``slot_name``."""

    slot_name: str
    title: str = ""
    image: str = ""
    link_url: str = ""
    is_active: bool = True


class Subscriber(Record):
    """A newsletter subscriber, unique by ``email``."""

    email: str
    subscribed_at: Optional[str] = None


class DraftSnapshot(Record):
    """Autosaved form state of an in-progress edit."""

    article_id: Optional[RecordId] = None
    user_id: str
    form_state: dict[str, Any] = Field(default_factory=dict)
    saved_at: str
    expires_at: str

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        expires = parse_timestamp(self.expires_at)
        return expires is None or expires <= (now or utc_now())


RECORD_TYPES: dict[str, type[Record]] = {
    ARTICLES: Article,
    POLLS: Poll,
    ADS: AdSlot,
    SUBSCRIBERS: Subscriber,
    DRAFTS: DraftSnapshot,
}

# Collections whose ids are assigned by the application rather than the backend.
STRING_KEYED = {DRAFTS}


def record_type(collection: str) -> type[Record]:
    try:
        return RECORD_TYPES[collection]
    except KeyError:
        raise ValidationFailure(f"Unknown collection: {collection}")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_timestamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.isoformat()


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-ish timestamp; naive values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def slugify(text: Optional[str]) -> str:
    """URL-safe slug with Turkish letters transliterated."""
    if not text:
        return ""
    slug = text.translate(_TURKISH_CHARS).lower()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def reading_time(body: Optional[str]) -> int:
    """Minutes needed to read ``body`` at 200 words per minute, at least 1."""
    if not body:
        return 1
    words = len(_TAG_RE.sub(" ", body).split()) or 1
    return max(1, math.ceil(words / WORDS_PER_MINUTE))


def normalize_patch(model: type[BaseModel], patch: dict[str, Any]) -> dict[str, Any]:
    """Map aliased keys onto field names, dropping ``id`` and unknown keys."""
    by_alias = {}
    for name, field in model.model_fields.items():
        by_alias[name] = name
        if field.alias:
            by_alias[field.alias] = name
    changes = {}
    for key, value in patch.items():
        name = by_alias.get(key)
        if name is None or name == "id":
            continue
        changes[name] = value
    return changes


def build_record(
    collection: str, payload: dict[str, Any], now: Optional[datetime] = None
) -> Record:
    """Create a new record from a caller payload, filling derived fields."""
    model = record_type(collection)
    data = normalize_patch(model, payload)
    if "id" in payload and collection in STRING_KEYED:
        data["id"] = payload["id"]
    if collection == ARTICLES:
        data = _prepare_article(data, now or utc_now())
    return validate_record(model, data)


def apply_patch(
    collection: str,
    current: Record,
    patch: dict[str, Any],
    now: Optional[datetime] = None,
) -> Record:
    """Merge ``patch`` onto ``current``; fields absent from the patch are kept."""
    model = type(current)
    changes = normalize_patch(model, patch)
    data = current.model_dump()
    data.update(changes)
    if collection == ARTICLES:
        data = _merge_article(current, changes, data, now or utc_now())
    return validate_record(model, data)


def _prepare_article(data: dict[str, Any], now: datetime) -> dict[str, Any]:
    data["title"] = (data.get("title") or "").strip()
    data["slug"] = slugify(data.get("slug")) or slugify(data["title"])
    if data.get("reading_time_minutes") is None:
        data["reading_time_minutes"] = reading_time(data.get("body_html"))
    if data.get("is_breaking"):
        data["breaking_started_at"] = to_timestamp(now)
    else:
        data["breaking_started_at"] = None
    if data.get("is_published", True) and not data.get("published_at"):
        data["published_at"] = to_timestamp(now)
    return data


def _merge_article(
    current: "Article", changes: dict[str, Any], data: dict[str, Any], now: datetime
) -> dict[str, Any]:
    if "title" in changes:
        data["title"] = (data.get("title") or "").strip()
    if changes.get("slug"):
        data["slug"] = slugify(changes["slug"]) or current.slug
    elif "title" in changes and data["title"] != current.title:
        data["slug"] = slugify(data["title"]) or current.slug

    if changes.get("reading_time_minutes") is None:
        body_changed = "body_html" in changes and changes["body_html"] != current.body_html
        data["reading_time_minutes"] = (
            reading_time(changes["body_html"]) if body_changed else current.reading_time_minutes
        )

    if data.get("is_breaking"):
        if current.is_breaking and current.breaking_started_at:
            data["breaking_started_at"] = current.breaking_started_at
        else:
            data["breaking_started_at"] = to_timestamp(now)
    else:
        data["breaking_started_at"] = None
    return data


def validate_record(model: type[Record], data: dict[str, Any]) -> Record:
    """Validate caller data, reporting bad values as a validation failure."""
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise ValidationFailure(f"Invalid {model.__name__.lower()}: {problems}") from exc
