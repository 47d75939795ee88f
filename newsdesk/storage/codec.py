"""Record codec: canonical records to and from each backend's storage shape.

- relational: snake_case column names, ``None`` for absent values, nested
  structures left as dicts/lists for the JSON columns.
- document: camelCase fields, absent optionals omitted, the id lives in the
  document reference rather than the body.
- flatfile: camelCase keys, absent optionals written as JSON ``null``. Files
  written by the previous Turkish-keyed admin panel are read transparently.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic.alias_generators import to_camel

from newsdesk.errors import ValidationFailure
from newsdesk.records import (
    ADS,
    ARTICLES,
    DRAFTS,
    POLLS,
    STRING_KEYED,
    SUBSCRIBERS,
    Record,
    RecordId,
    record_type,
)
from newsdesk.storage.base import BackendKind

LEGACY_KEYS = {
    ARTICLES: {
        "kategori": "category",
        "baslik": "title",
        "ozet": "excerpt",
        "icerik": "bodyHtml",
        "gorsel": "coverImage",
        "yazar": "author",
        "yayinTarihi": "publishedAt",
        "okumaSuresi": "readingTimeMinutes",
        "goruntulenme": "viewCount",
        "sonDakika": "isBreaking",
        "sonDakikaSure": "breakingWindowHours",
        "sonDakikaBaslangic": "breakingStartedAt",
        "oneCikan": "isFeatured",
    },
    POLLS: {
        "soru": "question",
        "secenekler": "options",
        "aktif": "isActive",
        "toplamOy": "totalVotes",
        "baslangicTarihi": "startDate",
        "bitisTarihi": "endDate",
        "olusturmaTarihi": "createdAt",
        "oyVerenIpler": "votersSeen",
    },
    ADS: {
        "slot": "slotName",
        "baslik": "title",
        "gorsel": "image",
        "link": "linkUrl",
        "aktif": "isActive",
    },
    SUBSCRIBERS: {"tarih": "subscribedAt"},
}
LEGACY_OPTION_KEYS = {"metin": "text", "oy": "voteCount"}


def encode(collection: str, record: Record, kind: BackendKind) -> dict[str, Any]:
    """Convert a canonical record into the backend's storage shape."""
    if kind == BackendKind.RELATIONAL:
        data = record.model_dump(mode="json")
        if data.get("id") is None:
            data.pop("id", None)
        if collection == DRAFTS and data.get("article_id") is not None:
            data["article_id"] = str(data["article_id"])
        return data
    if kind == BackendKind.DOCUMENT:
        data = record.model_dump(mode="json", by_alias=True, exclude_none=True)
        data.pop("id", None)
        return data
    return record.model_dump(mode="json", by_alias=True)


def decode(
    collection: str,
    shape: dict[str, Any],
    kind: BackendKind,
    record_id: Optional[RecordId] = None,
) -> Record:
    """Inverse of :func:`encode`; missing optionals get the model defaults."""
    model = record_type(collection)
    data = {key: _plain(value) for key, value in shape.items()}
    if kind == BackendKind.FLATFILE:
        data = _upgrade_legacy(collection, data)
    if record_id is not None:
        data["id"] = record_id
    if kind == BackendKind.RELATIONAL and collection == DRAFTS:
        article_id = data.get("article_id")
        if isinstance(article_id, str) and article_id.isdigit():
            data["article_id"] = int(article_id)
    return model.model_validate(data)


def storage_field(collection: str, field: str, kind: BackendKind) -> str:
    """Name of a canonical field in the backend's storage shape."""
    model = record_type(collection)
    if field not in model.model_fields:
        camel = {to_camel(name): name for name in model.model_fields}
        if field not in camel:
            raise ValidationFailure(f"Unknown field for {collection}: {field}")
        field = camel[field]
    if kind == BackendKind.RELATIONAL:
        return field
    return to_camel(field)


def coerce_id(collection: str, record_id: RecordId) -> Optional[RecordId]:
    """Normalise an id coming from a URL for integer-keyed backends.

    Returns ``None`` when the value can never match a stored record.
    """
    if collection in STRING_KEYED:
        return str(record_id)
    if isinstance(record_id, int):
        return record_id
    try:
        return int(str(record_id).strip())
    except ValueError:
        return None


def _plain(value: Any) -> Any:
    # Firestore hands back timestamp fields as datetime subclasses
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _upgrade_legacy(collection: str, data: dict[str, Any]) -> dict[str, Any]:
    mapping = LEGACY_KEYS.get(collection)
    if not mapping or not any(key in data for key in mapping):
        return data
    upgraded = {mapping.get(key, key): value for key, value in data.items()}
    if collection == POLLS and isinstance(upgraded.get("options"), list):
        upgraded["options"] = [
            {LEGACY_OPTION_KEYS.get(k, k): v for k, v in option.items()}
            for option in upgraded["options"]
            if isinstance(option, dict)
        ]
    return upgraded
