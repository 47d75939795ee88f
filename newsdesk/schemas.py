"""Request bodies accepted by the HTTP API."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from newsdesk.records import RecordId


class RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LoginRequest(RequestModel):
    password: str = ""


class BulkRequest(RequestModel):
    """Bulk action over the listed ids; ``confirm`` is required for delete."""

    action: str
    ids: list[RecordId] = Field(default_factory=list)
    confirm: bool = False


class VoteRequest(RequestModel):
    option_index: Any = None


class DraftRequest(RequestModel):
    user_id: str = Field(..., min_length=1)
    form_state: dict[str, Any] = Field(default_factory=dict)


class PublishRequest(RequestModel):
    user_id: str = Field(..., min_length=1)
    article: dict[str, Any] = Field(default_factory=dict)
    article_id: Optional[RecordId] = None
