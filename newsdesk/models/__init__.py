"""Relational table models, one table per collection."""

from newsdesk.models.article import ArticleRow
from newsdesk.models.poll import PollRow
from newsdesk.models.ad_slot import AdSlotRow
from newsdesk.models.subscriber import SubscriberRow
from newsdesk.models.draft import DraftRow

TABLES = {
    "articles": ArticleRow,
    "polls": PollRow,
    "ads": AdSlotRow,
    "subscribers": SubscriberRow,
    "drafts": DraftRow,
}

__all__ = [
    "ArticleRow",
    "PollRow",
    "AdSlotRow",
    "SubscriberRow",
    "DraftRow",
    "TABLES",
]
