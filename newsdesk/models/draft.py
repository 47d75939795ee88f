"""Draft snapshot table for editor autosave."""

from typing import Optional

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from newsdesk.database import Base


class DraftRow(Base):
    """Autosaved editor state.

    The primary key is the draft key (``<articleId|new>_<userId>``), so a
    later autosave for the same article and user overwrites the row instead
    of adding one.
    """

    __tablename__ = "drafts"

    id: Mapped[str] = mapped_column(String(200), primary_key=True)
    article_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    user_id: Mapped[str] = mapped_column(String(128))
    form_state: Mapped[dict] = mapped_column(JSON, default=dict)
    saved_at: Mapped[str] = mapped_column(String(40))
    expires_at: Mapped[str] = mapped_column(String(40))
