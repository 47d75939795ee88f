"""Poll table."""

from typing import Optional

from sqlalchemy import JSON, Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from newsdesk.database import Base


class PollRow(Base):
    """Reader poll. Options and the voter fingerprints are JSON columns."""

    __tablename__ = "polls"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    question: Mapped[str] = mapped_column(Text, default="")
    options: Mapped[list] = mapped_column(JSON, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    total_votes: Mapped[int] = mapped_column(Integer, default=0)
    start_date: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    end_date: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    created_at: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    voters_seen: Mapped[list] = mapped_column(JSON, default=list)
