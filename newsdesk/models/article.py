"""Article table."""

from typing import Optional

from sqlalchemy import JSON, Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from newsdesk.database import Base


class ArticleRow(Base):
    """News article row. ``video`` is stored as a JSON column."""

    __tablename__ = "articles"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(300), index=True, default="")
    category: Mapped[str] = mapped_column(String(100), index=True, default="")

    title: Mapped[str] = mapped_column(Text, default="")
    excerpt: Mapped[str] = mapped_column(Text, default="")
    body_html: Mapped[str] = mapped_column(Text, default="")
    author: Mapped[str] = mapped_column(String(200), default="")
    cover_image: Mapped[str] = mapped_column(Text, default="")
    published_at: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)

    reading_time_minutes: Mapped[int] = mapped_column(Integer, default=1)
    view_count: Mapped[int] = mapped_column(Integer, default=0)
    is_published: Mapped[bool] = mapped_column(Boolean, default=True)
    is_breaking: Mapped[bool] = mapped_column(Boolean, default=False)
    is_featured: Mapped[bool] = mapped_column(Boolean, default=False)
    breaking_window_hours: Mapped[int] = mapped_column(Integer, default=6)
    breaking_started_at: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)

    video: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
