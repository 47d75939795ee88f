"""Newsletter subscriber table."""

from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from newsdesk.database import Base


class SubscriberRow(Base):
    __tablename__ = "subscribers"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), unique=True)
    subscribed_at: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
