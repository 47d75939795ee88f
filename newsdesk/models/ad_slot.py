"""Ad slot table."""

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from newsdesk.database import Base


class AdSlotRow(Base):
    """Advertisement placement; the slot name is the natural key."""

    __tablename__ = "ads"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    slot_name: Mapped[str] = mapped_column(String(50), unique=True)
    title: Mapped[str] = mapped_column(Text, default="")
    image: Mapped[str] = mapped_column(Text, default="")
    link_url: Mapped[str] = mapped_column(Text, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
