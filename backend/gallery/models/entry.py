import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from gallery.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Entry(Base):
    __tablename__ = "entries"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    title: Mapped[str] = mapped_column(String(300), index=True)
    description: Mapped[str] = mapped_column(Text)

    before_url: Mapped[str] = mapped_column(String(2000))
    before_identifier: Mapped[str] = mapped_column(String(1000), unique=True)
    before_preview: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    before_placeholder: Mapped[bool] = mapped_column(Boolean, default=False)

    after_url: Mapped[str] = mapped_column(String(2000))
    after_identifier: Mapped[str] = mapped_column(String(1000), unique=True)
    after_preview: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    like_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, index=True)

    __table_args__ = (CheckConstraint("like_count >= 0", name="ck_entries_like_count_non_negative"),)
