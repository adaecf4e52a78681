"""ChatSession ORM — one conversation thread with its running message count.

Invariants:
    - id is UUID primary key
    - message_count equals the number of persisted ChatMessage rows
    - title defaults to "New Chat" until the title generator replaces it
    - updated_at refreshed on every persisted message

Design Decisions:
    - message_count denormalized: title regeneration cadence needs it on every turn
      without a COUNT query
    - cascade delete for messages
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatSession(Base):
    """Conversation aggregate root — owns its messages."""
    __tablename__ = "chat_sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    title: Mapped[str] = mapped_column(
        String(200), nullable=False, default="New Chat",
    )
    model: Mapped[str] = mapped_column(String(200), nullable=False)
    message_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )

    messages: Mapped[list["ChatMessage"]] = relationship(
        "ChatMessage", back_populates="session",
        cascade="all, delete-orphan", lazy="selectin",
        order_by="ChatMessage.position",
    )

    def touch(self) -> None:
        self.updated_at = _utcnow()
