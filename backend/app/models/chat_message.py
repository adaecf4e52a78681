"""ChatMessage ORM — one persisted user or assistant turn.

Invariants:
    - position is the 0-based order within the session (never reused)
    - role is "user", "assistant" or "system"; tool traffic is not persisted
    - model set only on assistant rows

Design Decisions:
    - Explicit position column over created_at ordering: turns written within
      the same clock tick still replay in order
    - Only final text is stored: tool calls and results are rebuilt per turn
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Text, Integer, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class ChatMessage(Base):
    """Persisted transcript entry, replayed as history on the next turn."""
    __tablename__ = "chat_messages"
    __table_args__ = (
        UniqueConstraint(
            "session_id", "position", name="uq_chat_messages_session_position",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    session_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("chat_sessions.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    model: Mapped[str | None] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    session: Mapped["ChatSession"] = relationship(
        "ChatSession", back_populates="messages",
    )
