"""Chat History — load, replay, and append persisted chat turns.

Invariants:
    - append_message() assigns position = message_count, then increments the count
    - history_messages() replays rows in position order as typed Messages
    - truncate_from() removes a message and every later one; positions stay 0..n-1
    - Callers own the transaction: nothing here commits

Design Decisions:
    - Thin functions over a repository class: two tables, one aggregate
    - Missing sessions raise ResourceNotFoundError (global handler renders 404)
"""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.domain_types import Role
from app.core.errors import ChatStateError, ResourceNotFoundError
from app.core.messages import Message, message_from_dict
from app.models.chat_message import ChatMessage
from app.models.chat_session import ChatSession


async def get_chat_or_404(db: AsyncSession, session_id: uuid.UUID) -> ChatSession:
    result = await db.execute(
        select(ChatSession).where(ChatSession.id == session_id),
    )
    chat = result.scalar_one_or_none()
    if chat is None:
        raise ResourceNotFoundError("Chat session", str(session_id))
    return chat


async def list_chats(db: AsyncSession, limit: int = 50) -> list[ChatSession]:
    """Most recently updated first."""
    result = await db.execute(
        select(ChatSession).order_by(ChatSession.updated_at.desc()).limit(limit),
    )
    return list(result.scalars().all())


def append_message(
    chat: ChatSession, role: Role, content: str, model: str | None = None,
) -> ChatMessage:
    message = ChatMessage(
        position=chat.message_count,
        role=role.value,
        content=content,
        model=model,
    )
    chat.messages.append(message)
    chat.message_count += 1
    chat.touch()
    return message


def history_messages(chat: ChatSession) -> list[Message]:
    return [
        message_from_dict({"role": row.role, "content": row.content})
        for row in sorted(chat.messages, key=lambda m: m.position)
    ]


def truncate_from(chat: ChatSession, message_id: uuid.UUID) -> int:
    """Drop the message and everything after it (edit / regenerate). Returns rows removed."""
    target = next((m for m in chat.messages if m.id == message_id), None)
    if target is None:
        raise ResourceNotFoundError("Chat message", str(message_id))
    removed = [m for m in chat.messages if m.position >= target.position]
    for row in removed:
        chat.messages.remove(row)
    chat.message_count = len(chat.messages)
    chat.touch()
    return len(removed)


def require_pending_user_turn(chat: ChatSession) -> None:
    """Regeneration needs the stored history to end with a user message."""
    last = max(chat.messages, key=lambda m: m.position, default=None)
    if last is None or last.role != Role.USER.value:
        raise ChatStateError(
            "Nothing to regenerate: the conversation must end with a user message",
        )
