"""Chat Sessions — create, list, inspect, and delete conversation threads.

Invariants:
    - New sessions start with title "New Chat" unless one is given
    - A session's model falls back to the configured agent model
    - Deleting a session cascades to its messages
    - Deleting a message also deletes every later message and recounts the session

Design Decisions:
    - Persistence helpers live in services/chat_history.py; routes stay thin
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.infrastructure.database import get_db
from app.models.chat_session import ChatSession
from app.schemas.chat import (
    MessageResponse, SessionCreate, SessionResponse, TruncateResponse,
)
from app.services.chat_history import get_chat_or_404, list_chats, truncate_from
from app.services.title_generator import DEFAULT_TITLE

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/chat/sessions", tags=["chat"])


@router.post(
    "", response_model=SessionResponse, status_code=status.HTTP_201_CREATED,
)
async def create_session(
    body: SessionCreate,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    chat = ChatSession(
        title=(body.title or "").strip() or DEFAULT_TITLE,
        model=body.model or settings.agent_model,
    )
    db.add(chat)
    await db.commit()
    await db.refresh(chat)
    logger.info("Chat session created", extra={"session_id": str(chat.id)})
    return chat


@router.get("", response_model=list[SessionResponse])
async def list_sessions(
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    return await list_chats(db, limit)


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(session_id: UUID, db: AsyncSession = Depends(get_db)):
    return await get_chat_or_404(db, session_id)


@router.get("/{session_id}/messages", response_model=list[MessageResponse])
async def get_messages(session_id: UUID, db: AsyncSession = Depends(get_db)):
    chat = await get_chat_or_404(db, session_id)
    return sorted(chat.messages, key=lambda m: m.position)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(session_id: UUID, db: AsyncSession = Depends(get_db)):
    chat = await get_chat_or_404(db, session_id)
    await db.delete(chat)
    await db.commit()
    logger.info("Chat session deleted", extra={"session_id": str(session_id)})


@router.delete(
    "/{session_id}/messages/{message_id}", response_model=TruncateResponse,
)
async def truncate_messages(
    session_id: UUID, message_id: UUID, db: AsyncSession = Depends(get_db),
):
    """Remove a message and all messages after it, before an edit or regenerate."""
    chat = await get_chat_or_404(db, session_id)
    deleted = truncate_from(chat, message_id)
    await db.commit()
    logger.info(
        "Truncated %d messages", deleted, extra={"session_id": str(session_id)},
    )
    return TruncateResponse(deleted=deleted, remaining_count=chat.message_count)
