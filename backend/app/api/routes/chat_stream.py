"""Chat Stream — one user turn in, agent events out as Server-Sent Events.

Invariants:
    - The user message is committed before the agent starts streaming
    - Regenerate streams over the stored history unchanged; it needs a trailing user turn
    - Every agent event is forwarded as one `data: <json>\\n\\n` record, in order
    - The assistant message is persisted with the runner's final (never blank) content
    - The route-level `session` record is the only thing sent after `done`
    - A title failure never fails the turn: the old title is kept

Design Decisions:
    - One shared ResilientOpenRouterClient per process (connection pooling)
    - Tool catalog comes from app.state.tool_dispatch, registered at startup
    - Post-stream persistence uses db_manager directly: the request-scoped session
      is not guaranteed to outlive the StreamingResponse body
    - Client disconnect (CancelledError) skips persistence of the partial turn
"""

import asyncio
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

import app.infrastructure.database as database
from app.config import Settings, get_settings
from app.core.agent_events import encode_sse
from app.core.budget import budget_for_mode
from app.core.domain_types import Role, RunMode
from app.core.errors import AssistantError, ErrorContext
from app.core.tool_protocols import ToolDispatcher
from app.infrastructure.database import get_db
from app.infrastructure.openrouter_client import ResilientOpenRouterClient
from app.models.chat_session import ChatSession
from app.schemas.chat import ChatRequest, RegenerateRequest, SessionRecordData
from app.services.agent_runner import AgentRunner
from app.services.chat_history import (
    append_message, get_chat_or_404, history_messages,
    require_pending_user_turn,
)
from app.services.title_generator import (
    generate_session_title, should_generate_title,
)
from app.services.tool_dispatch import ToolDispatch

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/chat", tags=["chat"])

# Prevent proxy/browser buffering of streamed events.
_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
    "Connection": "keep-alive",
}

_openrouter_client: ResilientOpenRouterClient | None = None


def get_openrouter_client(
    settings: Settings = Depends(get_settings),
) -> ResilientOpenRouterClient:
    """Lazily build the process-wide client from settings."""
    global _openrouter_client
    if _openrouter_client is None:
        _openrouter_client = ResilientOpenRouterClient(
            api_key=settings.openrouter_api_key,
            base_url=settings.openrouter_base_url,
            max_retries=settings.openrouter_max_retries,
            base_delay_ms=settings.openrouter_base_delay_ms,
            max_delay_ms=settings.openrouter_max_delay_ms,
            timeout_seconds=settings.openrouter_timeout_seconds,
        )
    return _openrouter_client


def get_tool_dispatch(request: Request) -> ToolDispatcher:
    dispatch = getattr(request.app.state, "tool_dispatch", None)
    return dispatch if dispatch is not None else ToolDispatch()


@router.post("")
async def chat(
    body: ChatRequest,
    db: AsyncSession = Depends(get_db),
    client: ResilientOpenRouterClient = Depends(get_openrouter_client),
    dispatcher: ToolDispatcher = Depends(get_tool_dispatch),
    settings: Settings = Depends(get_settings),
):
    """Persist the user turn, then stream the agent's reply as SSE."""
    chat_session = await get_chat_or_404(db, body.session_id)
    append_message(chat_session, Role.USER, body.content)
    await db.commit()
    return _stream_turn(
        chat_session, body.model, body.mode, client, dispatcher, settings,
    )


@router.post("/regenerate")
async def regenerate(
    body: RegenerateRequest,
    db: AsyncSession = Depends(get_db),
    client: ResilientOpenRouterClient = Depends(get_openrouter_client),
    dispatcher: ToolDispatcher = Depends(get_tool_dispatch),
    settings: Settings = Depends(get_settings),
):
    """Re-run the agent over the stored history without adding a user turn.

    Callers truncate the old reply first (DELETE .../messages/{message_id}).
    """
    chat_session = await get_chat_or_404(db, body.session_id)
    require_pending_user_turn(chat_session)
    return _stream_turn(
        chat_session, body.model, body.mode, client, dispatcher, settings,
    )


def _stream_turn(
    chat_session: ChatSession,
    model_override: str | None,
    mode: RunMode,
    client: ResilientOpenRouterClient,
    dispatcher: ToolDispatcher,
    settings: Settings,
) -> StreamingResponse:
    """Run the agent over the stored history and persist its reply after `done`."""
    session_id = str(chat_session.id)
    model = model_override or chat_session.model
    history = history_messages(chat_session)
    runner = AgentRunner(
        client,
        dispatcher,
        model=model,
        budget=budget_for_mode(
            mode,
            interactive=(
                settings.chat_max_iterations, settings.chat_max_elapsed_ms,
            ),
            autonomous=(
                settings.autonomous_max_iterations,
                settings.autonomous_max_elapsed_ms,
            ),
        ),
        max_retries=settings.stream_max_retries,
        retry_delay_ms=settings.stream_retry_delay_ms,
    )
    logger.info(
        "Chat turn started (%s mode)", mode.value,
        extra={"session_id": session_id, "model": model},
    )

    async def event_generator():
        try:
            async for event in runner.run(history, session_id=session_id):
                yield encode_sse(event)
        except asyncio.CancelledError:
            logger.info("Client disconnected from chat stream",
                extra={"session_id": session_id})
            raise

        record = await _finish_turn(
            client, chat_session.id, runner.final_content, model, settings,
        )
        if record is not None:
            yield encode_sse({
                "type": "session",
                "data": record.model_dump(mode="json", exclude_none=True),
            })

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers=_SSE_HEADERS,
    )


async def _finish_turn(
    client: ResilientOpenRouterClient,
    session_id: UUID,
    content: str,
    model: str,
    settings: Settings,
) -> SessionRecordData | None:
    """Persist the assistant turn and refresh the title when due."""
    manager = database.db_manager
    if manager is None:
        logger.error("Database not initialized; assistant turn not saved")
        return None

    ctx = ErrorContext(session_id=str(session_id), model=settings.title_model)
    try:
        async with manager.session() as db:
            chat_session = await get_chat_or_404(db, session_id)
            message = append_message(
                chat_session, Role.ASSISTANT, content, model=model,
            )
            await db.commit()

            new_title = None
            if should_generate_title(chat_session.message_count):
                try:
                    new_title = await generate_session_title(
                        client, history_messages(chat_session),
                        settings.title_model, ctx,
                    )
                except AssistantError as e:
                    logger.warning(
                        "Title generation failed: %s", e.message,
                        extra={"session_id": ctx.session_id, "error_code": e.code},
                    )
                if new_title:
                    chat_session.title = new_title
                    await db.commit()
            return SessionRecordData(message_id=message.id, new_title=new_title)
    except AssistantError as e:
        logger.error(
            "Failed to persist assistant turn: %s", e.message,
            extra={"session_id": ctx.session_id, "error_code": e.code},
        )
        return None
