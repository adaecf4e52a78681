"""Assistant API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map AssistantError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Logging, database and the tool catalog initialized once in the lifespan

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Tool catalog lives on app.state: the chat route reads it per request,
      tests replace it without monkeypatching modules
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.error_handlers import register_error_handlers
from app.api.routes import chat_sessions, chat_stream, health
from app.config import get_settings
from app.infrastructure.database import close_db, init_db
from app.infrastructure.observability import setup_logging
from app.services.tool_dispatch import load_tool_providers

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    app.state.tool_dispatch = load_tool_providers(settings.tool_providers)
    logger.info("Assistant API started")
    yield
    await close_db()
    logger.info("Assistant API shutting down")


app = FastAPI(title="Assistant Agent API", version="0.1.0", lifespan=lifespan)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(chat_sessions.router)
app.include_router(chat_stream.router)

register_error_handlers(app)
