"""Service test fixtures — async DB, FastAPI test client, scripted model, tools.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - get_db overridden to use the test DB; db_manager patched for the
      post-stream persistence that bypasses get_db
    - The model client and tool catalog are swapped through dependency overrides

Design Decisions:
    - SQLite in-memory with StaticPool: every session sees the same database
    - recording_dispatch is a real ToolDispatch: registration and error wrapping
      run exactly as in production
    - Settings override zeroes retry delays so retry paths don't sleep
"""

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncSession, create_async_engine, async_sessionmaker,
)
from sqlalchemy.pool import StaticPool
from httpx import ASGITransport, AsyncClient

from app.api.routes.chat_stream import get_openrouter_client
from app.config import Settings, get_settings
from app.core.messages import ImageAttachment, Source
from app.core.tool_protocols import ToolResult
from app.db.base import Base
from app.infrastructure.database import get_db, DatabaseSessionManager
from app.models.chat_session import ChatSession
from app.services.tool_dispatch import ToolDispatch, define_tool
import app.infrastructure.database as db_module
from app.main import app

from tests.services.mock_openrouter import MockOpenRouterClient


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False, poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
async def seed_chat(test_db):
    """Insert an empty chat session."""
    chat = ChatSession(title="New Chat", model="test/model")
    test_db.add(chat)
    await test_db.commit()
    await test_db.refresh(chat)
    return chat


@pytest.fixture
def mock_client():
    """Scripted client; tests set .responses / titles via configure()."""
    holder = {"client": MockOpenRouterClient()}

    def configure(responses=(), titles=()):
        holder["client"] = MockOpenRouterClient(responses, titles)
        return holder["client"]

    holder["configure"] = configure
    return holder


@pytest.fixture
def recording_dispatch():
    """Real ToolDispatch whose handlers record calls.

    Returns dict with:
      - dispatch: the ToolDispatch (tools: lookup, screenshot)
      - log: list of {"tool": str, "args": dict} per execute()
    """
    log = []

    async def lookup(args):
        log.append({"tool": "lookup", "args": args})
        return ToolResult(
            content=f"found {args.get('q', '?')}",
            sources=(Source("Example", "https://example.com"),),
        )

    async def screenshot(args):
        log.append({"tool": "screenshot", "args": args})
        return ToolResult(
            content="captured",
            images=(ImageAttachment("image/png", "iVBORw0KGgo="),),
        )

    dispatch = ToolDispatch([
        define_tool("lookup", "Look something up", {
            "type": "object", "properties": {"q": {"type": "string"}},
        }, lookup),
        define_tool("screenshot", "Capture the page", None, screenshot),
    ])
    return {"dispatch": dispatch, "log": log}


@pytest.fixture
def test_settings():
    return Settings(
        openrouter_api_key="sk-or-test",
        stream_retry_delay_ms=0,
        agent_model="test/model",
        title_model="test/title-model",
    )


@pytest.fixture
async def client(
    test_engine, test_session_factory, mock_client, test_settings,
):
    """FastAPI test client with DB, model client and settings overridden.

    Tool catalog defaults to empty; tests set app.state.tool_dispatch.
    """
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_openrouter_client] = lambda: mock_client["client"]
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.state.tool_dispatch = ToolDispatch()

    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = test_session_factory
    db_module.db_manager = fake_manager

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    app.state.tool_dispatch = None
    db_module.db_manager = original_manager
