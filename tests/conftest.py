"""Pytest configuration and fixtures."""

import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-with-at-least-32-bytes!")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "staging")
os.environ.setdefault("DEBUG", "false")

import asyncio  # noqa: E402
import json  # noqa: E402
from collections.abc import AsyncGenerator, AsyncIterator, Sequence  # noqa: E402
from typing import Any  # noqa: E402

import fakeredis.aioredis  # noqa: E402
import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.database import Base  # noqa: E402
from app.models.conversation import Conversation  # noqa: E402
from app.models.message import Message  # noqa: E402
from app.repositories.conversation_repo import ConversationRepository  # noqa: E402
from app.schemas.chat_schema import Turn  # noqa: E402
from app.services.token_service import TokenService  # noqa: E402

# --- Test DB (SQLite in-memory) ---

test_engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
test_session_factory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)


@pytest.fixture(autouse=True)
async def setup_db() -> AsyncGenerator[None, None]:
    """Create all tables before each test, drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def override_get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a test database session."""
    async with test_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def override_get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Provide the test session factory to the completion streamer."""
    return test_session_factory


# --- Test Redis (fakeredis) ---


@pytest.fixture
def fake_redis() -> fakeredis.aioredis.FakeRedis:
    """Create a fresh fake Redis client."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest.fixture(autouse=True)
def patch_redis(
    fake_redis: fakeredis.aioredis.FakeRedis, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Patch the global redis_client for middleware and get_redis()."""
    monkeypatch.setattr("app.core.redis.redis_client", fake_redis)


@pytest.fixture(autouse=True)
def reset_ip_limiter() -> None:
    """Start every test with empty slowapi counters."""
    from app.core.limiter import limiter

    limiter.reset()


# --- Completion provider ---


class FakeCompletionProvider:
    """Scripted completion provider recording the turns it was asked for."""

    def __init__(
        self,
        fragments: Sequence[str] = ("Hi", " there"),
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.fragments = list(fragments)
        self.error = error
        self.delay = delay
        self.calls: list[list[Turn]] = []

    async def stream(self, turns: Sequence[Turn]) -> AsyncIterator[str]:
        self.calls.append(list(turns))
        for fragment in self.fragments:
            if self.delay:
                await asyncio.sleep(self.delay)
            yield fragment
        if self.error is not None:
            raise self.error


@pytest.fixture
def completion_provider() -> FakeCompletionProvider:
    """Provider answering every exchange with "Hi there"."""
    return FakeCompletionProvider()


# --- Token helpers ---


@pytest.fixture
def token_service(fake_redis: fakeredis.aioredis.FakeRedis) -> TokenService:
    """Create a TokenService backed by fake Redis."""
    return TokenService(fake_redis)


def make_auth_headers(
    fake_redis: fakeredis.aioredis.FakeRedis,
    user_id: int = 1,
    email: str = "test@test.com",
    role: str = "user",
) -> dict[str, str]:
    """Generate Authorization headers with a valid access token."""
    ts = TokenService(fake_redis)
    token = ts.create_access_token(user_id=user_id, email=email, role=role)
    return {"Authorization": f"Bearer {token}"}


# --- App override & client fixtures ---


def _get_app(provider: FakeCompletionProvider):  # type: ignore[no-untyped-def]
    """Import app lazily and apply overrides."""
    from app.core.database import get_async_session, get_session_factory
    from app.dependencies import get_completion_provider
    from app.main import app

    app.dependency_overrides[get_async_session] = override_get_async_session
    app.dependency_overrides[get_session_factory] = override_get_session_factory
    app.dependency_overrides[get_completion_provider] = lambda: provider
    return app


@pytest.fixture
async def async_client(
    completion_provider: FakeCompletionProvider,
) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client without credentials."""
    application = _get_app(completion_provider)
    transport = ASGITransport(app=application)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    application.dependency_overrides.clear()


@pytest.fixture
async def authed_client(
    fake_redis: fakeredis.aioredis.FakeRedis,
    completion_provider: FakeCompletionProvider,
) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client authenticated as user 1."""
    application = _get_app(completion_provider)
    headers = make_auth_headers(fake_redis)
    transport = ASGITransport(app=application)
    async with AsyncClient(
        transport=transport, base_url="http://test", headers=headers
    ) as ac:
        yield ac
    application.dependency_overrides.clear()


@pytest.fixture
async def other_client(
    fake_redis: fakeredis.aioredis.FakeRedis,
    completion_provider: FakeCompletionProvider,
) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client authenticated as user 2."""
    application = _get_app(completion_provider)
    headers = make_auth_headers(fake_redis, user_id=2, email="other@test.com")
    transport = ASGITransport(app=application)
    async with AsyncClient(
        transport=transport, base_url="http://test", headers=headers
    ) as ac:
        yield ac
    application.dependency_overrides.clear()


# --- DB session for tests ---


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a raw async session for repository tests."""
    async with test_session_factory() as session:
        yield session


async def seed_conversation(
    owner_id: int = 1,
    messages: Sequence[tuple[str, str]] = (),
    title: str | None = None,
) -> tuple[Conversation, list[Message]]:
    """Insert a conversation with ``(role, content)`` messages in order."""
    async with test_session_factory() as session:
        repo = ConversationRepository(session)
        conversation = await repo.create_conversation(
            owner_id=owner_id, title=title, description=None
        )
        created = [
            await repo.create_message(conversation.id, role, content)
            for role, content in messages
        ]
        await session.commit()
    return conversation, created


async def fetch_messages(conversation_id: str) -> list[Message]:
    """Read the stored history of a conversation."""
    async with test_session_factory() as session:
        repo = ConversationRepository(session)
        return await repo.find_messages_by_conversation_id(conversation_id)


async def fetch_conversation(conversation_id: str) -> Conversation | None:
    """Read a conversation row."""
    async with test_session_factory() as session:
        repo = ConversationRepository(session)
        return await repo.find_conversation_by_id(conversation_id)


def parse_sse(body: str) -> list[dict[str, Any]]:
    """Split a Server-Sent Events body into its decoded ``data`` payloads."""
    events = []
    for chunk in body.split("\n\n"):
        chunk = chunk.strip()
        if chunk.startswith("data: "):
            events.append(json.loads(chunk[len("data: "):]))
    return events
