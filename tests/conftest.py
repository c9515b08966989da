# tests/conftest.py
import os

# Set up test environment variables BEFORE any other imports
os.environ.setdefault("TESTING", "true")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("DATABASE_URL", os.environ["TEST_DATABASE_URL"])
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("ANTHROPIC_API_KEY", "")
os.environ.setdefault("OPENROUTER_API_KEY", "")
os.environ.setdefault("SECRETS_FILE", "")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.dependencies import get_db, get_session_factory, get_stream_client, get_title_generator
from app.domains.conversation.store import ConversationStore
from app.main import app
from app.services.title import TitleGenerator
from models import Base, MessageRole, Project
from tests.factories import FakeStreamClient


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite engine shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def test_db(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_client():
    return FakeStreamClient()


@pytest.fixture
def title_generator(session_factory, fake_client):
    return TitleGenerator(session_factory=session_factory, client=fake_client)


@pytest_asyncio.fixture
async def client(session_factory, fake_client, title_generator):
    """Create a test client with database and provider dependency overrides."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_stream_client] = lambda: fake_client
    app.dependency_overrides[get_title_generator] = lambda: title_generator

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# Project fixtures
@pytest_asyncio.fixture
async def test_project(test_db):
    """Create a test project."""
    project = Project(
        name="Test Project",
        description="A test project for testing",
        instructions="Answer like a pirate.",
    )
    test_db.add(project)
    await test_db.commit()
    await test_db.refresh(project)
    return project


# Conversation fixtures
@pytest_asyncio.fixture
async def test_conversation(test_db):
    """Create an empty conversation."""
    store = ConversationStore(test_db)
    conversation = await store.create_conversation(
        title="New Conversation",
        model="claude-sonnet-4-5-20250929",
        temperature=1.0,
        max_tokens=4096,
    )
    await test_db.commit()
    return conversation


@pytest_asyncio.fixture
async def conversation_with_exchange(test_db):
    """Create a conversation holding one user/assistant exchange and a default title."""
    store = ConversationStore(test_db)
    conversation = await store.create_conversation(
        title="How do I bake bread?",
        model="claude-sonnet-4-5-20250929",
        temperature=1.0,
        max_tokens=4096,
    )
    await store.create_message(conversation.id, MessageRole.USER, "How do I bake bread?")
    await store.create_message(conversation.id, MessageRole.ASSISTANT, "Mix flour, water, yeast and salt.")
    await test_db.commit()
    return conversation

