"""Shared test fixtures and configuration."""
import os
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("COMPANY_NAME", "Test Company")

from voicedesk.main import app
from voicedesk.core.config import Settings
from voicedesk.core.dependencies import get_call_persistence, get_call_registry
from voicedesk.db.models import Base
from voicedesk.services.call_session.registry import CallStateRegistry
from voicedesk.services.knowledge.in_memory import InMemoryKnowledgeProvider
from voicedesk.services.knowledge.repository import KnowledgeRepository
from voicedesk.services.media.transport import MediaTransport
from voicedesk.services.transfer.coordinator import TransferCoordinator
from voicedesk.services.transfer.signal import SocketCloseSignal
from tests.fakes import FakeWebSocket


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def test_settings():
    """Override settings for testing."""
    return Settings(
        openai_api_key="test-key",
        database_url=TEST_DATABASE_URL,
        company_name="Test Company",
        transfer_grace_period_seconds=0.0,
        transfer_close_timeout_seconds=0.2,
    )


@pytest.fixture
async def test_db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def test_session_factory(test_db_engine):
    """Session factory bound to the test database."""
    return async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    """Create test database session."""
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def test_knowledge_path():
    """Return path to test company YAML file."""
    return Path(__file__).parent / "fixtures" / "test_company.yaml"


@pytest.fixture
def test_knowledge_repository(test_knowledge_path):
    """Create knowledge repository with test data."""
    provider = InMemoryKnowledgeProvider(knowledge_file=str(test_knowledge_path))
    return KnowledgeRepository(provider)


@pytest.fixture
def registry():
    """Fresh call registry."""
    return CallStateRegistry()


@pytest.fixture
def fake_websocket():
    return FakeWebSocket()


@pytest.fixture
async def open_transport(fake_websocket):
    """Accepted media transport over a fake socket."""
    transport = MediaTransport(fake_websocket)
    await transport.accept()
    return transport


@pytest.fixture
def coordinator(registry):
    """Transfer coordinator with no grace period and a short close timeout."""
    return TransferCoordinator(
        registry,
        SocketCloseSignal(),
        grace_period_seconds=0.0,
        close_timeout_seconds=0.2,
    )


@pytest.fixture
def mock_call_persistence():
    """Mock call persistence service."""
    service = Mock()
    service.get_call_by_sid = AsyncMock(return_value=None)
    service.update_call_status = AsyncMock(return_value=None)
    service.mark_transferred = AsyncMock(return_value=None)
    service.create_call = AsyncMock(return_value=None)
    return service


@pytest.fixture
def test_client(registry, mock_call_persistence, test_settings, monkeypatch):
    """Create FastAPI test client with overrides."""
    app.dependency_overrides[get_call_registry] = lambda: registry
    app.dependency_overrides[get_call_persistence] = lambda: mock_call_persistence

    # Override settings in modules that use it
    monkeypatch.setattr("voicedesk.core.config.settings", test_settings)
    monkeypatch.setattr("voicedesk.core.dependencies.settings", test_settings)
    monkeypatch.setattr("voicedesk.api.webhooks.voice.settings", test_settings)

    client = TestClient(app)

    yield client

    # Clear overrides
    app.dependency_overrides.clear()
