"""
Pytest configuration and fixtures for memory bridge testing.

Every test gets its own SQLite database file under tmp_path, so stores
and applications are fully isolated from each other.
"""

from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import update

from memory_bridge.core.config import DuplicatePolicy, Settings
from memory_bridge.core.database import create_engine_from_settings
from memory_bridge.core.exceptions import EmbeddingUnavailable
from memory_bridge.main import create_app
from memory_bridge.memory.deduplicator import MemoryDeduplicator
from memory_bridge.memory.normalizer import normalize
from memory_bridge.memory.retriever import MemoryRetriever
from memory_bridge.models.memory import Memory
from memory_bridge.services.memory_service import MemoryService
from memory_bridge.services.store import MemoryRecord, MemoryStore

TEST_TOKEN = "test-token"


class FakeEmbeddingService:
    """Embedding provider returning canned vectors; unknown text is unavailable."""

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None):
        self.vectors = vectors or {}
        self.available = True
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if text not in self.vectors:
            raise EmbeddingUnavailable(f"No vector for {text!r}")
        return self.vectors[text]


class FakeSummarizer:
    """Summarizer that records what it was asked to summarize."""

    def __init__(self, text: Optional[str] = "- one\n- two\n- three"):
        self.text = text
        self.calls: List[List[str]] = []

    async def summarize(self, memories) -> Optional[str]:
        self.calls.append([memory.id for memory in memories])
        return self.text


def make_record(text: str, **kwargs) -> MemoryRecord:
    """Build a MemoryRecord with its dedup key filled in."""
    return MemoryRecord(text=text, text_norm=normalize(text), **kwargs)


async def set_last_updated(store: MemoryStore, memory_id: str, value) -> None:
    """Force a row's last_updated so ordering tests do not depend on clock resolution."""
    async with store.session_factory() as session:
        await session.execute(update(Memory).where(Memory.id == memory_id).values(last_updated=value))
        await session.commit()


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a private SQLite file with every external provider off."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'memory_bridge_test.db'}",
        bridge_token=TEST_TOKEN,
        gemini_api_key=None,
        embedding_fallback_model=None,
        duplicate_policy=DuplicatePolicy.REJECT,
        stream_interval_seconds=0.01,
        log_level="INFO",
    )


@pytest.fixture
async def store(settings):
    """Memory store with its schema created."""
    memory_store = MemoryStore(create_engine_from_settings(settings), timezone_name=settings.timezone)
    await memory_store.init_schema()
    yield memory_store
    await memory_store.dispose()


@pytest.fixture
def embedder():
    return FakeEmbeddingService()


@pytest.fixture
def retriever(store):
    return MemoryRetriever(store)


@pytest.fixture
def memory_service(store, embedder):
    """Memory service under the reject policy with a fake embedding provider."""
    return MemoryService(store, MemoryDeduplicator(store), embedding_service=embedder)


@pytest.fixture
def client(settings):
    """HTTP client over a fresh application; the lifespan creates the schema."""
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    return {"x-mcp-token": TEST_TOKEN}


@pytest.fixture
def sample_memories():
    """Sample memory data for testing."""
    return [
        {
            "text": "Meeting with Adam tomorrow at 4pm",
            "type": "event",
            "tags": ["work", "urgent"],
            "source": "manual"
        },
        {
            "text": "Buy oat milk and coffee beans",
            "type": "todo",
            "tags": "home, errands",
            "source": "voice"
        },
        {
            "text": "Adam prefers morning calls",
            "type": "preference",
            "tags": '["work"]',
            "source": "agent"
        }
    ]
