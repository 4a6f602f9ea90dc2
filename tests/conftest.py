"""
Shared test fixtures for the CoachBot suite.

Provides: required secrets in the environment, a deterministic hashing
embedder, in-memory message/summary/memory/knowledge stores, and a
LanceDB store rooted in ``tmp_path``.
No network or MongoDB is touched.
"""

import hashlib
import math
import os

# Settings require these secrets at import time.
os.environ.setdefault("GOOGLE_API_KEY", "test-google-api-key")
os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017")

import pytest

from coachbot.src.core.embeddings import EmbeddingGateway
from coachbot.src.core.errors import PersistenceFailed
from coachbot.src.core.memory import ConversationMemoryManager
from coachbot.src.database.vector_store import CoachVectorStore

EMBEDDING_DIMS = 64


class HashingEmbedder:
    """Bag-of-words hashed into a fixed-width, L2-normalised vector."""

    def __init__(self, dims: int = EMBEDDING_DIMS) -> None:
        self.dims = dims
        self.calls = 0

    def _vector(self, text):
        vector = [0.0] * self.dims
        for word in text.lower().split():
            bucket = int(hashlib.md5(word.encode("utf-8")).hexdigest(), 16) % self.dims
            vector[bucket] += 1.0
        norm = math.sqrt(sum(v * v for v in vector)) or 1.0
        return [v / norm for v in vector]

    def embed_documents(self, texts):
        self.calls += 1
        return [self._vector(t) for t in texts]

    def embed_query(self, text):
        self.calls += 1
        return self._vector(text)


class InMemoryMessageStore:
    def __init__(self):
        self.messages = []
        self.fail = False

    async def add_message(self, message):
        if self.fail:
            raise PersistenceFailed("message store offline")
        self.messages.append(message)

    async def list_since(self, user_id, coach_id, since):
        rows = [m for m in self.messages if m.user_id == user_id and m.coach_id == coach_id and (since is None or m.created_at > since)]
        return sorted(rows, key=lambda m: m.created_at)

    async def recent(self, user_id, coach_id, limit):
        rows = await self.list_since(user_id, coach_id, None)
        return rows[-limit:]


class InMemorySummaryStore:
    def __init__(self):
        self.summaries = []
        self.fail = False

    async def append(self, summary):
        if self.fail:
            raise PersistenceFailed("summary store offline")
        self.summaries.append(summary)

    async def latest(self, user_id, coach_id):
        if self.fail:
            raise PersistenceFailed("summary store offline")
        rows = [s for s in self.summaries if s.user_id == user_id and s.coach_id == coach_id]
        return max(rows, key=lambda s: s.created_at) if rows else None


class InMemoryMemoryStore:
    def __init__(self):
        self.memories = {}
        self.upserts = 0
        self.fail = False

    async def get(self, user_id):
        return self.memories.get(user_id)

    async def upsert(self, memory):
        if self.fail:
            raise PersistenceFailed("memory store offline")
        self.upserts += 1
        self.memories[memory.user_id] = memory


class InMemoryKnowledgeStore:
    def __init__(self, entries=None, fail=False):
        self.entries = entries or []
        self.fail = fail

    async def list_entries(self, coach_id):
        if self.fail:
            raise PersistenceFailed("knowledge store offline")
        return list(self.entries)


@pytest.fixture
def embedder():
    return HashingEmbedder()


@pytest.fixture
def gateway(embedder):
    return EmbeddingGateway(embedder=embedder, batch_size=8, model_name="test-hash-embedder")


@pytest.fixture
def vector_store(tmp_path):
    return CoachVectorStore(db_path=str(tmp_path / "lancedb"), table_name="test_documents")


@pytest.fixture
def message_store():
    return InMemoryMessageStore()


@pytest.fixture
def summary_store():
    return InMemorySummaryStore()


@pytest.fixture
def memory_store():
    return InMemoryMemoryStore()


@pytest.fixture
def knowledge_store_factory():
    return InMemoryKnowledgeStore


@pytest.fixture
def memory_manager(message_store, summary_store, memory_store):
    return ConversationMemoryManager(message_store, summary_store, memory_store, threshold=20, context_window=10)
