"""Shared pytest fixtures for the context engine test suite."""

from __future__ import annotations

import hashlib
import re
from pathlib import Path

import pytest

from context_engine.config.settings import Settings
from context_engine.interfaces.embedding_provider import IEmbeddingProvider
from context_engine.models.context import Chatbot
from context_engine.providers.store.sqlite_document_store import SQLiteDocumentStore
from context_engine.services.chunker import TextChunker
from context_engine.services.dedup import DeduplicationGate
from context_engine.services.ingestion_service import ContextIngestionService
from context_engine.services.ownership import OwnershipGuard, SecureContextService
from context_engine.services.query_service import QueryService
from context_engine.utils.ids import new_id
from context_engine.utils.retry import RetryPolicy

FAKE_DIMENSION = 256

_TOKEN = re.compile(r"[a-z0-9$]+")


class HashingEmbeddingProvider(IEmbeddingProvider):
    """Deterministic bag-of-words embeddings.

    Each lowercase token is hashed to one coordinate with a +/-1 sign, so
    identical texts get identical vectors and texts sharing few words are
    nearly orthogonal.  Every batch passed to :meth:`embed` is recorded in
    ``calls``.
    """

    def __init__(self, dimension: int = FAKE_DIMENSION) -> None:
        self._dimension = dimension
        self.calls: list[list[str]] = []

    def vector_for(self, text: str) -> list[float]:
        vector = [0.0] * self._dimension
        for token in _TOKEN.findall(text.lower()):
            digest = hashlib.md5(token.encode("utf-8")).digest()
            index = int.from_bytes(digest[:4], "big") % self._dimension
            vector[index] += 1.0 if digest[4] & 1 else -1.0
        return vector

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [self.vector_for(text) for text in texts]

    async def embed_single(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "hashing_fake"

    def is_available(self) -> bool:
        return True


def make_settings(tmp_path: Path, **overrides) -> Settings:
    """Settings pointing at a temp database, independent of any .env file."""
    values = {
        "openai_api_key": "",
        "embedding_provider": "auto",
        "database_path": str(tmp_path / "engine.db"),
        "embedding_dimension": FAKE_DIMENSION,
        "retry_base_delay": 0.0,
        "retry_max_delay": 0.0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


NO_WAIT_RETRY = RetryPolicy(max_attempts=2, base_delay=0.0, max_delay=0.0)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def embedder() -> HashingEmbeddingProvider:
    return HashingEmbeddingProvider()


@pytest.fixture
async def store(tmp_path: Path) -> SQLiteDocumentStore:
    """A SQLiteDocumentStore on a temporary database file."""
    document_store = SQLiteDocumentStore(
        db_path=tmp_path / "engine.db",
        index_name="vector_index",
        dimension=FAKE_DIMENSION,
    )
    await document_store.initialize()
    return document_store


@pytest.fixture
def ingestion(store: SQLiteDocumentStore, embedder: HashingEmbeddingProvider) -> ContextIngestionService:
    return ContextIngestionService(
        store=store,
        embedding_provider=embedder,
        chunker=TextChunker(),
        dedup_gate=DeduplicationGate(store, threshold=0.85),
        retry_policy=NO_WAIT_RETRY,
    )


@pytest.fixture
def query_service(store: SQLiteDocumentStore, embedder: HashingEmbeddingProvider) -> QueryService:
    return QueryService(
        store=store,
        embedding_provider=embedder,
        index_name="vector_index",
        default_top_k=5,
        max_top_k=20,
        num_candidates_multiplier=10,
        retry_policy=NO_WAIT_RETRY,
    )


@pytest.fixture
def secure_contexts(
    store: SQLiteDocumentStore, ingestion: ContextIngestionService
) -> SecureContextService:
    return SecureContextService(ingestion, OwnershipGuard(store))


@pytest.fixture
async def tenant(store: SQLiteDocumentStore) -> Chatbot:
    """A registered chatbot owned by principal ``owner-1``."""
    chatbot = Chatbot(tenant_id=new_id(), owner_id="owner-1", name="Support bot")
    await store.create_chatbot(chatbot)
    return chatbot


@pytest.fixture
async def other_tenant(store: SQLiteDocumentStore) -> Chatbot:
    """A second chatbot owned by a different principal."""
    chatbot = Chatbot(tenant_id=new_id(), owner_id="owner-2", name="Sales bot")
    await store.create_chatbot(chatbot)
    return chatbot
