"""Abstract base class for the context/embedding document store.

The store persists three record kinds:

* ``chatbots``   -- tenant records (tenant id -> owning principal)
* ``contexts``   -- submitted knowledge items (:class:`Context`)
* ``embeddings`` -- derived chunks with vectors (:class:`EmbeddingRecord`)

``embeddings`` relate to ``contexts`` through ``context_id`` and carry a
denormalized ``tenant_id`` so tenant-scoped search needs no join.  Every
method that reads or mutates tenant data takes ``tenant_id`` explicitly;
the store keeps no ambient "current tenant".

The store also answers vector searches itself (the backend is reachable
through the store's own query language), see :meth:`vector_search`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from context_engine.models.context import Chatbot, Context, ContextMetadata
from context_engine.models.rag import (
    EmbeddingRecord,
    EmbeddingStats,
    SearchResult,
    VectorSearchQuery,
)


# Concrete implementation: SQLiteDocumentStore (context_engine/providers/store/)
class IDocumentStore(ABC):
    """Contract for context persistence and tenant-scoped vector search.

    All methods are async; every call is an I/O suspension point.
    Implementations translate backend exceptions into
    :class:`~context_engine.utils.errors.StorageError` (or
    :class:`~context_engine.utils.errors.SearchUnavailableError` for
    :meth:`vector_search`).
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they do not exist."""

    # -- chatbots --------------------------------------------------------

    @abstractmethod
    async def create_chatbot(self, chatbot: Chatbot) -> Chatbot:
        """Persist a tenant record."""

    @abstractmethod
    async def get_chatbot(self, tenant_id: str) -> Chatbot | None:
        """Return the tenant record, or ``None`` if it does not exist."""

    # -- contexts --------------------------------------------------------

    @abstractmethod
    async def create_context(self, context: Context) -> Context:
        """Insert a new Context row and return it."""

    @abstractmethod
    async def get_context(self, context_id: str, tenant_id: str) -> Context | None:
        """Return the Context only if it exists *and* belongs to *tenant_id*."""

    @abstractmethod
    async def find_context_by_url(self, tenant_id: str, url: str) -> Context | None:
        """Return the tenant's LINK Context with this exact URL, if any."""

    @abstractmethod
    async def list_contexts(self, tenant_id: str) -> list[Context]:
        """Return the tenant's Contexts ordered by creation time."""

    @abstractmethod
    async def update_context(
        self,
        context_id: str,
        tenant_id: str,
        *,
        title: str | None = None,
        raw_content: str | None = None,
        metadata: ContextMetadata | None = None,
        embedding_ids: list[str] | None = None,
        size_kb: int | None = None,
    ) -> Context | None:
        """Overwrite the given fields; ``None`` arguments are left unchanged.

        Returns the updated Context, or ``None`` if no Context with this id
        belongs to *tenant_id*.
        """

    @abstractmethod
    async def delete_context(self, context_id: str, tenant_id: str) -> bool:
        """Delete the Context row only (not its embeddings).

        Returns ``True`` if a row was deleted.
        """

    @abstractmethod
    async def list_stale_empty_contexts(self, older_than: datetime) -> list[Context]:
        """Return Contexts (any tenant) with no embedding ids created before *older_than*."""

    # -- embeddings ------------------------------------------------------

    @abstractmethod
    async def add_embedding(self, record: EmbeddingRecord) -> EmbeddingRecord:
        """Insert one embedding row."""

    @abstractmethod
    async def get_tenant_vectors(self, tenant_id: str) -> list[list[float]]:
        """Return every stored vector belonging to *tenant_id*."""

    @abstractmethod
    async def delete_embeddings_by_context(self, context_id: str, tenant_id: str) -> int:
        """Delete the embeddings of one Context within one tenant; return the count."""

    @abstractmethod
    async def list_embedding_refs(
        self, offset: int = 0, limit: int = 1000
    ) -> list[tuple[str, str, str]]:
        """Page over all embeddings as ``(embedding_id, tenant_id, context_id)``."""

    @abstractmethod
    async def delete_embedding(self, embedding_id: str) -> bool:
        """Delete a single embedding row by id."""

    @abstractmethod
    async def get_context_tenant(self, context_id: str) -> str | None:
        """Return the tenant owning *context_id* (unscoped lookup for maintenance)."""

    @abstractmethod
    async def get_vector_dimension(self) -> int | None:
        """Return the length of any stored vector, or ``None`` when empty."""

    # -- search / stats --------------------------------------------------

    @abstractmethod
    async def vector_search(self, query: VectorSearchQuery) -> list[SearchResult]:
        """Run one nearest-neighbour query with a mandatory tenant filter.

        Returns at most ``query.limit`` results ordered by descending score,
        ties in insertion order.

        Raises
        ------
        context_engine.utils.errors.SearchUnavailableError
            If the backend is unreachable or ``query.index_name`` does not
            exist.
        """

    @abstractmethod
    async def get_stats(self, tenant_id: str) -> EmbeddingStats:
        """Return embedding counts and timestamps for *tenant_id*."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier such as ``"sqlite"``."""

    @abstractmethod
    async def is_available(self) -> bool:
        """Return ``True`` if the store answers a trivial query."""
