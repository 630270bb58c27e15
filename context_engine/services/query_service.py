"""Tenant-scoped semantic search over stored embeddings.

Every query carries a mandatory ``tenant_id`` filter; it is the only
thing separating tenants at read time.  Backend failures surface as
:class:`~context_engine.utils.errors.SearchUnavailableError` and are never
turned into an empty result list.
"""

from __future__ import annotations

import time

import structlog

from context_engine.interfaces.document_store import IDocumentStore
from context_engine.interfaces.embedding_provider import IEmbeddingProvider
from context_engine.models.context import ContentType, Context
from context_engine.models.rag import EmbeddingStats, SearchResult, VectorSearchQuery
from context_engine.services.ownership import OwnershipGuard
from context_engine.utils.errors import ValidationError
from context_engine.utils.retry import RetryPolicy

logger = structlog.get_logger(logger_name=__name__)


class QueryService:
    """Answers "top-K chunks for tenant X" queries.

    Search is read-only and needs no principal; only the tenant id format
    is checked.

    Parameters
    ----------
    store:
        Document store that runs the vector search.
    embedding_provider:
        Embeds query text; must match the index dimensionality.
    index_name:
        Vector index to query.
    default_top_k / max_top_k:
        Result count when none is given, and the ceiling requests are
        clamped to.
    num_candidates_multiplier:
        Over-fetch factor: ``num_candidates = top_k * multiplier``.
    """

    def __init__(
        self,
        store: IDocumentStore,
        embedding_provider: IEmbeddingProvider,
        index_name: str = "vector_index",
        default_top_k: int = 5,
        max_top_k: int = 20,
        num_candidates_multiplier: int = 10,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        if num_candidates_multiplier < 4:
            raise ValueError("num_candidates_multiplier must be >= 4")
        self._store = store
        self._embedding_provider = embedding_provider
        self._index_name = index_name
        self._default_top_k = default_top_k
        self._max_top_k = max_top_k
        self._multiplier = num_candidates_multiplier
        self._retry = retry_policy or RetryPolicy()

    async def search(
        self,
        tenant_id: str,
        query_text: str,
        top_k: int | None = None,
    ) -> list[SearchResult]:
        """Return up to *top_k* chunks of *tenant_id* ranked by similarity."""
        return await self.search_with_filters(tenant_id, query_text, top_k=top_k)

    async def search_with_filters(
        self,
        tenant_id: str,
        query_text: str,
        content_type: ContentType | str | None = None,
        context_id: str | None = None,
        top_k: int | None = None,
    ) -> list[SearchResult]:
        """Search with optional content-type / context conjuncts on top of the tenant filter.

        Raises
        ------
        InvalidIdError
            Malformed tenant or context id.
        ValidationError
            Blank query, non-positive ``top_k``, or unknown content type.
        SearchUnavailableError
            The vector backend or index is unavailable.
        """
        OwnershipGuard.validate_id_format(tenant_id, "tenant_id")
        if context_id is not None:
            OwnershipGuard.validate_id_format(context_id, "context_id")
        if not isinstance(query_text, str) or not query_text.strip():
            raise ValidationError(message="query must not be empty", tenant_id=tenant_id, field="query")

        limit = self._resolve_top_k(top_k, tenant_id)
        type_filter = self._resolve_content_type(content_type, tenant_id)

        started = time.monotonic()
        query_vector = await self._retry.run(
            lambda: self._embedding_provider.embed_single(query_text),
            "embed search query",
        )

        query = VectorSearchQuery(
            index_name=self._index_name,
            vector_path="vector",
            query_vector=query_vector,
            num_candidates=limit * self._multiplier,
            limit=limit,
            tenant_id=tenant_id,
            content_type=type_filter,
            context_id=context_id,
        )
        results = await self._store.vector_search(query)

        logger.info(
            "vector_search",
            tenant_id=tenant_id,
            top_k=limit,
            num_candidates=query.num_candidates,
            content_type=type_filter,
            context_id=context_id,
            results=len(results),
            top_score=round(results[0].score, 4) if results else None,
            elapsed_ms=round((time.monotonic() - started) * 1000, 1),
        )
        return results

    async def get_stats(self, tenant_id: str) -> EmbeddingStats:
        """Embedding counts and timestamps for *tenant_id*."""
        OwnershipGuard.validate_id_format(tenant_id, "tenant_id")
        return await self._store.get_stats(tenant_id)

    async def list_contexts(self, tenant_id: str) -> list[Context]:
        """The tenant's Contexts in creation order."""
        OwnershipGuard.validate_id_format(tenant_id, "tenant_id")
        return await self._store.list_contexts(tenant_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve_top_k(self, top_k: int | None, tenant_id: str) -> int:
        if top_k is None:
            return min(self._default_top_k, self._max_top_k)
        if top_k < 1:
            raise ValidationError(
                message="top_k must be at least 1", tenant_id=tenant_id, field="top_k"
            )
        return min(top_k, self._max_top_k)

    @staticmethod
    def _resolve_content_type(content_type: ContentType | str | None, tenant_id: str) -> str | None:
        if content_type is None:
            return None
        try:
            return ContentType(content_type).value
        except ValueError as exc:
            raise ValidationError(
                message=f"Unknown content type {content_type!r}",
                tenant_id=tenant_id,
                field="content_type",
            ) from exc
