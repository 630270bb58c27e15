"""Dependency wiring for the context engine.

:func:`build_engine` constructs every provider and service from a
:class:`Settings` instance and returns them bundled in a
:class:`ContextEngine`.  Nothing touches the network or the database
until :meth:`ContextEngine.startup`, which creates the schema and verifies
that the embedding provider, the configured index, and any vectors
already stored all agree on dimensionality.

Provider selection (``embedding_provider`` setting):

    openai -> OpenAIEmbeddingProvider (requires OPENAI_API_KEY)
    nomic  -> NomicEmbeddingProvider via Ollama
    auto   -> openai when a key is configured, otherwise nomic
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

import structlog

from context_engine.config.settings import Settings
from context_engine.interfaces.document_store import IDocumentStore
from context_engine.interfaces.embedding_provider import IEmbeddingProvider
from context_engine.interfaces.text_extractor import ITextExtractor, IWebPageProvider
from context_engine.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from context_engine.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from context_engine.providers.extraction.file_text_extractor import FileTextExtractor
from context_engine.providers.extraction.web_page_provider import WebPageProvider
from context_engine.providers.store.sqlite_document_store import SQLiteDocumentStore
from context_engine.services.chunker import TextChunker
from context_engine.services.dedup import DeduplicationGate
from context_engine.services.ingestion_service import ContextIngestionService
from context_engine.services.maintenance import OrphanSweeper
from context_engine.services.ownership import OwnershipGuard, SecureContextService
from context_engine.services.query_service import QueryService
from context_engine.utils.errors import ConfigurationError, DimensionMismatchError
from context_engine.utils.retry import RetryPolicy

logger = structlog.get_logger(logger_name=__name__)


# ---------------------------------------------------------------------------
# Embedding provider selection
# ---------------------------------------------------------------------------


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Select the embedding provider named by ``embedding_provider``."""
    choice = app_settings.embedding_provider.strip().lower()

    if choice == "openai":
        if not app_settings.openai_api_key:
            raise ConfigurationError(
                message="EMBEDDING_PROVIDER=openai but OPENAI_API_KEY is not set",
                field="openai_api_key",
            )
        return OpenAIEmbeddingProvider(settings=app_settings)
    if choice == "nomic":
        return NomicEmbeddingProvider(settings=app_settings)
    if choice == "auto":
        if app_settings.openai_api_key:
            return OpenAIEmbeddingProvider(settings=app_settings)
        return NomicEmbeddingProvider(settings=app_settings)

    raise ConfigurationError(
        message=f"Unknown embedding provider {app_settings.embedding_provider!r}",
        field="embedding_provider",
    )


# ---------------------------------------------------------------------------
# Engine bundle
# ---------------------------------------------------------------------------


@dataclass
class ContextEngine:
    """All wired components of one engine instance."""

    settings: Settings
    store: IDocumentStore
    embedding_provider: IEmbeddingProvider
    ingestion: ContextIngestionService
    guard: OwnershipGuard
    contexts: SecureContextService
    query: QueryService
    sweeper: OrphanSweeper
    file_extractor: ITextExtractor
    web_pages: IWebPageProvider

    async def startup(self) -> None:
        """Initialize storage and verify embedding dimensions.

        Raises
        ------
        DimensionMismatchError
            If the provider, the configured index dimension, and already
            stored vectors do not all have the same length.
        """
        await self.store.initialize()

        provider_dim = self.embedding_provider.get_dimension()
        index_dim = self.settings.embedding_dimension
        if provider_dim != index_dim:
            raise DimensionMismatchError(
                message=(
                    f"{self.embedding_provider.get_provider_name()} produces "
                    f"{provider_dim}-dim vectors but the index expects {index_dim}"
                ),
                provider_name=self.embedding_provider.get_provider_name(),
                expected=index_dim,
                actual=provider_dim,
            )

        stored_dim = await self.store.get_vector_dimension()
        if stored_dim is not None and stored_dim != index_dim:
            raise DimensionMismatchError(
                message=(
                    f"Stored vectors have {stored_dim} dimensions but the index "
                    f"expects {index_dim}; re-embed or point DATABASE_PATH elsewhere"
                ),
                provider_name=self.store.get_provider_name(),
                expected=index_dim,
                actual=stored_dim,
            )

        logger.info(
            "embedding_dimension_validated",
            provider=self.embedding_provider.get_provider_name(),
            dimension=provider_dim,
            stored_dimension=stored_dim,
            index_name=self.settings.vector_index_name,
        )

    async def close(self) -> None:
        """Release network clients held by providers."""
        close = getattr(self.web_pages, "close", None)
        if close is not None:
            await close()


def build_engine(
    app_settings: Settings,
    *,
    embedding_provider: IEmbeddingProvider | None = None,
    store: IDocumentStore | None = None,
) -> ContextEngine:
    """Wire settings -> providers -> services.

    *embedding_provider* and *store* override the settings-based choices
    (tests pass fakes here).
    """
    embedder = embedding_provider or _build_embedding_provider(app_settings)
    document_store = store or SQLiteDocumentStore(
        db_path=app_settings.database_path,
        index_name=app_settings.vector_index_name,
        dimension=app_settings.embedding_dimension,
    )
    retry_policy = RetryPolicy(
        max_attempts=app_settings.retry_max_attempts,
        base_delay=app_settings.retry_base_delay,
        max_delay=app_settings.retry_max_delay,
    )

    ingestion = ContextIngestionService(
        store=document_store,
        embedding_provider=embedder,
        chunker=TextChunker(
            max_size=app_settings.chunk_max_size,
            overlap=app_settings.chunk_overlap,
        ),
        dedup_gate=DeduplicationGate(document_store, threshold=app_settings.dedup_threshold),
        retry_policy=retry_policy,
    )
    guard = OwnershipGuard(document_store)

    return ContextEngine(
        settings=app_settings,
        store=document_store,
        embedding_provider=embedder,
        ingestion=ingestion,
        guard=guard,
        contexts=SecureContextService(ingestion, guard),
        query=QueryService(
            store=document_store,
            embedding_provider=embedder,
            index_name=app_settings.vector_index_name,
            default_top_k=app_settings.search_default_top_k,
            max_top_k=app_settings.search_max_top_k,
            num_candidates_multiplier=app_settings.search_num_candidates_multiplier,
            retry_policy=retry_policy,
        ),
        sweeper=OrphanSweeper(
            document_store,
            grace_period=timedelta(minutes=app_settings.orphan_grace_period_minutes),
        ),
        file_extractor=FileTextExtractor(),
        web_pages=WebPageProvider(),
    )
