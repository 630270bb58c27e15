"""Retrieval data models: stored chunks, search queries, and results.

Flow of these models through the engine:

    1. INGESTION: a Context's text is chunked; each surviving chunk becomes
       an :class:`EmbeddingRecord` stamped with the Context's id and tenant.
    2. SEARCH: a :class:`VectorSearchQuery` (always carrying a tenant
       filter) goes to the document store, which answers with
       :class:`SearchResult` rows ranked by score.
    3. REPORTING: ingestion returns an :class:`IngestionResult`; the stats
       and sweep operations return :class:`EmbeddingStats` /
       :class:`SweepReport`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChunkMetadata(BaseModel):
    """Source metadata stamped on every stored chunk.

    ``title`` already has the per-type fallback applied (see
    :func:`context_engine.services.ingestion_service.fallback_title`).
    """

    model_config = ConfigDict(frozen=True)

    context_id: str
    content_type: str
    title: str
    file_name: str | None = None
    url: str | None = None
    chunk_index: int = Field(ge=0)
    total_chunks: int = Field(ge=1)
    source: str = "context-ingestion"


class EmbeddingRecord(BaseModel):
    """One retrievable chunk and its vector.

    ``tenant_id`` is a denormalized copy of the parent Context's tenant and
    is what the search filter matches on.  Records are never updated in
    place; content changes produce new records.
    """

    model_config = ConfigDict(frozen=True)

    embedding_id: str
    tenant_id: str
    context_id: str
    content: str
    vector: list[float]
    chunk_index: int = Field(ge=0)
    total_chunks: int = Field(ge=1)
    source_tag: str = "context-ingestion"
    metadata: ChunkMetadata
    created_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _metadata_matches_record(self) -> "EmbeddingRecord":
        if self.metadata.context_id != self.context_id:
            raise ValueError("metadata.context_id must equal context_id")
        if self.chunk_index >= self.total_chunks:
            raise ValueError("chunk_index must be < total_chunks")
        return self


class VectorSearchQuery(BaseModel):
    """A single nearest-neighbour request against the store.

    Mirrors a ``$vectorSearch`` stage: index name, vector path, query
    vector, candidate over-fetch, result limit, and a filter whose
    ``tenant_id`` conjunct is required.
    """

    model_config = ConfigDict(frozen=True)

    index_name: str
    vector_path: str = "vector"
    query_vector: list[float]
    num_candidates: int = Field(ge=1)
    limit: int = Field(ge=1)
    tenant_id: str = Field(min_length=1)
    content_type: str | None = None
    context_id: str | None = None

    @model_validator(mode="after")
    def _candidates_cover_limit(self) -> "VectorSearchQuery":
        if self.num_candidates < self.limit:
            raise ValueError("num_candidates must be >= limit")
        return self


class SearchResult(BaseModel):
    """A chunk returned from a tenant-scoped search, with its score."""

    model_config = ConfigDict(frozen=True)

    embedding_id: str
    tenant_id: str
    content: str
    score: float = Field(
        ge=0.0,
        le=1.0,
        description="Normalized cosine score, (1 + cos) / 2.",
    )
    metadata: ChunkMetadata

    @property
    def source_name(self) -> str:
        return source_name(self.metadata)


def source_name(metadata: ChunkMetadata) -> str:
    """Readable source label: file name, then title, then URL host."""
    if metadata.file_name:
        return metadata.file_name
    if metadata.title:
        return metadata.title
    if metadata.url:
        host = urlparse(metadata.url).hostname
        return host or metadata.url
    return "Unknown"


class IngestionResult(BaseModel):
    """Outcome of one successful ingestion or re-embedding."""

    model_config = ConfigDict(frozen=True)

    context_id: str
    embeddings_created: int = Field(default=0, ge=0)
    embeddings_skipped: int = Field(default=0, ge=0)
    embedding_ids: list[str] = Field(default_factory=list)
    ingestion_time: float = Field(default=0.0, ge=0.0, description="Seconds.")


class EmbeddingStats(BaseModel):
    """Per-tenant snapshot of the embedding store."""

    model_config = ConfigDict(frozen=True)

    tenant_id: str
    total_embeddings: int = Field(default=0, ge=0)
    total_contexts: int = Field(default=0, ge=0)
    by_content_type: dict[str, int] = Field(default_factory=dict)
    oldest_embedding: datetime | None = None
    newest_embedding: datetime | None = None


class SweepReport(BaseModel):
    """Counts from one orphan reconciliation pass."""

    model_config = ConfigDict(frozen=True)

    total_embeddings: int = 0
    orphaned: int = 0
    deleted: int = 0
    contexts_removed: int = 0
    errors: int = 0
