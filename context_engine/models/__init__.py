"""Context engine domain models -- re-exports all public model classes.

    - context.py -- the tenant's submitted knowledge items and chatbot records
    - rag.py     -- stored chunks, vector search queries, results, and reports
"""

from __future__ import annotations

from context_engine.models.context import (
    Chatbot,
    ContentType,
    Context,
    ContextMetadata,
    FileMetadata,
    LinkMetadata,
    QuestionMetadata,
    TextMetadata,
    parse_metadata,
)
from context_engine.models.rag import (
    ChunkMetadata,
    EmbeddingRecord,
    EmbeddingStats,
    IngestionResult,
    SearchResult,
    SweepReport,
    VectorSearchQuery,
    source_name,
)

__all__ = [
    # context
    "Chatbot",
    "ContentType",
    "Context",
    "ContextMetadata",
    "FileMetadata",
    "LinkMetadata",
    "QuestionMetadata",
    "TextMetadata",
    "parse_metadata",
    # rag
    "ChunkMetadata",
    "EmbeddingRecord",
    "EmbeddingStats",
    "IngestionResult",
    "SearchResult",
    "SweepReport",
    "VectorSearchQuery",
    "source_name",
]
