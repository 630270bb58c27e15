"""Core services of the context engine.

    TextChunker              -- overlapping character windows / delimiter records
    DeduplicationGate        -- tenant-wide semantic duplicate check
    ContextIngestionService  -- ingest / update / delete pipeline
    OwnershipGuard           -- id format, ownership, and tenant membership checks
    SecureContextService     -- ownership-checked entry point for writes
    QueryService             -- tenant-filtered vector search, stats, listing
    OrphanSweeper            -- reconciliation of dangling embeddings / Contexts
"""

from context_engine.services.chunker import TextChunker
from context_engine.services.dedup import DeduplicationGate
from context_engine.services.ingestion_service import ContextIngestionService
from context_engine.services.maintenance import OrphanSweeper
from context_engine.services.ownership import OwnershipGuard, SecureContextService
from context_engine.services.query_service import QueryService

__all__ = [
    "ContextIngestionService",
    "DeduplicationGate",
    "OrphanSweeper",
    "OwnershipGuard",
    "QueryService",
    "SecureContextService",
    "TextChunker",
]
