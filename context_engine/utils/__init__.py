"""Utility modules for the context engine.

- **errors** -- exception taxonomy rooted at ContextEngineError; every
  pipeline stage raises its own subclass so callers can react precisely.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
- **similarity** -- cosine similarity for single pairs and whole matrices.
- **retry** -- bounded exponential backoff around embedding provider calls.
- **ids** -- 24-hex opaque id generation and validation.
"""

from context_engine.utils.errors import (
    AccessDeniedError,
    AllContentDuplicateError,
    ConfigurationError,
    ContextEngineError,
    DimensionMismatchError,
    DuplicateSourceError,
    EmbeddingProviderError,
    EmptyContentError,
    ExtractionError,
    ExtractionFailedError,
    InvalidIdError,
    NotFoundError,
    SearchUnavailableError,
    StorageError,
    UnsupportedFormatError,
    ValidationError,
)
from context_engine.utils.ids import is_valid_id, new_id
from context_engine.utils.logging import configure_logging, get_logger
from context_engine.utils.retry import RetryPolicy, retry_with_backoff
from context_engine.utils.similarity import cosine_similarity

__all__ = [
    "AccessDeniedError",
    "AllContentDuplicateError",
    "ConfigurationError",
    "ContextEngineError",
    "DimensionMismatchError",
    "DuplicateSourceError",
    "EmbeddingProviderError",
    "EmptyContentError",
    "ExtractionError",
    "ExtractionFailedError",
    "InvalidIdError",
    "NotFoundError",
    "RetryPolicy",
    "SearchUnavailableError",
    "StorageError",
    "UnsupportedFormatError",
    "ValidationError",
    "configure_logging",
    "cosine_similarity",
    "get_logger",
    "is_valid_id",
    "new_id",
    "retry_with_backoff",
]
