"""Custom exception hierarchy for the context engine.

All engine exceptions inherit from :class:`ContextEngineError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "sqlite") caused the failure, plus a
``details`` dict naming the tenant, context, or field involved.

The hierarchy is organized by the stage that raises it:

    ContextEngineError  (base -- catch-all for any engine error)
    +-- ValidationError            (malformed input, rejected before any write)
    |   +-- EmptyContentError      (blank content submitted)
    |   +-- InvalidIdError         (id does not have the opaque-id shape)
    +-- DuplicateSourceError       (LINK url already ingested for the tenant)
    +-- AllContentDuplicateError   (every chunk was deduplicated away)
    +-- AccessDeniedError          (principal does not own the chatbot)
    +-- NotFoundError              (context missing or owned by another tenant)
    +-- EmbeddingProviderError     (embedding call failed after retries)
    +-- SearchUnavailableError     (vector search backend or index missing)
    +-- StorageError               (document store read/write failure)
    +-- DimensionMismatchError     (vector lengths disagree)
    +-- ExtractionError            (file/web text extraction)
    |   +-- UnsupportedFormatError
    |   +-- ExtractionFailedError
    +-- ConfigurationError         (startup / missing config)

Validation and ownership failures are raised before any persistence
happens.  The only failure that triggers a rollback is
:class:`AllContentDuplicateError`.
"""

from __future__ import annotations

from typing import Any


class ContextEngineError(Exception):
    """Base exception for all context engine errors.

    Every subclass carries a human-readable ``message``, an optional
    ``provider_name`` identifying which external service triggered the
    error, and a ``details`` mapping with the identifiers needed to say
    which document / tenant / field caused it.  ``__str__`` prefixes the
    provider name in brackets, e.g. ``[openai] Rate limit exceeded``.
    """

    default_message = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        provider_name: str | None = None,
        **details: Any,
    ) -> None:
        self._message = message or self.default_message
        self._provider_name = provider_name
        self._details = {k: v for k, v in details.items() if v is not None}
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    @property
    def details(self) -> dict[str, Any]:
        return dict(self._details)

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------

class ValidationError(ContextEngineError):
    """Raised when a submission is malformed (missing title, bad tenant id...)."""

    default_message = "Invalid input"


class EmptyContentError(ValidationError):
    """Raised when the submitted content is empty or whitespace-only."""

    default_message = "No content to process"


class InvalidIdError(ValidationError):
    """Raised when an id does not match the store's opaque-id shape."""

    default_message = "Malformed id"


# ---------------------------------------------------------------------------
# Ingestion outcomes
# ---------------------------------------------------------------------------

class DuplicateSourceError(ContextEngineError):
    """Raised when a LINK context with the same URL already exists for the tenant."""

    default_message = "Source already ingested"


class AllContentDuplicateError(ContextEngineError):
    """Raised when every chunk of a submission was a duplicate.

    The context created for the submission has already been rolled back
    by the time this propagates.
    """

    default_message = "All content is already present in the knowledge base"


# ---------------------------------------------------------------------------
# Ownership / lookup
# ---------------------------------------------------------------------------

class AccessDeniedError(ContextEngineError):
    """Raised when the principal does not own the tenant's chatbot."""

    default_message = "Access denied"


class NotFoundError(ContextEngineError):
    """Raised when an edit/delete target is missing or belongs to another tenant."""

    default_message = "Context not found"


# ---------------------------------------------------------------------------
# External collaborators
# ---------------------------------------------------------------------------

class EmbeddingProviderError(ContextEngineError):
    """Raised when an embedding call fails (after retries, at the pipeline level)."""

    default_message = "Embedding provider call failed"


class SearchUnavailableError(ContextEngineError):
    """Raised when the vector search backend is unreachable or the index is missing.

    Never converted into an empty result: an empty-but-successful search is
    indistinguishable from "no knowledge found".
    """

    default_message = "Vector search is unavailable"


class StorageError(ContextEngineError):
    """Raised when a document store read or write fails."""

    default_message = "Document store operation failed"


class DimensionMismatchError(ContextEngineError, ValueError):
    """Raised when two vectors (or a provider and the index) disagree on length."""

    default_message = "Vector dimensions do not match"


# ---------------------------------------------------------------------------
# Text extraction
# ---------------------------------------------------------------------------

class ExtractionError(ContextEngineError):
    """Base class for file / web text extraction failures."""

    default_message = "Text extraction failed"


class UnsupportedFormatError(ExtractionError):
    """Raised when no extractor handles the declared file type."""

    default_message = "Unsupported file format"


class ExtractionFailedError(ExtractionError):
    """Raised when a supported format could not be parsed or yielded no text."""

    default_message = "Could not extract text"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class ConfigurationError(ContextEngineError):
    """Raised when configuration is invalid or missing at startup."""

    default_message = "Invalid or missing configuration"
