"""Public interface definitions for the engine's external collaborators.

Every external service (embedding API, persistence, file parsing, web
fetching) is reached only through the abstract base classes defined here.
Concrete adapters live in ``context_engine/providers/`` and are wired in
``context_engine/main.py``; tests inject fakes through the same seams.

    Interface           ->  Concrete implementations
    ---------------------------------------------------------------
    IEmbeddingProvider  ->  OpenAIEmbeddingProvider, NomicEmbeddingProvider
    IDocumentStore      ->  SQLiteDocumentStore
    ITextExtractor      ->  FileTextExtractor
    IWebPageProvider    ->  WebPageProvider
"""

from context_engine.interfaces.document_store import IDocumentStore
from context_engine.interfaces.embedding_provider import IEmbeddingProvider
from context_engine.interfaces.text_extractor import (
    ITextExtractor,
    IWebPageProvider,
    WebPageContent,
)

__all__ = [
    "IDocumentStore",
    "IEmbeddingProvider",
    "ITextExtractor",
    "IWebPageProvider",
    "WebPageContent",
]
