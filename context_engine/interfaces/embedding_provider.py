"""Abstract base class for text-embedding service providers.

Defines the contract for turning text into fixed-length vectors.
Implementations wrap OpenAI ``text-embedding-3-small`` (requested at the
configured dimensionality) or ``nomic-embed-text`` served by Ollama.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations (context_engine/providers/embedding/):
#   OpenAIEmbeddingProvider -- text-embedding-3-small, dimensions configurable
#   NomicEmbeddingProvider  -- nomic-embed-text via Ollama, 768 dims
class IEmbeddingProvider(ABC):
    """Contract for embedding services used by ingestion, dedup, and search.

    The dimensionality reported by :meth:`get_dimension` must equal the
    dimensionality of the vector index; this is checked once at startup,
    not on every call.
    """

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            One or more text strings to embed.  Implementations handle
            the underlying API's per-call limit internally.

        Returns
        -------
        list[list[float]]
            Vectors corresponding positionally to *texts*.

        Raises
        ------
        context_engine.utils.errors.EmbeddingProviderError
            If the embedding API call fails.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for one string (e.g. a search query)."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the length of every vector this provider produces."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier such as ``"openai_embedding"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured and reachable."""
