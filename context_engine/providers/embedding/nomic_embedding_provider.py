"""Nomic embedding provider adapter (local via Ollama).

Talks to Ollama's OpenAI-compatible ``/v1`` endpoint with
``nomic-embed-text``.  The model's 768-dimensional output must match the
configured vector index; a vector of any other length is reported as a
:class:`DimensionMismatchError` instead of being handed to the store.
"""

from __future__ import annotations

import httpx
import openai
import structlog

from context_engine.config.settings import Settings
from context_engine.interfaces.embedding_provider import IEmbeddingProvider
from context_engine.utils.errors import DimensionMismatchError, EmbeddingProviderError

logger = structlog.get_logger(logger_name=__name__)

_MODEL = "nomic-embed-text"
_MODEL_DIMENSION = 768
_OLLAMA_BATCH_LIMIT = 512


class NomicEmbeddingProvider(IEmbeddingProvider):
    """``nomic-embed-text`` served by a local or LAN Ollama instance."""

    def __init__(self, settings: Settings) -> None:
        self._base_url = settings.ollama_base_url.rstrip("/")
        self._client = openai.AsyncOpenAI(
            base_url=f"{self._base_url}/v1",
            api_key="ollama",  # Ollama ignores the key
        )

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in order, 512 per request.

        Raises
        ------
        EmbeddingProviderError
            Ollama is unreachable, the model is not pulled, or the response
            does not hold one vector per input.
        DimensionMismatchError
            A returned vector is not 768 floats long.
        """
        if not texts:
            return []

        vectors: list[list[float]] = []
        for start in range(0, len(texts), _OLLAMA_BATCH_LIMIT):
            batch = texts[start : start + _OLLAMA_BATCH_LIMIT]
            try:
                response = await self._client.embeddings.create(input=batch, model=_MODEL)
            except openai.APIConnectionError as exc:
                raise EmbeddingProviderError(
                    message=f"Ollama is not reachable at {self._base_url}",
                    provider_name=self.get_provider_name(),
                ) from exc
            except openai.NotFoundError as exc:
                raise EmbeddingProviderError(
                    message=f"Model '{_MODEL}' is not available; run `ollama pull {_MODEL}`",
                    provider_name=self.get_provider_name(),
                    status_code=exc.status_code,
                ) from exc
            except openai.APIError as exc:
                raise EmbeddingProviderError(
                    message=f"Ollama embedding API error: {exc}",
                    provider_name=self.get_provider_name(),
                ) from exc

            for item in response.data:
                if len(item.embedding) != _MODEL_DIMENSION:
                    raise DimensionMismatchError(
                        message=(
                            f"{_MODEL} returned {len(item.embedding)} dimensions, "
                            f"expected {_MODEL_DIMENSION}"
                        ),
                        provider_name=self.get_provider_name(),
                        expected=_MODEL_DIMENSION,
                        actual=len(item.embedding),
                    )
                vectors.append(item.embedding)
            logger.info("nomic_embedding_batch", model=_MODEL, batch_size=len(batch))

        if len(vectors) != len(texts):
            raise EmbeddingProviderError(
                message=f"Expected {len(texts)} embeddings, received {len(vectors)}",
                provider_name=self.get_provider_name(),
            )
        return vectors

    async def embed_single(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]

    def get_dimension(self) -> int:
        return _MODEL_DIMENSION

    def get_provider_name(self) -> str:
        return "nomic_embedding"

    def is_available(self) -> bool:
        """Return ``True`` if Ollama answers and has ``nomic-embed-text`` pulled."""
        if not self._base_url:
            return False
        try:
            response = httpx.get(f"{self._base_url}/api/tags", timeout=3.0)
            response.raise_for_status()
            models = response.json().get("models", [])
        except (httpx.HTTPError, ValueError):
            return False
        # Tags come back as "nomic-embed-text:latest", "nomic-embed-text:v1.5", ...
        return any(str(m.get("name", "")).split(":")[0] == _MODEL for m in models)
