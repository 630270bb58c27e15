"""Engine settings loaded from environment variables via pydantic-settings.

Values come from two sources, highest priority first:

  1. Environment variables, e.g. ``OPENAI_API_KEY=sk-abc123``
  2. The ``.env`` file in the working directory

Field ``openai_api_key`` maps to env var ``OPENAI_API_KEY``.  Defaults
below apply when neither source sets a value.  The YAML layer in
:mod:`context_engine.config.loader` sits underneath both.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Context engine settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Embedding providers ===
    # Empty key = "not configured"; with embedding_provider="auto" the
    # factory in main.py then falls through to Ollama.
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible endpoint override
    openai_embedding_model: str = "text-embedding-3-small"
    # Sent as the ``dimensions`` request parameter so the model output
    # matches the vector index.
    openai_embedding_dimensions: int = Field(default=768, ge=1)
    ollama_base_url: str = "http://localhost:11434"
    embedding_provider: str = "auto"  # auto | openai | nomic

    # === Document store ===
    database_path: str = "data/context_engine.db"
    vector_index_name: str = "vector_index"
    embedding_dimension: int = Field(default=768, ge=1)

    # === Chunking / dedup ===
    chunk_max_size: int = Field(default=2000, ge=1)
    chunk_overlap: int = Field(default=100, ge=0)
    dedup_threshold: float = Field(default=0.85, ge=-1.0, le=1.0)

    # === Search ===
    search_default_top_k: int = Field(default=5, ge=1)
    search_max_top_k: int = Field(default=20, ge=1)
    # numCandidates = top_k * multiplier; below 4 the ANN recall drops.
    search_num_candidates_multiplier: int = Field(default=10, ge=4)

    # === Embedding retry policy ===
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=1.0, ge=0.0)
    retry_max_delay: float = Field(default=8.0, ge=0.0)

    # === Maintenance ===
    # Contexts with no embeddings younger than this are assumed to be
    # mid-ingestion and left alone by the orphan sweep.
    orphan_grace_period_minutes: int = Field(default=60, ge=0)

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"

    def get_available_embedding_providers(self) -> list[str]:
        """Return embedding provider names in fallback order."""
        providers: list[str] = []
        if self.openai_api_key:
            providers.append("openai")
        if self.ollama_base_url:
            providers.append("nomic")
        return providers
