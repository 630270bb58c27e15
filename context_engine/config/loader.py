"""YAML configuration loader with environment variable overrides.

Configuration is loaded in layers (later layers override earlier):

  1. config/config.yaml  -- static defaults checked into the repo
  2. .env file           -- local developer overrides (not committed)
  3. Environment vars    -- set at deploy time

:func:`load_config` reads the YAML file, then deep-merges the values that
were actually set through ``.env`` / the environment on top.
:func:`settings_from_config` folds the merged sections back into a
:class:`Settings` instance, which is what the rest of the engine consumes.
"""

from pathlib import Path

import yaml

from context_engine.config.settings import Settings
from context_engine.utils.errors import ConfigurationError

# YAML section -> {YAML key: Settings field}
_SECTION_FIELDS: dict[str, dict[str, str]] = {
    "app": {
        "env": "app_env",
    },
    "logging": {
        "level": "log_level",
    },
    "embedding": {
        "provider": "embedding_provider",
        "openai_api_key": "openai_api_key",
        "openai_base_url": "openai_base_url",
        "openai_model": "openai_embedding_model",
        "openai_dimensions": "openai_embedding_dimensions",
        "ollama_base_url": "ollama_base_url",
    },
    "storage": {
        "database_path": "database_path",
        "vector_index_name": "vector_index_name",
        "embedding_dimension": "embedding_dimension",
    },
    "rag": {
        "chunk_max_size": "chunk_max_size",
        "chunk_overlap": "chunk_overlap",
        "dedup_threshold": "dedup_threshold",
        "search_default_top_k": "search_default_top_k",
        "search_max_top_k": "search_max_top_k",
        "search_num_candidates_multiplier": "search_num_candidates_multiplier",
        "orphan_grace_period_minutes": "orphan_grace_period_minutes",
    },
    "retry": {
        "max_attempts": "retry_max_attempts",
        "base_delay": "retry_base_delay",
        "max_delay": "retry_max_delay",
    },
}


def load_config(path: str = "config/config.yaml") -> dict:
    """Load YAML config and merge with environment-based Settings.

    Only values explicitly provided through the environment or ``.env``
    override YAML; Settings' own defaults never mask a YAML value.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Fully resolved configuration dictionary.

    Raises:
        ConfigurationError: If the YAML file exists but cannot be parsed.
    """
    config_path = Path(path)
    if config_path.exists():
        try:
            with open(config_path) as f:
                yaml_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(
                message=f"Cannot parse {config_path}: {exc}",
                path=str(config_path),
            ) from exc
    else:
        yaml_config = {}

    if not isinstance(yaml_config, dict):
        raise ConfigurationError(
            message=f"{config_path} must contain a mapping at the top level",
            path=str(config_path),
        )

    settings = Settings()
    env_overrides: dict[str, dict] = {}
    for section, fields in _SECTION_FIELDS.items():
        for key, field_name in fields.items():
            if field_name in settings.model_fields_set:
                env_overrides.setdefault(section, {})[key] = getattr(settings, field_name)

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def settings_from_config(config: dict) -> Settings:
    """Build a :class:`Settings` from a merged config dictionary.

    Unknown sections and keys are ignored.  Keys missing from *config*
    take the Settings defaults.
    """
    values: dict[str, object] = {}
    for section, fields in _SECTION_FIELDS.items():
        section_values = config.get(section) or {}
        for key, field_name in fields.items():
            if key in section_values and section_values[key] is not None:
                values[field_name] = section_values[key]
    # _env_file=None: the env layer is already merged into *config*.
    return Settings(_env_file=None, **values)


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
