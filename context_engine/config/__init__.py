from context_engine.config.loader import load_config, settings_from_config
from context_engine.config.settings import Settings

__all__ = ["Settings", "load_config", "settings_from_config"]
