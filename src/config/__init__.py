"""
Configuration loader.

App config: reads config.yaml, validates it against a JSON Schema, resolves
env vars for secrets.
"""

from config.loader import (
    AccountConfig,
    AlertingConfig,
    AppConfig,
    ConfigError,
    JournalConfig,
    MonitorConfig,
    PersistenceConfig,
    QuotesConfig,
    StorageConfig,
    load_config,
)

__all__ = [
    "AccountConfig",
    "AlertingConfig",
    "AppConfig",
    "ConfigError",
    "JournalConfig",
    "MonitorConfig",
    "PersistenceConfig",
    "QuotesConfig",
    "StorageConfig",
    "load_config",
]
