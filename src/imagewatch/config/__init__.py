"""Application configuration helpers."""

from __future__ import annotations

from .env import require_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import NO_RETRY, RateLimit, ResilienceConfig, RetryPolicy
from .reconciler import ReconcilerConfig, get_reconciler_config, parse_sources
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config
from .webhook import WebhookConfig, get_webhook_config

__all__ = [
    "NO_RETRY",
    "ConfigurationError",
    "DatabaseConfig",
    "MissingConfigurationError",
    "RateLimit",
    "ReconcilerConfig",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "WebhookConfig",
    "get_database_config",
    "get_reconciler_config",
    "get_storage_config",
    "get_webhook_config",
    "parse_sources",
    "require_env_var",
    "require_env_vars",
]
