"""Application configuration helpers."""

from __future__ import annotations

from .admin import AdminConfig, get_admin_config
from .env import env_flag, env_int, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .logging import configure_logging
from .migration import MigrationConfig, get_migration_config
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "AdminConfig",
    "ConfigurationError",
    "DatabaseConfig",
    "MigrationConfig",
    "MissingConfigurationError",
    "StorageConfig",
    "configure_logging",
    "env_flag",
    "env_int",
    "get_admin_config",
    "get_database_config",
    "get_migration_config",
    "get_storage_config",
    "require_env_vars",
]
