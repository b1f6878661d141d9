"""Configuration error definitions."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised when a setting is invalid or an operation is disabled by configuration."""


class MissingConfigurationError(ConfigurationError):
    """Raised when required environment variables are absent or blank."""
