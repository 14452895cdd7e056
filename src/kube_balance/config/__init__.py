"""Application configuration helpers."""

from __future__ import annotations

from .backoff import BackoffPolicy
from .discovery import DiscoveryConfig, get_discovery_config, parse_port
from .env import optional_env_int, optional_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .logging import configure_logging

__all__ = [
    "BackoffPolicy",
    "ConfigurationError",
    "DiscoveryConfig",
    "MissingConfigurationError",
    "configure_logging",
    "get_discovery_config",
    "optional_env_int",
    "optional_env_var",
    "parse_port",
    "require_env_vars",
]
