"""Errors raised while assembling discovery configuration."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised when a discovery target or cluster credentials cannot be used."""


class MissingConfigurationError(ConfigurationError):
    """Raised when a required setting (service, port) was given nowhere."""
