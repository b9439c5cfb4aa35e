"""Configuration error types."""


class ConfigurationError(Exception):
    """Base exception for configuration-related errors."""

    pass


class InvalidConfigurationError(ConfigurationError):
    """Raised when configuration values fail validation."""

    pass


__all__ = [
    "ConfigurationError",
    "InvalidConfigurationError",
]
