"""Configuration module for pulsechat."""

from pulsechat.config.loader import (
    ConfigError,
    ConfigFileNotFoundError,
    ConfigParseError,
    EnvVarNotFoundError,
    load_config,
)
from pulsechat.config.models import (
    AppConfig,
    AuthConfig,
    DatabaseConfig,
    LoggingConfig,
    PresenceConfig,
    ServerConfig,
    StorageConfig,
    TypingConfig,
    WatchConfig,
)

__all__ = [
    # Exceptions
    "ConfigError",
    "ConfigFileNotFoundError",
    "ConfigParseError",
    "EnvVarNotFoundError",
    # Functions
    "load_config",
    # Models
    "AppConfig",
    "AuthConfig",
    "DatabaseConfig",
    "LoggingConfig",
    "PresenceConfig",
    "ServerConfig",
    "StorageConfig",
    "TypingConfig",
    "WatchConfig",
]
