"""Pydantic models for application configuration."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8080
    public_base_url: str = Field(
        default="http://localhost:8080",
        description=(
            "Externally reachable base URL, used to build upload and file URLs "
            "handed back to clients."
        ),
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "text"] = "json"


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    url: str = Field(
        default="sqlite+aiosqlite:///./data/pulsechat.db",
        description=(
            "SQLAlchemy-style database connection URL "
            "(e.g., 'sqlite+aiosqlite:///path/to/db')."
        ),
    )


class AuthConfig(BaseModel):
    """Identity extraction configuration.

    The identity provider's token is verified by a trusted gateway in front of
    the server, which forwards the verified subject id in a request header.
    """

    subject_header: str = Field(
        default="X-Auth-Subject",
        description="Header carrying the verified subject id of the caller.",
    )


class PresenceConfig(BaseModel):
    """Presence tracking configuration."""

    online_threshold_seconds: float = Field(
        default=60.0,
        gt=0,
        description=(
            "A user flagged online is reported offline once their last "
            "heartbeat is older than this."
        ),
    )


class TypingConfig(BaseModel):
    """Typing indicator configuration."""

    timeout_seconds: float = Field(
        default=3.0,
        gt=0,
        description="Typing signals older than this are ignored by readers.",
    )


class StorageConfig(BaseModel):
    """Attachment storage configuration."""

    root: Path = Path("./data/uploads")
    max_upload_bytes: int = Field(default=10 * 1024 * 1024, gt=0)
    upload_ttl_seconds: float = Field(
        default=600.0,
        gt=0,
        description="How long an issued upload handle stays valid.",
    )


class WatchConfig(BaseModel):
    """Change feed long-poll configuration."""

    max_wait_seconds: float = Field(default=25.0, gt=0)


class AppConfig(BaseModel):
    """Application configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    presence: PresenceConfig = Field(default_factory=PresenceConfig)
    typing: TypingConfig = Field(default_factory=TypingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    watch: WatchConfig = Field(default_factory=WatchConfig)
