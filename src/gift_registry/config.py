"""Configuration management for Gift Registry."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal
from urllib.parse import quote_plus

from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL connection settings."""

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = "localhost"
    port: int = 5432
    name: str = "gift_registry"
    user: str = "postgres"
    password: str = ""
    sslmode: str = "prefer"

    @property
    def conninfo(self) -> str:
        """libpq connection string for psycopg."""
        return (
            f"host={self.host} port={self.port} dbname={self.name} "
            f"user={self.user} password={self.password} sslmode={self.sslmode}"
        )

    @property
    def connection_string(self) -> str:
        """Get SQLAlchemy connection string."""
        user_encoded = quote_plus(self.user)
        password_encoded = quote_plus(self.password)

        return (
            f"postgresql+psycopg://{user_encoded}:{password_encoded}"
            f"@{self.host}:{self.port}/{self.name}"
            f"?sslmode={self.sslmode}"
        )


class StoreSettings(BaseSettings):
    """Storage backend selection."""

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    backend: Literal["memory", "postgres"] = "memory"


class EventSettings(BaseSettings):
    """Live event stream settings."""

    model_config = SettingsConfigDict(
        env_prefix="EVENTS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    heartbeat_interval_seconds: float = 30.0
    max_connections_per_user: int = 5
    # Messages buffered per subscriber before it counts as dead
    max_pending_messages: int = 100
    # Idle interval between client disconnect checks
    stream_poll_seconds: float = 1.0


class UserSettings(BaseSettings):
    """User identification settings for dev/prod environments."""

    model_config = SettingsConfigDict(
        env_prefix="USER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # For local development - set USER_EMAIL in .env
    email: str = ""
    name: str = ""


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"
    json_logs: bool = False

    @property
    def database(self) -> DatabaseSettings:
        """Get PostgreSQL settings."""
        return DatabaseSettings()

    @property
    def store(self) -> StoreSettings:
        """Get storage backend settings."""
        return StoreSettings()

    @property
    def events(self) -> EventSettings:
        """Get live event stream settings."""
        return EventSettings()

    @property
    def user(self) -> UserSettings:
        """Get user identification settings."""
        return UserSettings()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
