"""
Configuration settings for pgorm.

Uses Pydantic Settings to load environment variables for database connections,
pool sizing, logging, and the on-disk locations of model and migration sources.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("pgorm", alias="DB_NAME")

    # Pool
    pool_min_size: int = Field(1, alias="DB_POOL_MIN_SIZE")
    pool_max_size: int = Field(10, alias="DB_POOL_MAX_SIZE")
    command_timeout: float = Field(60.0, alias="DB_COMMAND_TIMEOUT")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # Sources
    models_dir: str = Field("models", alias="PGORM_MODELS_DIR")
    migrations_dir: str = Field("database/migrations", alias="PGORM_MIGRATIONS_DIR")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


def build_dsn(settings: Optional[Settings] = None) -> str:
    """Compose a PostgreSQL DSN string from settings."""
    settings = settings or get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


__all__ = ["Settings", "build_dsn", "get_settings"]
