"""Centralized configuration for fts-bridge using Pydantic Settings."""

from functools import lru_cache
import logging

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strictly typed configuration loaded from ``FTS_BRIDGE_*`` environment variables.

    Every value has a working default, so the package runs without any
    environment set. Values are read once and cached by ``get_settings``.
    """

    model_config = SettingsConfigDict(
        env_prefix="FTS_BRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",  # Ignore unrelated FTS_BRIDGE_* variables
    )

    # Logging
    log_level: str = Field(default="INFO", description="Level used by configure_logging()")
    json_logs: bool = Field(default=True, description="Emit structured JSON log records")

    # SQLite tuning
    sqlite_cache_size_kb: int = Field(
        default=-65536, description="PRAGMA cache_size (negative values are KiB, positive are pages)"
    )
    sqlite_mmap_size_bytes: int = Field(default=134217728, ge=0, description="PRAGMA mmap_size")
    lock_timeout_ms: int = Field(
        default=0, ge=0, description="How long a second writer waits for the write lock before failing"
    )
    read_busy_timeout_ms: int = Field(default=30000, ge=0, description="Busy timeout for reader connections")

    # Indexing and querying
    max_term_length: int = Field(default=245, ge=1, le=1024, description="Maximum term length in bytes")
    default_snippet_length: int = Field(default=500, ge=1, description="Default MSet.snippet() length")
    wildcard_max_expansion: int = Field(
        default=0, ge=0, description="Default wildcard expansion limit for QueryParser (0 = unlimited)"
    )

    # Observability
    tracing_enabled: bool = Field(default=True, description="Wrap heavy operations in OpenTelemetry spans")

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        normalized = value.upper()
        if not isinstance(logging.getLevelName(normalized), int):
            raise ValueError(f"Unknown log level '{value}'")
        return normalized


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    get_settings.cache_clear()
