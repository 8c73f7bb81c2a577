"""Environment-based settings for storage-exchange."""

from __future__ import annotations

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = ["StorageExchangeSettings"]


class StorageExchangeSettings(BaseSettings):
    """Runtime settings loaded from STORAGE_EXCHANGE_* environment variables.

    Example:
        >>> # STORAGE_EXCHANGE_CONFIG_PATH=./config/storage.yaml
        >>> # STORAGE_EXCHANGE_ENVIRONMENT=development
        >>> settings = StorageExchangeSettings()
        >>> settings.environment
        'development'
    """

    config_path: str = Field(default="storage.yaml", description="Storage configuration file")
    environment: Optional[str] = Field(default=None, description="Overlay name, e.g. 'development'")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="human", description="Log format: 'json' or 'human'")
    log_file: Optional[str] = Field(default=None, description="Optional log file path")
    max_concurrency: int = Field(default=8, ge=1, le=256, description="Concurrent file copies")
    chunk_size: int = Field(default=1024 * 1024, ge=1, description="Bytes per streamed chunk")

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_EXCHANGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level is a known value."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate format is a known value."""
        valid_formats = ["json", "human"]
        if v.lower() not in valid_formats:
            raise ValueError(f"log_format must be one of: {valid_formats}")
        return v.lower()
