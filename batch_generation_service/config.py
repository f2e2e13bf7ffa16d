"""Configuration management for the batch generation service."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings using environment variables."""

    model_config = SettingsConfigDict(env_prefix="BATCHGEN_", env_file=".env", env_file_encoding="utf-8")

    # Core service
    environment: str = Field("development", description="Deployment environment name")
    log_level: str = Field("INFO", description="Python logging level")
    log_file: Optional[Path] = Field(None, description="Optional rotating log file")
    data_dir: Path = Field(Path("./data"), description="Directory for batch documents, templates and exports")

    # Persistence
    store_backend: Literal["json", "sql"] = Field("json", description="Batch store implementation")
    database_url: Optional[str] = Field(
        None,
        description="SQLAlchemy async DSN; defaults to a SQLite file inside data_dir",
    )

    # Generation API
    generation_url: str = Field(
        "http://localhost:5000/api/questions/generate",
        description="Endpoint receiving one config payload per request",
    )
    generation_api_key: Optional[str] = Field(None, description="Bearer token sent to the generation API")
    request_timeout_seconds: float = Field(120.0, gt=0, description="HTTP request timeout")

    # Scheduling
    concurrency_limit: int = Field(2, ge=1, description="Max generation calls in flight per batch")
    retry_max_attempts: int = Field(4, ge=1, description="Attempts per config, including the first")
    retry_base_delay_seconds: float = Field(5.0, ge=0.0, description="Linear backoff step between attempts")

    # History
    history_limit: int = Field(20, ge=1, description="Entries kept by the local history sink")

    # Monitoring
    enable_metrics: bool = Field(True, description="Whether to expose Prometheus metrics")

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper() if isinstance(value, str) else value

    @property
    def resolved_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"sqlite+aiosqlite:///{(self.data_dir / 'batches.db').as_posix()}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""

    settings = Settings()
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    return settings


__all__ = ["Settings", "get_settings"]
