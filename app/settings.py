"""Centralized pipeline settings using pydantic-settings."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pipeline configuration shared by the worker and the API."""

    model_config = SettingsConfigDict(
        env_prefix="IMGGO_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service settings
    service_name: str = Field(default="imggo", description="Service name attached to log records")
    debug: bool = Field(default=False, description="Include exception details in API errors")
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=False, description="Emit bare JSON log lines")
    log_dir: Path | None = Field(default=None, description="Optional directory for rotating log files")
    api_prefix: str = Field(default="/v1", description="Route prefix of the polling API")

    # Storage settings
    data_dir: Path = Field(default_factory=lambda: Path.cwd() / "data", description="Local data directory")
    db_url: str | None = Field(default=None, description="Job store URL (defaults to SQLite in data_dir)")

    # Queue settings
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis connection URL")
    queue_name: str = Field(default="ingest_jobs", description="Queue key prefix")
    batch_size: int = Field(default=5, ge=1, le=100, description="Messages leased per iteration")
    visibility_timeout_seconds: int = Field(
        default=300, ge=1, description="Lease length; must cover the slowest inference call"
    )
    poll_interval_seconds: float = Field(default=2.0, ge=0.0, description="Sleep between empty polls")
    max_backoff_seconds: int = Field(default=30, ge=1, description="Ceiling for queue outage backoff")
    parallel_batch: bool = Field(default=True, description="Process leased messages concurrently")

    # Inference settings
    llm_endpoint: str = Field(default="https://api.openai.com", description="OpenAI-compatible endpoint")
    llm_model: str = Field(default="gpt-4o-2024-08-06", description="Vision model identifier")
    llm_api_key: str | None = Field(default=None, description="Bearer token for the endpoint")
    llm_timeout_seconds: int = Field(default=120, ge=1, description="Inference request timeout")
    llm_max_tokens: int = Field(default=4000, ge=1, description="Maximum response tokens")
    llm_temperature: float = Field(default=0.2, ge=0.0, le=2.0, description="Sampling temperature")
    llm_max_attempts: int = Field(
        default=1, ge=1, le=5, description="Transport-level attempts per inference call"
    )
    llm_image_detail: str = Field(default="high", description="image_url detail hint")

    # Webhook settings
    webhook_timeout_seconds: float = Field(default=30.0, gt=0, description="Per-delivery timeout")
    webhook_user_agent: str = Field(default="ImgGo-Webhook/1.0", description="User-Agent for deliveries")

    def get_db_url(self) -> str:
        """Get the job store URL, with fallback to the default SQLite location."""
        if self.db_url:
            return self.db_url
        return f"sqlite:///{self.data_dir / 'imggo.db'}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()
