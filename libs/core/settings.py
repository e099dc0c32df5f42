"""Application settings loaded from environment variables."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings for the application."""

    # Deployment mode: "development", "test" or "production".
    environment: str = Field(default="development")
    service_name: str = Field(default="lorelog")
    # Relational store (env: DATABASE_URL). Empty means the local JSON
    # fallback store is used, which is refused in production.
    database_url: str = Field(default="")
    data_dir: Path = Field(default=Path(".local-data"))
    replicate_api_token: str = Field(default="")
    # Embeddings configuration
    embeddings_model: str = Field(default="nomic-ai/nomic-embed-text-v1.5")
    embedding_dim: int = Field(default=768)
    summary_model: str = Field(default="openai/gpt-5-nano")
    prompts_path: Path | None = Field(default=None)
    # Weekly summary requests: log full payloads at INFO, cap the answer length
    llm_log_payloads: bool = Field(default=False)
    llm_max_completion_tokens: int = Field(default=512)
    fetch_timeout: float = Field(default=15.0)
    insights_timezone: str = Field(default="UTC")
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        # Be lenient with env var names (e.g., DATABASE_URL vs database_url)
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    @property
    def db_configured(self) -> bool:
        return bool(self.database_url and self.database_url.strip())


@lru_cache
def get_settings() -> Settings:
    """Return application settings instance."""
    return Settings()


__all__ = ["Settings", "get_settings"]
