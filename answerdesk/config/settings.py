"""
Application Settings.

Centralized configuration using Pydantic Settings with environment variable loading.
No external credential is mandatory: without Supabase, Pinecone or Cohere keys the
service runs in offline/dev mode (in-memory store, local pseudo-embeddings, search
reported as unavailable, no reranking).

Production Mode:
    When app_env="production", additional validations apply:
    - debug must be False
    - cors_allowed_origins cannot be ["*"]
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def dedupe_models(models: list[str | None]) -> list[str]:
    """Drop blanks and duplicates, keeping priority order."""
    seen: list[str] = []
    for model in models:
        name = (model or "").strip()
        if name and name not in seen:
            seen.append(name)
    return seen


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Supabase (Canonical Store)
    # -------------------------------------------------------------------------
    supabase_url: str | None = Field(default=None, description="Supabase project URL")
    supabase_key: SecretStr | None = Field(
        default=None, description="Supabase service key"
    )
    supabase_table: str = Field(
        default="qa_pairs",
        description="Table holding knowledge records",
    )

    # -------------------------------------------------------------------------
    # Pinecone (Vector Index)
    # -------------------------------------------------------------------------
    pinecone_api_key: SecretStr | None = Field(default=None, description="Pinecone API key")
    pinecone_index_name: str | None = Field(
        default=None,
        description="Pinecone index name",
    )
    pinecone_host: str | None = Field(
        default=None,
        description="Optional index host, skips the control-plane lookup",
    )
    pinecone_namespace: str = Field(
        default="qa",
        description="Namespace holding knowledge record vectors",
    )

    # -------------------------------------------------------------------------
    # Cohere (Embeddings & Reranking)
    # -------------------------------------------------------------------------
    cohere_api_key: SecretStr | None = Field(
        default=None, description="Cohere API key for embeddings and reranking"
    )
    cohere_embedding_model: str = Field(
        default="embed-multilingual-v3.0",
        description="Cohere embedding model (e.g., embed-english-v3.0, embed-multilingual-v3.0)",
    )
    cohere_embedding_dimension: int = Field(
        default=1024,
        ge=1,
        description="Embedding dimension, also used by the local pseudo-embedding fallback",
    )
    rerank_model: str | None = Field(
        default=None,
        description="Primary rerank model (e.g., rerank-v3.5)",
    )
    rerank_fallback_model: str | None = Field(
        default=None,
        description="Rerank model tried when the primary fails or returns nothing",
    )
    rerank_daily_limit: int | None = Field(
        default=None,
        ge=0,
        description="Advisory daily rerank unit budget, used for reporting only",
    )
    rerank_min_score: float = Field(
        default=0.01,
        ge=0.0,
        description="Top rerank scores below this mean no relevant answer",
    )

    # -------------------------------------------------------------------------
    # Sync Engine
    # -------------------------------------------------------------------------
    sync_max_attempts: int = Field(
        default=3,
        ge=1,
        le=5,
        description="Attempts per record sync before it is marked failed",
    )
    sync_retry_delay_seconds: float = Field(
        default=0.5,
        ge=0.0,
        le=5.0,
        description="Linear backoff unit; attempt N waits N * delay",
    )

    # -------------------------------------------------------------------------
    # Search
    # -------------------------------------------------------------------------
    search_default_top_k: int = Field(default=5, ge=1, le=20)
    search_max_top_k: int = Field(default=20, ge=1, le=20)

    # -------------------------------------------------------------------------
    # Redis (Rerank Usage Counter)
    # -------------------------------------------------------------------------
    redis_url: str | None = Field(default=None, description="Redis connection URL")

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    api_host: str = Field(default="0.0.0.0", description="Bind host for the API server")
    api_port: int = Field(default=8080, ge=1, le=65535, description="Bind port")

    # -------------------------------------------------------------------------
    # CORS Settings
    # -------------------------------------------------------------------------
    cors_allowed_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins. Use ['*'] for development only.",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"

    @property
    def supabase_configured(self) -> bool:
        """Supabase is used as the canonical store only when fully configured."""
        return bool(self.supabase_url and self.supabase_key)

    @property
    def pinecone_configured(self) -> bool:
        """The vector index is available only with both a key and an index name."""
        return bool(self.pinecone_api_key and self.pinecone_index_name)

    @property
    def cohere_configured(self) -> bool:
        return self.cohere_api_key is not None

    @property
    def rerank_models(self) -> list[str]:
        """Rerank models in priority order, blanks and duplicates removed."""
        return dedupe_models([self.rerank_model, self.rerank_fallback_model])

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate that production settings are secure."""
        if self.app_env == "production":
            errors = []

            if self.debug:
                errors.append("debug must be False in production")

            if "*" in self.cors_allowed_origins:
                errors.append("cors_allowed_origins cannot contain '*' in production")

            if errors:
                raise ValueError(
                    f"Production configuration errors: {'; '.join(errors)}"
                )

        return self


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload settings if needed.
    """
    return Settings()
