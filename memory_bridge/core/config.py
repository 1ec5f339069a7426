"""
Configuration management using Pydantic Settings.

Handles environment variables, validation, and application settings
with proper type checking and default values. A single Settings instance
is built at process start and handed to the application factory.
"""

from enum import Enum
from typing import Optional

from pydantic import Field, validator
from pydantic_settings import BaseSettings


class DuplicatePolicy(str, Enum):
    """
    What an exact duplicate ingest does.

    - reject: report the existing memory and write nothing
    - upsert: refresh the existing memory's metadata and last_updated
    """
    REJECT = "reject"
    UPSERT = "upsert"


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    All settings can be overridden via environment variables
    (case-insensitive) or a local .env file.
    """

    # ================================
    # Database Configuration
    # ================================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./memory_bridge.db",
        description="SQLAlchemy database URL (PostgreSQL or SQLite)"
    )

    # Connection pool settings (PostgreSQL only)
    db_pool_size: int = Field(default=10, description="Database connection pool size")
    db_max_overflow: int = Field(default=20, description="Database max overflow connections")
    db_pool_timeout: int = Field(default=30, description="Database pool timeout")
    db_pool_recycle: int = Field(default=3600, description="Database pool recycle time")

    # ================================
    # Access Control
    # ================================
    bridge_token: str = Field(
        default="change-me",
        description="Shared token required on every non-health route"
    )

    # ================================
    # Deduplication
    # ================================
    duplicate_policy: DuplicatePolicy = Field(
        default=DuplicatePolicy.REJECT,
        description="Exact duplicate handling: reject or upsert"
    )
    semantic_similarity_threshold: float = Field(
        default=0.9,
        ge=-1.0,
        le=1.0,
        description="Cosine similarity above which a memory is a semantic duplicate"
    )
    enable_semantic_dedup: bool = Field(
        default=True,
        description="Run the embedding-based duplicate scan on ingest"
    )

    # ================================
    # Gemini API Configuration
    # ================================
    gemini_api_key: Optional[str] = Field(default=None, description="Google Gemini API key")
    gemini_embedding_model: str = Field(
        default="models/text-embedding-004",
        description="Gemini embedding model"
    )
    gemini_summary_model: str = Field(default="gemini-1.5-flash", description="Gemini summary model")
    gemini_rate_limit_per_minute: int = Field(default=15, ge=1, description="Gemini requests per minute")
    gemini_summary_rate_limit_per_minute: int = Field(
        default=5,
        ge=1,
        description="Gemini summary requests per minute, budgeted apart from embeddings"
    )
    gemini_max_retries: int = Field(default=3, ge=1, description="Gemini API max retries")

    # Local fallback embeddings
    embedding_fallback_model: Optional[str] = Field(
        default=None,
        description="sentence-transformers model used when Gemini is unavailable"
    )

    # ================================
    # Change Stream
    # ================================
    enable_stream_summary: bool = Field(default=True, description="Push AI summaries on the change stream")
    summary_item_count: int = Field(default=25, ge=1, description="Items fed to the summarizer")
    stream_default_limit: int = Field(default=50, ge=1, le=500, description="Default items per stream snapshot")
    stream_interval_seconds: float = Field(default=20.0, gt=0, description="Stream poll interval")

    # ================================
    # Recall
    # ================================
    recall_default_limit: int = Field(default=5, ge=1, le=100, description="Default recall limit")
    list_default_limit: int = Field(default=500, ge=1, description="Limit for /memories/all")
    filter_list_limit: int = Field(default=50, ge=1, description="Limit for by-tag and by-type listings")
    timezone: str = Field(default="UTC", description="IANA time zone that defines 'today'")

    # ================================
    # Input Limits
    # ================================
    max_text_length: int = Field(default=5000, ge=1, description="Maximum memory text length")
    max_query_length: int = Field(default=500, ge=1, description="Maximum recall query length")

    # ================================
    # Application Configuration
    # ================================
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: Optional[str] = Field(default=None, description="Optional log file path")
    redact_internal_errors: bool = Field(
        default=False,
        description="Hide storage error details from API callers"
    )
    cors_origins: str = Field(default="*", description="Comma-separated list of allowed CORS origins")

    api_title: str = Field(default="Memory Bridge API", description="FastAPI application title")
    api_version: str = Field(default="1.0.0", description="API version")
    api_description: str = Field(
        default="Deduplicating memory store and change feed for assistant agents",
        description="API description"
    )

    @validator("database_url")
    def use_async_driver(cls, v):
        """Rewrite plain driver URLs to their asyncio equivalents."""
        if v.startswith("postgres://"):
            v = "postgresql://" + v[len("postgres://"):]
        if v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        if v.startswith("sqlite://"):
            return v.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return v

    @property
    def summary_enabled(self) -> bool:
        return bool(self.gemini_api_key) and self.enable_stream_summary

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


def get_settings() -> Settings:
    """
    Get application settings.

    Returns:
        Settings: Validated application settings

    Example:
        >>> settings = get_settings()
        >>> print(settings.duplicate_policy)
        DuplicatePolicy.REJECT
    """
    return Settings()
