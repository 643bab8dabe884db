"""Settings management for the onboarding core.

Configuration is loaded from environment variables (and an optional .env
file) using pydantic-settings, with defaults suitable for local development.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Attributes:
        app_name: Name of the application.

        github_token: Optional GitHub token; anonymous access is allowed.
        github_api_url: GitHub REST API base URL.
        github_user_agent: User-Agent sent to GitHub.
        github_timeout: Per-request timeout in seconds.

        database_url: SQLAlchemy URL for the relational store.
        redis_url: Redis URL for the key-value store.
        blob_root: Directory backing the blob store.

        qdrant_url: Qdrant server URL.
        qdrant_api_key: Optional Qdrant API key.
        qdrant_collection: Vector collection name.
        vector_size: Embedding dimension.

        anthropic_api_key: Anthropic API key; tutorials fall back to a
            template when unset.
        llm_model: Model used for tutorial generation.

        default_commit_limit: Candidate commits considered per ingestion.
        refresh_commit_limit: Candidate commits considered per refresh.
        workspace_max_file_size: Largest file included in a workspace.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = Field(default="Codebase Onboarder", description="Application name")

    # GitHub settings
    github_token: str | None = Field(default=None, description="GitHub access token")
    github_api_url: str = Field(
        default="https://api.github.com",
        description="GitHub API base URL",
    )
    github_user_agent: str = Field(
        default="Codebase-Onboarder/1.0",
        description="User-Agent header for GitHub",
    )
    github_timeout: float = Field(default=30.0, description="GitHub request timeout")

    # Storage settings
    database_url: str = Field(
        default="sqlite:///data/onboarder.db",
        description="Relational database URL",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis URL",
    )
    blob_root: str = Field(default="data/blobs", description="Blob store root directory")

    # Qdrant settings
    qdrant_url: str = Field(
        default="http://localhost:6333",
        description="Qdrant server URL",
    )
    qdrant_api_key: str | None = Field(
        default=None,
        description="Optional Qdrant API key",
    )
    qdrant_collection: str = Field(default="onboarder", description="Vector collection")
    vector_size: int = Field(default=768, description="Embedding dimension")

    # LLM settings
    anthropic_api_key: str | None = Field(
        default=None,
        description="Anthropic API key for Claude",
    )
    llm_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Model used for tutorial generation",
    )

    # Pipeline limits
    default_commit_limit: int = Field(default=50, ge=1, description="Ingestion commit limit")
    refresh_commit_limit: int = Field(default=20, ge=1, description="Refresh commit limit")
    workspace_max_file_size: int = Field(
        default=200_000,
        ge=1,
        description="Largest file (bytes) included in a workspace",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        The application settings instance.
    """
    return Settings()
