"""Pydantic models for the ingestion module.

This module defines the options accepted by an ingestion or refresh run
and the results they report back.
"""

from pydantic import BaseModel, ConfigDict, Field

from core.storage.models import Commit, Repository


class IngestionOptions(BaseModel):
    """Options for ingesting or refreshing a repository.

    Attributes:
        branch: Branch to read commits from; defaults to the repository's
            default branch.
        commit_limit: Maximum number of candidate commits to process.
        timeout: Deadline in seconds for the whole run, or None.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    branch: str | None = Field(None, description="Branch to read commits from")
    commit_limit: int | None = Field(None, ge=1, le=100, description="Candidate commit limit")
    timeout: float | None = Field(None, gt=0, description="Run deadline in seconds")


class IngestionResult(BaseModel):
    """Result of ingesting a repository.

    Attributes:
        repository: Stored repository record.
        commits: Stored commits, in listing order (newest first).
        learning_commits: How many stored commits were learning-worthy.
        total_commits: How many candidate commits were considered.
        errors: One message per commit that failed to store.
    """

    repository: Repository = Field(..., description="Stored repository")
    commits: list[Commit] = Field(default_factory=list, description="Stored commits")
    learning_commits: int = Field(default=0, ge=0, description="Learning-worthy commits")
    total_commits: int = Field(default=0, ge=0, description="Candidate commits")
    errors: list[str] = Field(default_factory=list, description="Per-commit failures")

    @property
    def success_rate(self) -> float:
        """Percentage of candidate commits stored without errors."""
        if self.total_commits == 0:
            return 100.0
        return (len(self.commits) / self.total_commits) * 100.0


class RefreshResult(BaseModel):
    """Result of refreshing an ingested repository.

    Attributes:
        new_commits: How many listed commits were not stored yet, whether or
            not storing them succeeded.
        stored_commits: How many of those were stored.
        errors: One message per commit that failed to store.
    """

    new_commits: int = Field(default=0, ge=0, description="Previously unseen commits")
    stored_commits: int = Field(default=0, ge=0, description="Unseen commits now stored")
    errors: list[str] = Field(default_factory=list, description="Per-commit failures")
