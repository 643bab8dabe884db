"""Ingestion module for GitHub repositories.

This module turns a repository URL into stored repository and commit
records, keeping diffs for the commits worth teaching from.

Example:
    >>> from core.ingestion import IngestionPipeline, IngestionOptions
    >>> pipeline = IngestionPipeline(github, storage)
    >>> result = await pipeline.ingest("https://github.com/owner/repo")
    >>> print(f"Stored {len(result.commits)} of {result.total_commits} commits")

    >>> # Pick up new commits later
    >>> refreshed = await pipeline.refresh("owner/repo")
"""

from .models import IngestionOptions, IngestionResult, RefreshResult
from .pipeline import IngestionPipeline, ProgressCallback, build_commit_diff

__all__ = [
    # Main pipeline
    "IngestionPipeline",
    "ProgressCallback",
    "build_commit_diff",
    # Models
    "IngestionOptions",
    "IngestionResult",
    "RefreshResult",
]
