"""GitHub integration for the onboarder.

This module provides:
- Repository URL parsing
- An async GitHub API client for repositories, commits, trees and contents
- Pydantic models for the GitHub entities it returns
"""

from .client import (
    GitHubAPIError,
    GitHubClient,
    GitHubClientConfig,
    NotAFileError,
    RepositoryNotAccessibleError,
    is_learning_candidate,
)
from .locator import RepoParseResult, parse_repository_url
from .models import (
    CommitAuthor,
    FileStatus,
    GitHubCommit,
    GitHubFile,
    GitHubRepository,
    GitHubUser,
    RepositoryStats,
    TreeEntry,
    TreeEntryType,
)

__all__ = [
    # Client
    "GitHubClient",
    "GitHubClientConfig",
    "GitHubAPIError",
    "RepositoryNotAccessibleError",
    "NotAFileError",
    "is_learning_candidate",
    # Locator
    "RepoParseResult",
    "parse_repository_url",
    # Models
    "CommitAuthor",
    "FileStatus",
    "GitHubCommit",
    "GitHubFile",
    "GitHubRepository",
    "GitHubUser",
    "RepositoryStats",
    "TreeEntry",
    "TreeEntryType",
]
