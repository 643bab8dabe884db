"""Read-only GitHub REST client.

Covers what ingestion and tutorial generation read from GitHub: repository
metadata, commit listings and details, recursive trees and file contents.
Nothing here is retried; callers decide how to degrade.
"""

import base64
import binascii
from datetime import datetime
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field

from core.errors import ExternalServiceError

from .models import GitHubCommit, GitHubRepository, RepositoryStats, TreeEntry

logger = structlog.get_logger(__name__)

MAX_PER_PAGE = 100

_MERGE_WORDS = ("pull request", "branch")
_DEPENDENCY_WORDS = ("dependency", "package")
_FORMATTING_WORDS = ("format", "style", "lint")


class GitHubAPIError(ExternalServiceError):
    """GitHub returned a non-2xx response."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"GitHub API error ({status_code}): {body}")
        self.status_code = status_code
        self.body = body


class RepositoryNotAccessibleError(GitHubAPIError):
    """Repository does not exist or the token cannot read it."""

    pass


class NotAFileError(ExternalServiceError):
    """Contents endpoint returned something other than a file."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Path is not a file: {path}")
        self.path = path


class GitHubClientConfig(BaseModel):
    """Connection settings for ``GitHubClient``."""

    model_config = ConfigDict(frozen=True)

    access_token: str | None = Field(None, description="Token; anonymous when unset")
    base_url: str = Field(default="https://api.github.com", description="REST root")
    user_agent: str = Field(default="Codebase-Onboarder/1.0", description="User-Agent header")
    timeout: float = Field(default=30.0, gt=0, description="Seconds per request")


def is_learning_candidate(commit: GitHubCommit) -> bool:
    """Cheap message-only check for commits worth teaching from.

    Rejects merges of branches or pull requests, messages under ten
    characters, dependency bumps and formatting-only commits.
    """
    message = commit.message.lower()
    if len(commit.message) < 10:
        return False
    if "merge" in message and any(w in message for w in _MERGE_WORDS):
        return False
    if "update" in message and any(w in message for w in _DEPENDENCY_WORDS):
        return False
    return not any(w in message for w in _FORMATTING_WORDS)


class GitHubClient:
    """Async client for the handful of GitHub endpoints the onboarder uses.

    Anonymous use works under GitHub's lower rate limit. Any non-2xx
    response raises ``GitHubAPIError`` with the status code and body.

    Example:
        async with GitHubClient(GitHubClientConfig(access_token=token)) as gh:
            commit = await gh.get_commit("acme", "widgets", sha)
    """

    def __init__(
        self,
        config: GitHubClientConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Create a client.

        Args:
            config: Connection settings; anonymous defaults when omitted.
            http_client: HTTP client to use instead of a lazily built one.
        """
        self.config = config or GitHubClientConfig()
        self._http = http_client
        self._logger = logger.bind(component="github_client")

    async def __aenter__(self) -> "GitHubClient":
        self._connection()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    @property
    def headers(self) -> dict[str, str]:
        """Headers sent with every request."""
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": self.config.user_agent,
        }
        if self.config.access_token:
            headers["Authorization"] = f"Bearer {self.config.access_token}"
        return headers

    def _connection(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.config.timeout)
        return self._http

    async def close(self) -> None:
        """Release the connection pool; the client reconnects on next use."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def _get(self, path: str, **params: Any) -> Any:
        """GET ``path`` and return the decoded JSON body.

        Params whose value is None are left out of the query string.

        Raises:
            GitHubAPIError: If the response status is not 2xx.
        """
        query = {key: value for key, value in params.items() if value is not None}
        response = await self._connection().get(
            f"{self.config.base_url}{path}",
            params=query or None,
            headers=self.headers,
        )
        if not response.is_success:
            self._logger.warning("github_request_failed", path=path, status=response.status_code)
            raise GitHubAPIError(response.status_code, response.text)
        return response.json()

    # Repositories

    async def get_repository(self, owner: str, repo: str) -> GitHubRepository:
        """Fetch repository metadata.

        Raises:
            RepositoryNotAccessibleError: If the repository cannot be read.
        """
        try:
            data = await self._get(f"/repos/{owner}/{repo}")
        except GitHubAPIError as e:
            raise RepositoryNotAccessibleError(e.status_code, e.body) from e
        return GitHubRepository.from_api(data)

    async def is_accessible(self, owner: str, repo: str) -> bool:
        """True if the repository metadata can be fetched."""
        try:
            await self.get_repository(owner, repo)
        except Exception as e:
            self._logger.debug("repository_not_accessible", owner=owner, repo=repo, error=str(e))
            return False
        return True

    async def get_repository_stats(self, owner: str, repo: str) -> RepositoryStats:
        """Summarise a repository without raising.

        Any failure is reported as ``accessible=False``.
        """
        try:
            repository = await self.get_repository(owner, repo)
            newest = await self.list_commits(owner, repo, per_page=1)
        except Exception as e:
            self._logger.debug("repository_stats_failed", owner=owner, repo=repo, error=str(e))
            return RepositoryStats(accessible=False)

        return RepositoryStats(
            accessible=True,
            default_branch=repository.default_branch,
            description=repository.description,
            has_commits=bool(newest),
        )

    # Commits

    async def list_commits(
        self,
        owner: str,
        repo: str,
        branch: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        per_page: int = 30,
        page: int = 1,
    ) -> list[GitHubCommit]:
        """List one page of commits, newest first.

        Args:
            owner: Repository owner.
            repo: Repository name.
            branch: Branch or sha to walk back from; the default branch if None.
            since: Lower bound on commit time.
            until: Upper bound on commit time.
            per_page: Page size, clamped to 1..100.
            page: 1-based page number.

        Returns:
            Commits without file details.
        """
        data = await self._get(
            f"/repos/{owner}/{repo}/commits",
            sha=branch,
            since=since.isoformat() if since else None,
            until=until.isoformat() if until else None,
            per_page=min(max(per_page, 1), MAX_PER_PAGE),
            page=max(page, 1),
        )
        return [GitHubCommit.from_api(item) for item in data]

    async def get_commit(self, owner: str, repo: str, sha: str) -> GitHubCommit:
        """Fetch one commit with its changed files and parents."""
        return GitHubCommit.from_api(await self._get(f"/repos/{owner}/{repo}/commits/{sha}"))

    def filter_learning_commits(self, commits: list[GitHubCommit]) -> list[GitHubCommit]:
        """Keep the commits that pass ``is_learning_candidate``, in order.

        The classifier makes the real decision later from file stats.
        """
        return [c for c in commits if is_learning_candidate(c)]

    async def get_learning_commits(
        self,
        owner: str,
        repo: str,
        branch: str | None = None,
        limit: int = 20,
    ) -> list[GitHubCommit]:
        """Newest pre-filtered candidates, at most ``limit`` of them.

        Twice the limit is listed (one page of at most 100) so that the
        message filter still leaves enough behind.
        """
        listed = await self.list_commits(
            owner, repo, branch=branch, per_page=min(limit * 2, MAX_PER_PAGE)
        )
        candidates = self.filter_learning_commits(listed)[:limit]
        self._logger.debug(
            "learning_commits_listed",
            repo=f"{owner}/{repo}",
            fetched=len(listed),
            kept=len(candidates),
        )
        return candidates

    # Trees and contents

    async def get_tree(self, owner: str, repo: str, ref: str) -> list[TreeEntry]:
        """Every entry reachable from ``ref``, directories included.

        GitHub truncates very large trees; that is logged, not raised.
        """
        data = await self._get(f"/repos/{owner}/{repo}/git/trees/{ref}", recursive="1")
        if data.get("truncated"):
            self._logger.warning("tree_truncated", repo=f"{owner}/{repo}", ref=ref)
        return [TreeEntry.from_api(item) for item in data.get("tree", [])]

    async def get_file_content(
        self, owner: str, repo: str, path: str, ref: str | None = None
    ) -> str:
        """Text of one file at ``ref``.

        Base64 bodies are decoded as UTF-8. Bodies that are not valid UTF-8
        are decoded as latin-1, which maps each byte to one character, so
        ``content.encode("latin-1")`` gives back the exact bytes.

        Raises:
            NotAFileError: If the path is a directory, symlink or submodule.
            ExternalServiceError: If the base64 body is corrupt.
        """
        data = await self._get(f"/repos/{owner}/{repo}/contents/{path}", ref=ref)
        if not isinstance(data, dict) or data.get("type") != "file":
            raise NotAFileError(path)

        body = data.get("content") or ""
        if data.get("encoding") != "base64":
            return str(body)
        try:
            raw = base64.b64decode(body.replace("\n", ""))
        except (binascii.Error, ValueError) as e:
            raise ExternalServiceError(f"Malformed base64 content for {path}: {e}") from e
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            self._logger.debug("file_content_not_utf8", repo=f"{owner}/{repo}", path=path)
            return raw.decode("latin-1")
