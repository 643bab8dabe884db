"""Main ingestion pipeline orchestrator.

This module provides the IngestionPipeline class which turns a repository
URL into stored repository and commit records: it locates the repository,
guards against double ingestion, lists candidate commits, classifies each
one and persists it (with its diff when it is learning-worthy), reporting
progress through the analysis status in the key-value store.

Commits are processed one at a time in listing order. A failure on one
commit is recorded in ``errors`` and never aborts the batch.
"""

import asyncio
from collections.abc import Callable

import structlog

from core.analysis import CommitClassifier, to_commit_record
from core.errors import RepositoryExistsError, RepositoryNotFoundError
from core.storage import (
    AnalysisState,
    AnalysisStatus,
    Commit,
    CommitDiff,
    DiffFile,
    Repository,
    StorageFacade,
)
from integrations.github import (
    FileStatus,
    GitHubClient,
    GitHubCommit,
    RepoParseResult,
    parse_repository_url,
)

from .models import IngestionOptions, IngestionResult, RefreshResult

logger = structlog.get_logger(__name__)


# Type for progress callback
ProgressCallback = Callable[[int, int, str], None]

DEFAULT_COMMIT_LIMIT = 50
REFRESH_COMMIT_LIMIT = 20

_DIFF_STATUS = {
    FileStatus.ADDED: "added",
    FileStatus.COPIED: "added",
    FileStatus.REMOVED: "removed",
    FileStatus.RENAMED: "renamed",
}


def build_commit_diff(commit: GitHubCommit) -> CommitDiff:
    """Build the stored diff record for a commit detail."""
    return CommitDiff(
        commit_sha=commit.sha,
        files=[
            DiffFile(
                filename=f.filename,
                status=_DIFF_STATUS.get(f.status, "modified"),  # type: ignore[arg-type]
                additions=f.additions,
                deletions=f.deletions,
                patch=f.patch,
            )
            for f in commit.files
        ],
    )


class IngestionPipeline:
    """Orchestrates repository ingestion.

    Attributes:
        github: Source-control client.
        storage: Storage facade.
        classifier: Commit classifier.
    """

    def __init__(
        self,
        github: GitHubClient,
        storage: StorageFacade,
        classifier: CommitClassifier | None = None,
        default_commit_limit: int = DEFAULT_COMMIT_LIMIT,
        refresh_commit_limit: int = REFRESH_COMMIT_LIMIT,
    ) -> None:
        """Initialize the IngestionPipeline.

        Args:
            github: Client used to read the repository.
            storage: Facade over the storage backends.
            classifier: Commit classifier. Creates a default one if not provided.
            default_commit_limit: Candidate limit for ``ingest``.
            refresh_commit_limit: Candidate limit for ``refresh``.
        """
        self.github = github
        self.storage = storage
        self.classifier = classifier or CommitClassifier()
        self.default_commit_limit = default_commit_limit
        self.refresh_commit_limit = refresh_commit_limit
        self._logger = logger.bind(component="ingestion_pipeline")

    async def ingest(
        self,
        url: str,
        options: IngestionOptions | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> IngestionResult:
        """Ingest a repository for the first time.

        Args:
            url: Repository URL in any supported form.
            options: Branch, commit limit and deadline.
            progress_callback: Optional callback for progress updates.
                Called with (current, total, sha) after each commit.

        Returns:
            IngestionResult with the stored repository and commits.

        Raises:
            InvalidRepositoryUrlError: If the URL cannot be parsed.
            RepositoryExistsError: If the repository was already ingested.
            RepositoryNotAccessibleError: If GitHub cannot read the repository.
            TimeoutError: If the deadline in ``options`` expires.
        """
        options = options or IngestionOptions()
        async with asyncio.timeout(options.timeout):
            return await self._ingest(url, options, progress_callback)

    async def _ingest(
        self,
        url: str,
        options: IngestionOptions,
        progress_callback: ProgressCallback | None,
    ) -> IngestionResult:
        locator = parse_repository_url(url).require()
        repo_id = locator.repo_id
        log = self._logger.bind(repo_id=repo_id)

        existing = await self.storage.database.get_repository_by_url(locator.canonical_url)
        if existing is not None:
            raise RepositoryExistsError(f"Repository already exists: {locator.canonical_url}")

        repo_info = await self.github.get_repository(locator.owner or "", locator.name or "")

        repository = await self.storage.database.create_repository(
            Repository(id=repo_id, github_url=locator.canonical_url, name=repo_info.full_name)
        )
        log.info("repository_created", url=locator.canonical_url)

        try:
            await self.storage.kv.set_analysis_status(repo_id, AnalysisState.ANALYZING)
            await self.storage.kv.cache_repo_metadata(repo_id, repo_info.model_dump(mode="json"))

            candidates = await self.github.get_learning_commits(
                locator.owner or "",
                locator.name or "",
                branch=options.branch or repo_info.default_branch,
                limit=options.commit_limit or self.default_commit_limit,
            )
            log.info("candidate_commits_listed", count=len(candidates))

            commits, learning, errors = await self._process_commits(
                locator, candidates, progress_callback
            )

            await self.storage.kv.set_analysis_status(repo_id, AnalysisState.COMPLETED)
        except (Exception, asyncio.CancelledError) as e:
            message = str(e) or type(e).__name__
            log.error("ingestion_failed", error=message)
            try:
                await self.storage.kv.set_analysis_status(repo_id, AnalysisState.ERROR, message)
            except Exception as status_error:
                log.error("analysis_status_write_failed", error=str(status_error))
            raise

        log.info(
            "ingestion_complete",
            stored=len(commits),
            learning_commits=learning,
            total=len(candidates),
            errors=len(errors),
        )

        return IngestionResult(
            repository=repository,
            commits=commits,
            learning_commits=learning,
            total_commits=len(candidates),
            errors=errors,
        )

    async def refresh(
        self,
        repo_id: str,
        options: IngestionOptions | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> RefreshResult:
        """Store commits that appeared since the repository was ingested.

        Only commits whose sha is not already stored are processed. The
        analysis status is left untouched.

        Args:
            repo_id: Repository id (``owner/name``).
            options: Branch, commit limit and deadline.
            progress_callback: Optional callback for progress updates.

        Returns:
            RefreshResult counting unseen and stored commits, with any errors.

        Raises:
            RepositoryNotFoundError: If the repository is not stored.
        """
        options = options or IngestionOptions()
        async with asyncio.timeout(options.timeout):
            repository = await self.storage.database.get_repository(repo_id)
            if repository is None:
                raise RepositoryNotFoundError(f"Repository not found: {repo_id}")

            locator = parse_repository_url(repository.github_url).require()
            known = await self.storage.database.list_commit_shas(repo_id)

            candidates = await self.github.get_learning_commits(
                locator.owner or "",
                locator.name or "",
                branch=options.branch,
                limit=options.commit_limit or self.refresh_commit_limit,
            )
            fresh = [c for c in candidates if c.sha not in known]

            commits, _, errors = await self._process_commits(locator, fresh, progress_callback)

        self._logger.info(
            "refresh_complete",
            repo_id=repo_id,
            candidates=len(candidates),
            new_commits=len(fresh),
            stored=len(commits),
            errors=len(errors),
        )
        return RefreshResult(new_commits=len(fresh), stored_commits=len(commits), errors=errors)

    async def get_status(self, repo_id: str) -> AnalysisStatus | None:
        """Current ingestion status of a repository, if still cached."""
        return await self.storage.kv.get_analysis_status(repo_id)

    async def _process_commits(
        self,
        locator: RepoParseResult,
        candidates: list[GitHubCommit],
        progress_callback: ProgressCallback | None,
    ) -> tuple[list[Commit], int, list[str]]:
        """Store each candidate independently.

        Returns:
            Stored commits in input order, learning-worthy count, and errors.
        """
        commits: list[Commit] = []
        errors: list[str] = []
        learning = 0

        for index, candidate in enumerate(candidates, start=1):
            try:
                record = await self._process_commit(locator, candidate)
            except Exception as e:
                errors.append(f"Failed to store commit {candidate.sha}: {e}")
                self._logger.warning(
                    "commit_store_failed",
                    repo_id=locator.repo_id,
                    sha=candidate.sha,
                    error=str(e),
                )
            else:
                commits.append(record)
                if record.is_learning_worthy:
                    learning += 1

            if progress_callback:
                progress_callback(index, len(candidates), candidate.sha)

        return commits, learning, errors

    async def _process_commit(self, locator: RepoParseResult, candidate: GitHubCommit) -> Commit:
        """Fetch, classify and persist a single commit.

        Listing records carry no file stats, so the detail is fetched first.
        The diff blob is written before the commit row, so a stored
        learning-worthy row always has its diff. If the row cannot be written
        the diff is removed again before the error propagates.
        """
        detail = await self.github.get_commit(
            locator.owner or "", locator.name or "", candidate.sha
        )
        analysis = self.classifier.analyze_commit(detail)
        record = to_commit_record(detail, locator.repo_id, analysis)

        stores_diff = analysis.is_learning_worthy and bool(detail.files)
        if stores_diff:
            await self.storage.blobs.store_commit_diff(locator.repo_id, build_commit_diff(detail))

        try:
            await self.storage.database.create_commit(record)
        except Exception:
            if stores_diff:
                await self._discard_diff(locator.repo_id, detail.sha)
            raise
        self._logger.debug(
            "commit_stored",
            repo_id=locator.repo_id,
            sha=detail.sha,
            category=analysis.category.value,
            learning_worthy=analysis.is_learning_worthy,
        )
        return record

    async def _discard_diff(self, repo_id: str, sha: str) -> None:
        try:
            await self.storage.blobs.delete_commit_diff(repo_id, sha)
        except Exception as e:
            self._logger.error("orphan_diff_left", repo_id=repo_id, sha=sha, error=str(e))
