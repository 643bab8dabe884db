"""Tests for the ingestion pipeline.

GitHub is an AsyncMock; storage runs on the throwaway backends from
conftest, so persisted rows, diffs and status are checked directly.
"""

import asyncio

import pytest

from core.errors import (
    InvalidRepositoryUrlError,
    RepositoryExistsError,
    RepositoryNotFoundError,
    StorageError,
)
from core.ingestion import IngestionOptions, IngestionPipeline, build_commit_diff
from core.storage import AnalysisState
from integrations.github import FileStatus, GitHubAPIError

from factories import make_commit, make_file, make_sha

URL = "https://github.com/acme/widgets"


def serve_commits(mock_github, details):
    """Make the mock list ``details`` and return each one by sha."""
    by_sha = {d.sha: d for d in details}
    mock_github.get_learning_commits.return_value = [
        d.model_copy(update={"files": []}) for d in details
    ]

    async def get_commit(owner, repo, sha):
        return by_sha[sha]

    mock_github.get_commit.side_effect = get_commit


def fail_once(original, sha_of, sha):
    """Wrap a storage write so that it raises once for ``sha``."""
    failed = []

    async def write(*args):
        if sha_of(*args) == sha and not failed:
            failed.append(sha)
            raise StorageError(f"write failed for {sha}")
        return await original(*args)

    return write


def worthy_commits(count):
    return [
        make_commit(i, "Implement export step", [make_file(f"src/step{i}.py", 40, 2)])
        for i in range(1, count + 1)
    ]


@pytest.fixture
def pipeline(mock_github, storage) -> IngestionPipeline:
    return IngestionPipeline(mock_github, storage)


# =============================================================================
# Ingest Tests
# =============================================================================


class TestIngest:
    """Tests for first-time ingestion."""

    @pytest.mark.asyncio
    async def test_ingest_stores_commits_and_diffs(self, pipeline, mock_github, storage):
        """Every candidate is stored; only worthy ones get a diff."""
        worthy = make_commit(1, "Add session tokens", [make_file("src/tokens.py", 40, 2)])
        tiny = make_commit(2, "Tweak token expiry", [make_file("src/tokens.py", 1, 1)])
        serve_commits(mock_github, [worthy, tiny])

        result = await pipeline.ingest(URL)

        assert result.repository.id == "acme/widgets"
        assert result.repository.github_url == URL
        assert [c.sha for c in result.commits] == [make_sha(1), make_sha(2)]
        assert result.learning_commits == 1
        assert result.total_commits == 2
        assert result.errors == []
        assert result.success_rate == 100.0

        assert await storage.database.list_commit_shas("acme/widgets") == {
            make_sha(1),
            make_sha(2),
        }
        assert await storage.blobs.get_commit_diff("acme/widgets", make_sha(1)) is not None
        assert await storage.blobs.get_commit_diff("acme/widgets", make_sha(2)) is None

        status = await pipeline.get_status("acme/widgets")
        assert status is not None and status.status is AnalysisState.COMPLETED
        assert await storage.kv.get_repo_metadata("acme/widgets") is not None

    @pytest.mark.asyncio
    async def test_ingest_uses_default_branch_and_limit(self, pipeline, mock_github):
        """Without options the default branch and commit limit apply."""
        await pipeline.ingest("git@github.com:acme/widgets.git")

        mock_github.get_learning_commits.assert_awaited_once_with(
            "acme", "widgets", branch="main", limit=50
        )

    @pytest.mark.asyncio
    async def test_ingest_honours_options(self, pipeline, mock_github):
        """Branch and limit from the options are passed through."""
        await pipeline.ingest(URL, IngestionOptions(branch="dev", commit_limit=5))

        mock_github.get_learning_commits.assert_awaited_once_with(
            "acme", "widgets", branch="dev", limit=5
        )

    @pytest.mark.asyncio
    async def test_progress_callback(self, pipeline, mock_github):
        """Progress is reported after every commit."""
        serve_commits(mock_github, [make_commit(1), make_commit(2)])
        calls = []

        await pipeline.ingest(URL, progress_callback=lambda *args: calls.append(args))

        assert calls == [(1, 2, make_sha(1)), (2, 2, make_sha(2))]

    @pytest.mark.asyncio
    async def test_ingest_twice_raises(self, pipeline):
        """The same repository cannot be ingested twice."""
        await pipeline.ingest(URL)
        with pytest.raises(RepositoryExistsError):
            await pipeline.ingest(f"{URL}.git")

    @pytest.mark.asyncio
    async def test_ingest_ignores_owner_case(self, pipeline, storage):
        """A GitHub URL differing only in case is the same repository."""
        await pipeline.ingest(URL)

        with pytest.raises(RepositoryExistsError):
            await pipeline.ingest("https://github.com/Acme/Widgets")
        assert await storage.database.get_repository("Acme/Widgets") is None

    @pytest.mark.asyncio
    async def test_invalid_url(self, pipeline, mock_github):
        """Unparseable URLs fail before any network call."""
        with pytest.raises(InvalidRepositoryUrlError):
            await pipeline.ingest("not a repository")
        mock_github.get_repository.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_commit_failure_is_isolated(self, pipeline, mock_github, storage):
        """A failing commit is recorded and the rest are stored."""
        good = make_commit(1, "Add session tokens", [make_file("src/tokens.py", 40, 2)])
        serve_commits(mock_github, [good, make_commit(2)])
        mock_github.get_commit.side_effect = [good, GitHubAPIError(502, "bad gateway")]

        result = await pipeline.ingest(URL)

        assert [c.sha for c in result.commits] == [make_sha(1)]
        assert len(result.errors) == 1
        assert make_sha(2) in result.errors[0]
        assert result.total_commits == 2
        assert result.success_rate == 50.0
        status = await storage.kv.get_analysis_status("acme/widgets")
        assert status is not None and status.status is AnalysisState.COMPLETED

    @pytest.mark.asyncio
    async def test_commit_row_failure_is_isolated(
        self, pipeline, mock_github, storage, monkeypatch
    ):
        """One failed row write leaves neither a row nor a diff for that commit."""
        serve_commits(mock_github, worthy_commits(3))
        monkeypatch.setattr(
            storage.database,
            "create_commit",
            fail_once(storage.database.create_commit, lambda c: c.sha, make_sha(2)),
        )

        result = await pipeline.ingest(URL)

        assert [c.sha for c in result.commits] == [make_sha(1), make_sha(3)]
        assert len(result.errors) == 1
        assert make_sha(2) in result.errors[0]
        assert result.total_commits == 3
        assert result.learning_commits == 2
        assert await storage.database.list_commit_shas("acme/widgets") == {
            make_sha(1),
            make_sha(3),
        }
        assert await storage.blobs.get_commit_diff("acme/widgets", make_sha(2)) is None
        assert await storage.blobs.get_commit_diff("acme/widgets", make_sha(3)) is not None

    @pytest.mark.asyncio
    async def test_diff_failure_is_isolated(self, pipeline, mock_github, storage, monkeypatch):
        """One failed diff write leaves no row for that commit."""
        serve_commits(mock_github, worthy_commits(3))
        monkeypatch.setattr(
            storage.blobs,
            "store_commit_diff",
            fail_once(storage.blobs.store_commit_diff, lambda _, d: d.commit_sha, make_sha(2)),
        )

        result = await pipeline.ingest(URL)

        assert [c.sha for c in result.commits] == [make_sha(1), make_sha(3)]
        assert len(result.errors) == 1
        assert result.total_commits == 3
        assert make_sha(2) not in await storage.database.list_commit_shas("acme/widgets")
        assert await storage.blobs.get_commit_diff("acme/widgets", make_sha(2)) is None
        status = await storage.kv.get_analysis_status("acme/widgets")
        assert status is not None and status.status is AnalysisState.COMPLETED

    @pytest.mark.asyncio
    async def test_listing_failure_sets_error_status(self, pipeline, mock_github, storage):
        """A failure outside the per-commit loop marks the run failed and re-raises."""
        mock_github.get_learning_commits.side_effect = GitHubAPIError(500, "boom")

        with pytest.raises(GitHubAPIError):
            await pipeline.ingest(URL)

        status = await storage.kv.get_analysis_status("acme/widgets")
        assert status is not None
        assert status.status is AnalysisState.ERROR
        assert "boom" in (status.error_message or "")

    @pytest.mark.asyncio
    async def test_error_status_failure_keeps_original_error(
        self, pipeline, mock_github, storage, monkeypatch
    ):
        """The listing error propagates even when the failed status cannot be saved."""
        mock_github.get_learning_commits.side_effect = GitHubAPIError(500, "boom")
        original = storage.kv.set_analysis_status

        async def set_status(repo_id, status, *args, **kwargs):
            if status is AnalysisState.ERROR:
                raise StorageError("redis down")
            return await original(repo_id, status, *args, **kwargs)

        monkeypatch.setattr(storage.kv, "set_analysis_status", set_status)

        with pytest.raises(GitHubAPIError) as exc_info:
            await pipeline.ingest(URL)
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_deadline(self, pipeline, mock_github):
        """The run is abandoned when the deadline passes."""

        async def slow(*args, **kwargs):
            await asyncio.sleep(1)

        mock_github.get_repository.side_effect = slow

        with pytest.raises(TimeoutError):
            await pipeline.ingest(URL, IngestionOptions(timeout=0.01))


# =============================================================================
# Refresh Tests
# =============================================================================


class TestRefresh:
    """Tests for picking up new commits."""

    @pytest.mark.asyncio
    async def test_refresh_stores_only_new_commits(self, pipeline, mock_github, storage):
        """Already stored shas are skipped."""
        first = [make_commit(1), make_commit(2)]
        serve_commits(mock_github, first)
        await pipeline.ingest(URL)

        serve_commits(mock_github, [make_commit(3), *first])
        result = await pipeline.refresh("acme/widgets")

        assert result.new_commits == 1
        assert result.stored_commits == 1
        assert result.errors == []
        assert make_sha(3) in await storage.database.list_commit_shas("acme/widgets")
        mock_github.get_learning_commits.assert_awaited_with(
            "acme", "widgets", branch=None, limit=20
        )

    @pytest.mark.asyncio
    async def test_refresh_counts_unstored_commits(
        self, pipeline, mock_github, storage, monkeypatch
    ):
        """A new commit that fails to store is counted as new but not stored."""
        first = worthy_commits(1)
        serve_commits(mock_github, first)
        await pipeline.ingest(URL)

        later = make_commit(9, "Implement import step", [make_file("src/import.py", 40, 2)])
        serve_commits(mock_github, [later, *first])
        monkeypatch.setattr(
            storage.database,
            "create_commit",
            fail_once(storage.database.create_commit, lambda c: c.sha, make_sha(9)),
        )
        result = await pipeline.refresh("acme/widgets")

        assert result.new_commits == 1
        assert result.stored_commits == 0
        assert len(result.errors) == 1
        assert await storage.blobs.get_commit_diff("acme/widgets", make_sha(9)) is None

    @pytest.mark.asyncio
    async def test_refresh_unknown_repository(self, pipeline):
        """Refreshing a repository that was never ingested is an error."""
        with pytest.raises(RepositoryNotFoundError):
            await pipeline.refresh("acme/missing")


# =============================================================================
# Diff Tests
# =============================================================================


class TestBuildCommitDiff:
    """Tests for the stored diff record."""

    def test_status_mapping(self):
        """Copied files count as added; unknown statuses as modified."""
        commit = make_commit(
            1,
            files=[
                make_file("a.py", status=FileStatus.ADDED),
                make_file("b.py", status=FileStatus.COPIED),
                make_file("c.py", status=FileStatus.REMOVED),
                make_file("d.py", status=FileStatus.RENAMED),
                make_file("e.py", status=FileStatus.CHANGED),
            ],
        )

        diff = build_commit_diff(commit)

        assert diff.commit_sha == make_sha(1)
        assert [f.status for f in diff.files] == [
            "added",
            "added",
            "removed",
            "renamed",
            "modified",
        ]
        assert diff.files[0].additions == 10
