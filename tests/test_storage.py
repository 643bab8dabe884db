"""Tests for the storage layer."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from core.errors import (
    CommitExistsError,
    RepositoryExistsError,
    SessionNotFoundError,
    StorageError,
)
from core.storage import (
    AnalysisState,
    BlobStore,
    Commit,
    CommitDiff,
    DiffFile,
    FilesystemBackend,
    KeyValueStore,
    LearnerSession,
    LearnerWorkspace,
    Repository,
    SessionState,
    StorageFacade,
    Tutorial,
    TutorialContent,
    TutorialStep,
)
from core.storage.blob import validate_key
from core.storage.kv import ANALYSIS_TTL, CONVERSATION_LIMIT, SESSION_TTL, TUTORIAL_TTL
from core.storage.models import ConversationMessage
from core.storage.vector import CodeEmbedding, EmbeddingNotFoundError, VectorRecord

from factories import make_sha


def make_repository(repo_id: str = "acme/widgets") -> Repository:
    return Repository(id=repo_id, github_url=f"https://github.com/{repo_id}", name=repo_id)


def make_commit_row(seed: int, repo_id: str = "acme/widgets", day: int = 1) -> Commit:
    sha = make_sha(seed)
    return Commit(
        id=f"{repo_id}:{sha}",
        repo_id=repo_id,
        sha=sha,
        message=f"Add feature {seed}",
        author="Ada Lovelace",
        date=datetime(2024, 1, day, tzinfo=UTC),
        is_learning_worthy=True,
    )


def make_content(tutorial_id: str) -> TutorialContent:
    return TutorialContent(
        tutorial_id=tutorial_id,
        steps=[TutorialStep(id="s1", title="Understand the Changes")],
        parent_sha=make_sha(99),
    )


# =============================================================================
# Relational Store Tests
# =============================================================================


class TestRelationalStore:
    """Tests for the SQLite-backed relational store."""

    @pytest.mark.asyncio
    async def test_repository_round_trip(self, database):
        """Repositories are readable by id and by URL."""
        await database.create_repository(make_repository())

        by_id = await database.get_repository("acme/widgets")
        by_url = await database.get_repository_by_url("https://github.com/acme/widgets")

        assert by_id is not None and by_id.name == "acme/widgets"
        assert by_url is not None and by_url.id == "acme/widgets"
        assert await database.get_repository("acme/missing") is None

    @pytest.mark.asyncio
    async def test_list_repositories_newest_first(self, database):
        """Repositories are listed by ingestion time, newest first."""
        for day, repo_id in enumerate(["acme/old", "acme/mid", "acme/new"], start=1):
            await database.create_repository(
                make_repository(repo_id).model_copy(
                    update={"created_at": datetime(2024, 2, day, tzinfo=UTC)}
                )
            )

        assert [r.id for r in await database.list_repositories()] == [
            "acme/new",
            "acme/mid",
            "acme/old",
        ]
        assert [r.id for r in await database.list_repositories(limit=1)] == ["acme/new"]

    @pytest.mark.asyncio
    async def test_duplicate_repository_raises(self, database):
        """A second insert of the same repository is rejected."""
        await database.create_repository(make_repository())
        with pytest.raises(RepositoryExistsError):
            await database.create_repository(make_repository())

    @pytest.mark.asyncio
    async def test_duplicate_commit_raises(self, database):
        """Commit ids are unique."""
        await database.create_repository(make_repository())
        await database.create_commit(make_commit_row(1))
        with pytest.raises(CommitExistsError):
            await database.create_commit(make_commit_row(1))

    @pytest.mark.asyncio
    async def test_commits_newest_first_with_limit(self, database):
        """Commits are listed by date descending and truncated to the limit."""
        await database.create_repository(make_repository())
        for seed, day in [(1, 3), (2, 9), (3, 5)]:
            await database.create_commit(make_commit_row(seed, day=day))

        commits = await database.get_commits_by_repo("acme/widgets", limit=2)

        assert [c.sha for c in commits] == [make_sha(2), make_sha(3)]
        assert await database.list_commit_shas("acme/widgets") == {
            make_sha(1),
            make_sha(2),
            make_sha(3),
        }
        assert await database.get_commits_by_repo("acme/other") == []

    @pytest.mark.asyncio
    async def test_tutorials_by_repo(self, database):
        """Tutorials are found through their commit's repository."""
        await database.create_repository(make_repository())
        await database.create_repository(make_repository("acme/gadgets"))
        mine = make_commit_row(1)
        other = make_commit_row(2, repo_id="acme/gadgets")
        await database.create_commit(mine)
        await database.create_commit(other)
        tutorial = await database.create_tutorial(Tutorial(commit_id=mine.id, title="Mine"))
        await database.create_tutorial(Tutorial(commit_id=other.id, title="Other"))

        found = await database.get_tutorials_by_repo("acme/widgets")

        assert [t.id for t in found] == [tutorial.id]
        assert [t.id for t in await database.get_tutorials_by_commit(mine.id)] == [tutorial.id]

    @pytest.mark.asyncio
    async def test_session_progress_and_completion(self, database):
        """Session updates are persisted."""
        await database.create_repository(make_repository())
        commit = await database.create_commit(make_commit_row(1))
        tutorial = await database.create_tutorial(Tutorial(commit_id=commit.id, title="T"))
        session = await database.create_session(LearnerSession(tutorial_id=tutorial.id))

        await database.update_session_progress(session.id, 2)
        await database.complete_session(session.id)

        stored = await database.get_session(session.id)
        assert stored is not None
        assert stored.current_step == 2
        assert stored.is_completed

    @pytest.mark.asyncio
    async def test_update_missing_session_raises(self, database):
        """Updating an unknown session is an error."""
        with pytest.raises(SessionNotFoundError):
            await database.update_session_progress("missing", 1)

    @pytest.mark.asyncio
    async def test_health_check(self, database):
        """A live database reports healthy."""
        assert await database.health_check()


# =============================================================================
# Key-Value Store Tests
# =============================================================================


class TestKeyValueStore:
    """Tests for TTL-bearing transient state."""

    @pytest.fixture
    def kv(self, kv_backend) -> KeyValueStore:
        return KeyValueStore(kv_backend)

    @pytest.mark.asyncio
    async def test_analysis_status_keeps_start_time(self, kv, kv_backend):
        """Later writes update the state but keep started_at."""
        first = await kv.set_analysis_status("acme/widgets", AnalysisState.ANALYZING)
        second = await kv.set_analysis_status(
            "acme/widgets", AnalysisState.ERROR, error_message="boom"
        )

        stored = await kv.get_analysis_status("acme/widgets")
        assert stored is not None
        assert stored.status is AnalysisState.ERROR
        assert stored.error_message == "boom"
        assert second.started_at == first.started_at
        assert kv_backend.ttl("analysis:acme/widgets") == pytest.approx(ANALYSIS_TTL, abs=5)

    @pytest.mark.asyncio
    async def test_session_state_ttl(self, kv, kv_backend):
        """Session state expires after eight hours."""
        await kv.set_session_state(SessionState(session_id="s1", tutorial_id="t1"))

        state = await kv.get_session_state("s1")
        assert state is not None and state.tutorial_id == "t1"
        assert kv_backend.ttl("session:s1") == pytest.approx(SESSION_TTL, abs=5)

    @pytest.mark.asyncio
    async def test_tutorial_cache(self, kv, kv_backend):
        """Tutorial content is cached for a week and can be evicted."""
        await kv.cache_tutorial_content(make_content("t1"))

        cached = await kv.get_cached_tutorial_content("t1")
        assert cached is not None and cached.steps[0].id == "s1"
        assert kv_backend.ttl("tutorial:t1") == pytest.approx(TUTORIAL_TTL, abs=5)

        await kv.delete_cached_tutorial_content("t1")
        assert await kv.get_cached_tutorial_content("t1") is None

    @pytest.mark.asyncio
    async def test_conversation_is_capped(self, kv):
        """Only the most recent turns are kept."""
        for i in range(CONVERSATION_LIMIT + 5):
            await kv.add_conversation_message(
                "s1", ConversationMessage(role="user", content=f"q{i}")
            )

        history = await kv.get_conversation("s1")
        assert len(history) == CONVERSATION_LIMIT
        assert history[0].content == "q5"
        assert history[-1].content == f"q{CONVERSATION_LIMIT + 4}"

    @pytest.mark.asyncio
    async def test_rate_limit_window_starts_at_first_hit(self, kv, kv_backend):
        """The first hit sets the window; later hits only count."""
        assert await kv.increment_rate_limit("ip:1", window=60) == 1
        assert await kv.increment_rate_limit("ip:1", window=60) == 2
        assert await kv.get_rate_limit("ip:1") == 2
        assert await kv.get_rate_limit("ip:2") == 0
        assert kv_backend.ttl("rate:ip:1") == pytest.approx(60, abs=5)

    @pytest.mark.asyncio
    async def test_delete_session_state_drops_conversation(self, kv):
        """Session cleanup removes quick state and conversation memory."""
        await kv.set_session_state(SessionState(session_id="s1", tutorial_id="t1"))
        await kv.add_conversation_message("s1", ConversationMessage(role="user", content="hi"))

        await kv.delete_session_state("s1")

        assert await kv.get_session_state("s1") is None
        assert await kv.get_conversation("s1") == []


# =============================================================================
# Blob Store Tests
# =============================================================================


class TestBlobStore:
    """Tests for keyed blob storage."""

    @pytest.fixture
    def blobs(self, object_backend) -> BlobStore:
        return BlobStore(object_backend)

    @pytest.mark.parametrize("key", ["", "/etc/passwd", "repos/../secret", "a//b", "a\\b"])
    def test_validate_key_rejects_unsafe_keys(self, key):
        """Empty, absolute and traversing keys are rejected."""
        with pytest.raises(StorageError):
            validate_key(key)

    @pytest.mark.asyncio
    async def test_commit_diff_round_trip(self, blobs):
        """Diffs are stored under the repository prefix."""
        diff = CommitDiff(
            commit_sha=make_sha(1),
            files=[DiffFile(filename="src/a.py", status="modified", additions=3)],
        )
        await blobs.store_commit_diff("acme/widgets", diff)

        assert await blobs.get_commit_diff("acme/widgets", make_sha(1)) == diff
        assert await blobs.list_keys("repos/acme/widgets/") == [
            f"repos/acme/widgets/diffs/{make_sha(1)}.json"
        ]

    @pytest.mark.asyncio
    async def test_delete_commit_diff(self, blobs):
        """Deleting a diff removes only that commit's object."""
        for seed in (1, 2):
            await blobs.store_commit_diff("acme/widgets", CommitDiff(commit_sha=make_sha(seed)))

        await blobs.delete_commit_diff("acme/widgets", make_sha(1))

        assert await blobs.get_commit_diff("acme/widgets", make_sha(1)) is None
        assert await blobs.get_commit_diff("acme/widgets", make_sha(2)) is not None

    @pytest.mark.asyncio
    async def test_delete_prefix_leaves_siblings(self, blobs):
        """Prefix deletion removes exactly the objects under the prefix."""
        await blobs.put("repos/acme/widgets/diffs/a.json", "{}")
        await blobs.put("repos/acme/widgets/diffs/b.json", "{}")
        await blobs.put("repos/acme/widgets-2/diffs/c.json", "{}")

        deleted = await blobs.delete_repo_data("acme/widgets")

        assert deleted == 2
        assert await blobs.list_keys("repos/") == ["repos/acme/widgets-2/diffs/c.json"]

    @pytest.mark.asyncio
    async def test_delete_prefix_requires_trailing_slash(self, blobs):
        """A prefix without a trailing slash would also match siblings."""
        with pytest.raises(StorageError):
            await blobs.delete_prefix("repos/acme/widgets")

    @pytest.mark.asyncio
    async def test_snapshots_and_artifacts(self, blobs):
        """Archives and step artifacts are stored as raw bytes under their prefixes."""
        await blobs.store_repo_snapshot("acme/widgets", "main", make_sha(1), b"\x1f\x8b")
        await blobs.store_tutorial_artifact("t1", "s1", "diagram.txt", "a -> b")
        await blobs.store_tutorial_content(make_content("t1"))

        assert await blobs.get_repo_snapshot("acme/widgets", "main", make_sha(1)) == b"\x1f\x8b"
        assert await blobs.get_repo_snapshot("acme/widgets", "dev", make_sha(1)) is None
        assert await blobs.get_tutorial_artifact("t1", "s1", "diagram.txt") == b"a -> b"

        assert await blobs.delete_tutorial_data("t1") == 2
        assert await blobs.get_tutorial_artifact("t1", "s1", "diagram.txt") is None

    @pytest.mark.asyncio
    async def test_learner_workspace_is_replaced(self, blobs):
        """Saving a step again replaces the earlier save."""
        await blobs.save_learner_workspace(
            LearnerWorkspace(session_id="s1", step_id="st1", files={"a.py": "1"})
        )
        await blobs.save_learner_workspace(
            LearnerWorkspace(session_id="s1", step_id="st1", files={"a.py": "2"})
        )

        workspace = await blobs.get_learner_workspace("s1", "st1")
        assert workspace is not None and workspace.files == {"a.py": "2"}

    @pytest.mark.asyncio
    async def test_filesystem_backend(self, tmp_path):
        """The filesystem backend writes one file per key."""
        blobs = BlobStore(FilesystemBackend(tmp_path))
        await blobs.store_tutorial_content(make_content("t1"))

        assert (tmp_path / "tutorials" / "t1" / "content.json").is_file()
        content = await blobs.get_tutorial_content("t1")
        assert content is not None and content.parent_sha == make_sha(99)
        assert await blobs.list_keys("tutorials/") == ["tutorials/t1/content.json"]
        assert await blobs.health_check()

        assert await blobs.delete_tutorial_data("t1") == 1
        assert await blobs.get_tutorial_content("t1") is None


# =============================================================================
# Vector Index Tests
# =============================================================================


class TestVectorIndex:
    """Tests for the Qdrant-backed vector index."""

    @pytest.mark.asyncio
    async def test_upsert_in_batches(self, vectors):
        """Records beyond the batch size are all stored."""
        records = [
            VectorRecord(id=f"item-{i}", values=[1.0, float(i), 0.0, 0.0], metadata={"n": i})
            for i in range(5)
        ]

        assert await vectors.upsert(records) == 5
        assert (await vectors.get_index_stats())["count"] == 5
        stored = await vectors.get_by_id("item-3")
        assert stored is not None and stored.metadata["n"] == 3

    @pytest.mark.asyncio
    async def test_search_filters_by_repository(self, vectors):
        """Commit search honours the repository filter."""
        await vectors.store_commit_embedding("acme/widgets", make_sha(1), [1, 0, 0, 0], "a", "ada")
        await vectors.store_commit_embedding("acme/gadgets", make_sha(2), [1, 0, 0, 0], "b", "ada")

        matches = await vectors.search_similar_commits([1, 0, 0, 0], repo_id="acme/widgets")

        assert [m.id for m in matches] == [f"acme/widgets:{make_sha(1)}"]
        assert matches[0].metadata["kind"] == "commit"

    @pytest.mark.asyncio
    async def test_find_similar_excludes_self(self, vectors):
        """A commit is never listed as similar to itself."""
        await vectors.store_commit_embedding("acme/widgets", make_sha(1), [1, 0, 0, 0], "a", "ada")
        await vectors.store_commit_embedding(
            "acme/widgets", make_sha(2), [0.9, 0.1, 0, 0], "b", "ada"
        )

        matches = await vectors.find_similar_commits_to_commit("acme/widgets", make_sha(1))

        assert [m.id for m in matches] == [f"acme/widgets:{make_sha(2)}"]

    @pytest.mark.asyncio
    async def test_find_similar_without_embedding(self, vectors):
        """Asking about an unknown commit raises."""
        with pytest.raises(EmbeddingNotFoundError):
            await vectors.find_similar_commits_to_commit("acme/widgets", make_sha(1))

    @pytest.mark.asyncio
    async def test_related_patterns_exclude_tutorials(self, vectors):
        """Related pattern search never returns tutorial embeddings."""
        await vectors.store_code_embeddings(
            "acme/widgets",
            make_sha(1),
            [CodeEmbedding(path="src/a.py", values=[1, 0, 0, 0], content="def a(): ...")],
        )
        await vectors.store_tutorial_embedding("t1", [1, 0, 0, 0], "T", "D", "c1")

        matches = await vectors.find_related_code_patterns([1, 0, 0, 0])

        assert [m.metadata["kind"] for m in matches] == ["code"]

    @pytest.mark.asyncio
    async def test_code_and_tutorial_search(self, vectors):
        """Code search filters by language; tutorial search sees only tutorials."""
        await vectors.store_code_embeddings(
            "acme/widgets",
            make_sha(1),
            [
                CodeEmbedding(path="src/a.py", values=[1, 0, 0, 0], language="python"),
                CodeEmbedding(path="web/a.ts", values=[1, 0, 0, 0], language="typescript"),
            ],
        )
        await vectors.store_tutorial_embedding("t1", [1, 0, 0, 0], "T", "D", "c1")

        code = await vectors.search_similar_code([1, 0, 0, 0], language="python")
        tutorials = await vectors.search_similar_tutorials([1, 0, 0, 0])

        assert [m.metadata["file_path"] for m in code] == ["src/a.py"]
        assert [m.id for m in tutorials] == ["tutorial:t1"]

        await vectors.delete_tutorial_embedding("t1")
        assert await vectors.search_similar_tutorials([1, 0, 0, 0]) == []

    @pytest.mark.asyncio
    async def test_delete_repo_embeddings(self, vectors):
        """Only the repository's embeddings are removed."""
        await vectors.store_commit_embedding("acme/widgets", make_sha(1), [1, 0, 0, 0], "a", "ada")
        await vectors.store_commit_embedding("acme/gadgets", make_sha(2), [1, 0, 0, 0], "b", "ada")

        await vectors.delete_repo_embeddings("acme/widgets")

        matches = await vectors.search_similar_commits([1, 0, 0, 0])
        assert [m.metadata["repo_id"] for m in matches] == ["acme/gadgets"]


# =============================================================================
# Facade Tests
# =============================================================================


class TestStorageFacade:
    """Tests for the facade's cross-store operations."""

    @pytest.mark.asyncio
    async def test_health_check_isolates_failures(self, storage):
        """A raising probe marks only its own store unhealthy."""
        storage.blobs.health_check = AsyncMock(side_effect=RuntimeError("disk gone"))

        health = await storage.health_check()

        assert health == {"database": True, "kv": True, "blob": False, "vector": True}

    @pytest.mark.asyncio
    async def test_cleanup_stops_at_first_failure(self, database, vectors):
        """Earlier deletes stay applied and the failure propagates."""
        blobs = AsyncMock(spec=BlobStore)
        kv = AsyncMock(spec=KeyValueStore)
        facade = StorageFacade(database=database, kv=kv, blobs=blobs, vectors=vectors)
        facade.vectors.delete_repo_embeddings = AsyncMock(side_effect=RuntimeError("down"))

        with pytest.raises(RuntimeError):
            await facade.cleanup_repository_data("acme/widgets")

        blobs.delete_repo_data.assert_awaited_once_with("acme/widgets")
        kv.delete_repo_data.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cleanup_session_data(self, storage):
        """Session cleanup removes saved workspaces and quick state."""
        await storage.blobs.save_learner_workspace(
            LearnerWorkspace(session_id="s1", step_id="st1", files={})
        )
        await storage.kv.set_session_state(SessionState(session_id="s1", tutorial_id="t1"))

        await storage.cleanup_session_data("s1")

        assert await storage.blobs.get_learner_workspace("s1", "st1") is None
        assert await storage.kv.get_session_state("s1") is None
