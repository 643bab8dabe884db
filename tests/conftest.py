"""Pytest configuration and shared fixtures.

This module provides sample GitHub payloads and models, and a storage
facade wired to throwaway backends: SQLite in a temporary directory,
in-memory key-value and object backends, and Qdrant in local memory mode.
"""

from collections.abc import AsyncGenerator
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from qdrant_client import AsyncQdrantClient

from core.storage import (
    BlobStore,
    KeyValueStore,
    RelationalStore,
    StorageFacade,
    VectorIndex,
    VectorIndexConfig,
)
from core.storage.fakes import InMemoryKeyValueBackend, InMemoryObjectBackend
from integrations.github import (
    GitHubClient,
    GitHubRepository,
    GitHubUser,
    TreeEntry,
    TreeEntryType,
)

VECTOR_SIZE = 4


# ---------------------------------------------------------------------------
# GitHub Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def github_repository() -> GitHubRepository:
    """Repository metadata as returned by GitHub."""
    return GitHubRepository(
        id=1,
        name="widgets",
        full_name="acme/widgets",
        owner=GitHubUser(id=7, login="acme"),
        html_url="https://github.com/acme/widgets",
        default_branch="main",
        language="Python",
    )


@pytest.fixture
def parent_tree() -> list[TreeEntry]:
    """Tree listing at a parent commit."""
    return [
        TreeEntry(path="README.md", type=TreeEntryType.BLOB, size=120),
        TreeEntry(path="src", type=TreeEntryType.TREE),
        TreeEntry(path="src/app.py", type=TreeEntryType.BLOB, size=300),
        TreeEntry(path="src/auth", type=TreeEntryType.TREE),
        TreeEntry(path="src/auth/tokens.py", type=TreeEntryType.BLOB, size=500),
        TreeEntry(path="node_modules/left-pad/index.js", type=TreeEntryType.BLOB, size=50),
        TreeEntry(path="static/logo.png", type=TreeEntryType.BLOB, size=2048),
        TreeEntry(path="data/huge.json", type=TreeEntryType.BLOB, size=500_000),
    ]


@pytest.fixture
def mock_github(github_repository: GitHubRepository) -> AsyncMock:
    """GitHub client double with sensible defaults."""
    github = AsyncMock(spec=GitHubClient)
    github.get_repository.return_value = github_repository
    github.get_learning_commits.return_value = []
    github.get_tree.return_value = []
    github.get_file_content.return_value = "print('hello')\n"
    return github


# ---------------------------------------------------------------------------
# Storage Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def kv_backend() -> InMemoryKeyValueBackend:
    return InMemoryKeyValueBackend()


@pytest.fixture
def object_backend() -> InMemoryObjectBackend:
    return InMemoryObjectBackend()


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncGenerator[RelationalStore, None]:
    """Relational store backed by a fresh SQLite file."""
    store = RelationalStore(f"sqlite:///{tmp_path / 'test.db'}")
    await store.initialize()
    yield store
    await store.close()


@pytest_asyncio.fixture
async def vectors() -> AsyncGenerator[VectorIndex, None]:
    """Vector index over Qdrant's in-memory local mode."""
    index = VectorIndex(
        VectorIndexConfig(collection_name="test", vector_size=VECTOR_SIZE, batch_size=2),
        client=AsyncQdrantClient(location=":memory:"),
    )
    await index.create_collection()
    yield index
    await index.close()


@pytest.fixture
def storage(
    database: RelationalStore,
    kv_backend: InMemoryKeyValueBackend,
    object_backend: InMemoryObjectBackend,
    vectors: VectorIndex,
) -> StorageFacade:
    """Facade over throwaway backends."""
    return StorageFacade(
        database=database,
        kv=KeyValueStore(kv_backend),
        blobs=BlobStore(object_backend),
        vectors=vectors,
    )
