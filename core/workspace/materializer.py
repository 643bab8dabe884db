"""Materialize a repository at a commit into a stored workspace snapshot."""

import structlog

from core.storage import StorageFacade, WorkspaceSnapshot
from integrations.github import GitHubClient, TreeEntry

from .tree import blob_entries, build_file_tree, fetch_file_contents, should_include

logger = structlog.get_logger(__name__)

MAX_FILE_SIZE = 200_000


class WorkspaceMaterializer:
    """Builds browsable file trees of a repository at a given commit.

    Attributes:
        github: Source-control client.
        storage: Storage facade; snapshots go to the blob store.
        max_file_size: Blobs of this many bytes or more are skipped.
    """

    def __init__(
        self,
        github: GitHubClient,
        storage: StorageFacade,
        max_file_size: int = MAX_FILE_SIZE,
    ) -> None:
        self.github = github
        self.storage = storage
        self.max_file_size = max_file_size
        self._logger = logger.bind(component="workspace_materializer")

    def select_files(self, entries: list[TreeEntry]) -> list[TreeEntry]:
        """Blobs that pass the directory, extension and size filters."""
        return [
            entry
            for entry in blob_entries(entries)
            if should_include(entry.path) and (entry.size or 0) < self.max_file_size
        ]

    async def materialize(
        self, owner: str, repo: str, sha: str, workspace_id: str
    ) -> WorkspaceSnapshot:
        """Fetch, filter and store the repository tree at ``sha``.

        Re-materializing the same ``workspace_id`` overwrites the snapshot.

        Args:
            owner: Repository owner.
            repo: Repository name.
            sha: Commit to read the tree from.
            workspace_id: Id the snapshot is stored under.

        Returns:
            The stored snapshot.
        """
        entries = await self.github.get_tree(owner, repo, sha)
        selected = self.select_files(entries)
        self._logger.info(
            "workspace_files_selected",
            workspace_id=workspace_id,
            total=len(entries),
            selected=len(selected),
        )

        results = await fetch_file_contents(
            self.github, owner, repo, [e.path for e in selected], sha
        )
        snapshot = WorkspaceSnapshot(
            id=workspace_id,
            repo_id=f"{owner}/{repo}",
            commit_sha=sha,
            files=build_file_tree(results),
            total_files=len(selected),
        )
        await self.storage.blobs.store_workspace_snapshot(snapshot)

        failed = sum(1 for r in results if not r.ok)
        self._logger.info(
            "workspace_materialized", workspace_id=workspace_id, files=len(results), failed=failed
        )
        return snapshot

    async def get_snapshot(self, workspace_id: str) -> WorkspaceSnapshot | None:
        return await self.storage.blobs.get_workspace_snapshot(workspace_id)

    async def delete_snapshot(self, workspace_id: str) -> bool:
        """Delete a stored snapshot. Returns False if there was none."""
        return await self.storage.blobs.delete_workspace_snapshot(workspace_id) > 0
