"""Blob store for large structured payloads.

Objects are addressed by slash-separated keys and support prefix listing
and prefix deletion. Key layout:

    repos/{repo_id}/diffs/{sha}.json
    repos/{repo_id}/snapshots/{branch}/{sha}.tar.gz
    tutorials/{tutorial_id}/content.json
    tutorials/{tutorial_id}/artifacts/{step_id}/{filename}
    sessions/{session_id}/workspace/{step_id}.json
    workspaces/{workspace_id}/snapshot.json
"""

import asyncio
from collections.abc import Callable
from functools import partial
from pathlib import Path
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel

from core.errors import StorageError

from .models import (
    CommitDiff,
    LearnerWorkspace,
    TutorialContent,
    WorkspaceSnapshot,
)
from .protocols import ObjectBackend

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def validate_key(key: str) -> str:
    """Reject keys that could escape the store's namespace.

    Raises:
        StorageError: If the key is empty, absolute or has ``..`` segments.
    """
    if not key or key.startswith("/") or "\\" in key:
        raise StorageError(f"Invalid blob key: {key!r}")
    if any(part in {"", ".", ".."} for part in key.rstrip("/").split("/")):
        raise StorageError(f"Invalid blob key: {key!r}")
    return key


def diff_key(repo_id: str, sha: str) -> str:
    return f"repos/{repo_id}/diffs/{sha}.json"


def snapshot_key(repo_id: str, branch: str, sha: str) -> str:
    return f"repos/{repo_id}/snapshots/{branch}/{sha}.tar.gz"


def tutorial_content_key(tutorial_id: str) -> str:
    return f"tutorials/{tutorial_id}/content.json"


def artifact_key(tutorial_id: str, step_id: str, filename: str) -> str:
    return f"tutorials/{tutorial_id}/artifacts/{step_id}/{filename}"


def learner_workspace_key(session_id: str, step_id: str) -> str:
    return f"sessions/{session_id}/workspace/{step_id}.json"


def workspace_snapshot_key(workspace_id: str) -> str:
    return f"workspaces/{workspace_id}/snapshot.json"


class FilesystemBackend:
    """Object backend writing one file per key under a root directory.

    File I/O runs in the default executor so it never blocks the loop.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        return self.root.joinpath(*validate_key(key).split("/"))

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    def _put_sync(self, key: str, data: bytes) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_bytes(data)
        tmp.replace(path)

    def _get_sync(self, key: str) -> bytes | None:
        path = self._path(key)
        return path.read_bytes() if path.is_file() else None

    def _delete_sync(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def _list_sync(self, prefix: str) -> list[str]:
        if not self.root.exists():
            return []
        keys = (
            p.relative_to(self.root).as_posix() for p in self.root.rglob("*") if p.is_file()
        )
        return sorted(k for k in keys if k.startswith(prefix) and not k.endswith(".tmp"))

    async def put(self, key: str, data: bytes) -> None:
        await self._run(self._put_sync, key, data)

    async def get(self, key: str) -> bytes | None:
        return await self._run(self._get_sync, key)

    async def delete(self, key: str) -> None:
        await self._run(self._delete_sync, key)

    async def list_keys(self, prefix: str = "") -> list[str]:
        return await self._run(self._list_sync, prefix)


class BlobStore:
    """Domain operations over an object backend."""

    def __init__(self, backend: ObjectBackend) -> None:
        self._backend = backend
        self._logger = logger.bind(component="blob_store")

    async def health_check(self) -> bool:
        """Round-trip a probe object.

        Returns:
            True if healthy, False otherwise.
        """
        key = "health-check/probe.txt"
        try:
            await self._backend.put(key, b"ok")
            data = await self._backend.get(key)
            await self._backend.delete(key)
            return data == b"ok"
        except Exception as e:
            self._logger.error("health_check_failed", error=str(e))
            return False

    # Raw and JSON access

    async def put(self, key: str, data: bytes | str) -> None:
        payload = data.encode("utf-8") if isinstance(data, str) else data
        await self._backend.put(validate_key(key), payload)

    async def get(self, key: str) -> bytes | None:
        return await self._backend.get(validate_key(key))

    async def delete(self, key: str) -> None:
        await self._backend.delete(validate_key(key))

    async def list_keys(self, prefix: str = "") -> list[str]:
        return await self._backend.list_keys(prefix)

    async def delete_prefix(self, prefix: str) -> int:
        """Delete every object under a prefix.

        Args:
            prefix: Key prefix; must end with ``/`` so siblings are untouched.

        Returns:
            Number of deleted objects.
        """
        if not prefix.endswith("/"):
            raise StorageError(f"Prefix must end with '/': {prefix!r}")
        validate_key(prefix)
        keys = await self._backend.list_keys(prefix)
        for key in keys:
            await self._backend.delete(key)
        self._logger.info("blob_prefix_deleted", prefix=prefix, count=len(keys))
        return len(keys)

    async def _put_model(self, key: str, model: BaseModel) -> None:
        await self.put(key, model.model_dump_json())

    # Commit diffs

    async def store_commit_diff(self, repo_id: str, diff: CommitDiff) -> None:
        await self._put_model(diff_key(repo_id, diff.commit_sha), diff)

    async def get_commit_diff(self, repo_id: str, sha: str) -> CommitDiff | None:
        data = await self.get(diff_key(repo_id, sha))
        return CommitDiff.model_validate_json(data) if data is not None else None

    async def delete_commit_diff(self, repo_id: str, sha: str) -> None:
        await self.delete(diff_key(repo_id, sha))

    # Repository snapshots

    async def store_repo_snapshot(
        self, repo_id: str, branch: str, sha: str, archive: bytes
    ) -> None:
        await self.put(snapshot_key(repo_id, branch, sha), archive)

    async def get_repo_snapshot(self, repo_id: str, branch: str, sha: str) -> bytes | None:
        return await self.get(snapshot_key(repo_id, branch, sha))

    # Tutorials

    async def store_tutorial_content(self, content: TutorialContent) -> None:
        await self._put_model(tutorial_content_key(content.tutorial_id), content)

    async def get_tutorial_content(self, tutorial_id: str) -> TutorialContent | None:
        data = await self.get(tutorial_content_key(tutorial_id))
        return TutorialContent.model_validate_json(data) if data is not None else None

    async def store_tutorial_artifact(
        self, tutorial_id: str, step_id: str, filename: str, data: bytes | str
    ) -> None:
        await self.put(artifact_key(tutorial_id, step_id, filename), data)

    async def get_tutorial_artifact(
        self, tutorial_id: str, step_id: str, filename: str
    ) -> bytes | None:
        return await self.get(artifact_key(tutorial_id, step_id, filename))

    # Learner workspaces

    async def save_learner_workspace(self, workspace: LearnerWorkspace) -> None:
        key = learner_workspace_key(workspace.session_id, workspace.step_id)
        await self._put_model(key, workspace)

    async def get_learner_workspace(
        self, session_id: str, step_id: str
    ) -> LearnerWorkspace | None:
        data = await self.get(learner_workspace_key(session_id, step_id))
        return LearnerWorkspace.model_validate_json(data) if data is not None else None

    # Materialized workspaces

    async def store_workspace_snapshot(self, snapshot: WorkspaceSnapshot) -> None:
        await self._put_model(workspace_snapshot_key(snapshot.id), snapshot)

    async def get_workspace_snapshot(self, workspace_id: str) -> WorkspaceSnapshot | None:
        data = await self.get(workspace_snapshot_key(workspace_id))
        return WorkspaceSnapshot.model_validate_json(data) if data is not None else None

    async def delete_workspace_snapshot(self, workspace_id: str) -> int:
        return await self.delete_prefix(f"workspaces/{workspace_id}/")

    # Prefix cleanup

    async def delete_repo_data(self, repo_id: str) -> int:
        """Delete every diff and snapshot stored for a repository."""
        return await self.delete_prefix(f"repos/{repo_id}/")

    async def delete_tutorial_data(self, tutorial_id: str) -> int:
        return await self.delete_prefix(f"tutorials/{tutorial_id}/")

    async def delete_session_data(self, session_id: str) -> int:
        return await self.delete_prefix(f"sessions/{session_id}/")
