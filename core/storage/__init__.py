"""Storage layer for the onboarder.

Four independent backends behind one facade:
- RelationalStore: repositories, commits, tutorials, learner sessions
- KeyValueStore: TTL-bearing transient state
- BlobStore: diffs, tutorial content, workspaces
- VectorIndex: commit, code and tutorial embeddings
"""

from core.storage.blob import BlobStore, FilesystemBackend
from core.storage.database import RelationalStore
from core.storage.facade import StorageFacade
from core.storage.kv import KeyValueStore, RedisBackend
from core.storage.models import (
    AnalysisState,
    AnalysisStatus,
    Commit,
    CommitDiff,
    DiffFile,
    FileNode,
    LearnerSession,
    LearnerWorkspace,
    Repository,
    SessionState,
    Tutorial,
    TutorialContent,
    TutorialStep,
    WorkspaceSnapshot,
)
from core.storage.vector import VectorIndex, VectorIndexConfig, VectorMatch

__all__ = [
    # Facade
    "StorageFacade",
    # Backends
    "BlobStore",
    "FilesystemBackend",
    "KeyValueStore",
    "RedisBackend",
    "RelationalStore",
    "VectorIndex",
    "VectorIndexConfig",
    "VectorMatch",
    # Models
    "AnalysisState",
    "AnalysisStatus",
    "Commit",
    "CommitDiff",
    "DiffFile",
    "FileNode",
    "LearnerSession",
    "LearnerWorkspace",
    "Repository",
    "SessionState",
    "Tutorial",
    "TutorialContent",
    "TutorialStep",
    "WorkspaceSnapshot",
]
