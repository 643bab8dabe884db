"""Domain models persisted by the storage layer.

Relational records (Repository, Commit, Tutorial, LearnerSession) and the
structured payloads kept in the key-value and blob stores.
"""

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from core.ids import CommitId


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def new_id() -> str:
    """Generate an opaque record id."""
    return uuid.uuid4().hex


# =============================================================================
# Relational records
# =============================================================================


class Repository(BaseModel):
    """Ingested repository.

    Attributes:
        id: ``owner/name``.
        github_url: Canonical web URL; unique across repositories.
        name: Display name (``owner/name`` as reported by GitHub).
        created_at: When the repository was ingested.
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str = Field(..., description="Repository id (owner/name)")
    github_url: str = Field(..., description="Canonical repository URL")
    name: str = Field(..., description="Display name")
    created_at: datetime = Field(default_factory=utcnow, description="Creation time")


class Commit(BaseModel):
    """Stored commit. Append-only; never updated after insert."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str = Field(..., description="Composite id '{repo_id}:{sha}'")
    repo_id: str = Field(..., description="Owning repository id")
    sha: str = Field(..., description="Commit SHA")
    message: str = Field(..., description="Commit message")
    author: str = Field(..., description="Author display name")
    date: datetime | None = Field(None, description="Authorship date")
    is_learning_worthy: bool = Field(default=False, description="Classifier verdict")
    created_at: datetime = Field(default_factory=utcnow, description="Insert time")

    @classmethod
    def create(
        cls,
        repo_id: str,
        sha: str,
        message: str,
        author: str,
        date: datetime | None,
        is_learning_worthy: bool = False,
    ) -> "Commit":
        """Build a commit record with a validated composite id."""
        commit_id = CommitId.build(repo_id, sha)
        return cls(
            id=str(commit_id),
            repo_id=commit_id.repo_id,
            sha=commit_id.sha,
            message=message,
            author=author,
            date=date,
            is_learning_worthy=is_learning_worthy,
        )

    @property
    def commit_id(self) -> CommitId:
        """Structured form of ``id``."""
        return CommitId(repo_id=self.repo_id, sha=self.sha)


class Tutorial(BaseModel):
    """Tutorial metadata; steps live in the blob store."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str = Field(default_factory=new_id, description="Tutorial id")
    commit_id: str = Field(..., description="Source commit id")
    title: str = Field(..., description="Tutorial title")
    description: str = Field(default="", description="Tutorial description")
    created_at: datetime = Field(default_factory=utcnow, description="Creation time")


class LearnerSession(BaseModel):
    """A learner's progress cursor through one tutorial."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str = Field(default_factory=new_id, description="Session id")
    tutorial_id: str = Field(..., description="Tutorial id")
    current_step: int = Field(default=0, ge=0, description="0-based step index")
    started_at: datetime = Field(default_factory=utcnow, description="Start time")
    completed_at: datetime | None = Field(None, description="Completion time")

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


# =============================================================================
# Key-value payloads
# =============================================================================


class AnalysisState(str, Enum):
    """Ingestion progress states."""

    PENDING = "pending"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    ERROR = "error"


class AnalysisStatus(BaseModel):
    """Ingestion progress for pollers."""

    model_config = ConfigDict(frozen=True)

    repo_id: str = Field(..., description="Repository id")
    status: AnalysisState = Field(..., description="Current state")
    error_message: str | None = Field(None, description="Failure message")
    started_at: datetime = Field(default_factory=utcnow, description="First status write")
    updated_at: datetime = Field(default_factory=utcnow, description="Last status write")


class SessionState(BaseModel):
    """Quick-access mirror of a learner session."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    tutorial_id: str
    current_step: int = 0
    completed: bool = False
    last_activity: datetime = Field(default_factory=utcnow)


class ConversationMessage(BaseModel):
    """One turn of a help conversation."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=utcnow)


# =============================================================================
# Blob payloads
# =============================================================================


class DiffFile(BaseModel):
    """One file's change record within a commit diff."""

    model_config = ConfigDict(frozen=True)

    filename: str
    status: Literal["added", "modified", "removed", "renamed"]
    additions: int = 0
    deletions: int = 0
    patch: str | None = None


class CommitDiff(BaseModel):
    """Per-file changes of a learning-worthy commit."""

    model_config = ConfigDict(frozen=True)

    commit_sha: str
    files: list[DiffFile] = Field(default_factory=list)


class TutorialStep(BaseModel):
    """Single step of a tutorial."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str = ""
    instructions: str = ""
    code_example: str | None = None
    hints: list[str] = Field(default_factory=list)


class FileNode(BaseModel):
    """Node in a hierarchical file tree.

    Folders carry ``children``; files carry ``path`` and ``content``.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    type: Literal["file", "folder"]
    path: str | None = None
    content: str | None = None
    children: list["FileNode"] | None = None
    expanded: bool | None = None


class TutorialContent(BaseModel):
    """Bulk content of a tutorial, immutable once stored."""

    model_config = ConfigDict(frozen=True)

    tutorial_id: str
    steps: list[TutorialStep] = Field(..., min_length=1)
    file_tree: list[FileNode] | None = None
    parent_sha: str | None = None


class LearnerWorkspace(BaseModel):
    """Files a learner has edited at a given step."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    step_id: str
    files: dict[str, str] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)


class WorkspaceSnapshot(BaseModel):
    """Materialized file tree of a repository at a commit."""

    model_config = ConfigDict(frozen=True)

    id: str
    repo_id: str
    commit_sha: str
    files: list[FileNode] = Field(default_factory=list)
    total_files: int = 0
    created_at: datetime = Field(default_factory=utcnow)
