"""GitHub REST payloads as frozen pydantic models.

Only the fields the onboarder reads are kept. Each model that comes
straight off the wire has a ``from_api`` constructor taking the raw JSON
object, so the client never pokes at nested dictionaries itself.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class FileStatus(str, Enum):
    """How a commit touched a file, as reported by GitHub."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"
    RENAMED = "renamed"
    COPIED = "copied"
    CHANGED = "changed"
    UNCHANGED = "unchanged"


class TreeEntryType(str, Enum):
    """Object kind of a git tree entry."""

    BLOB = "blob"
    TREE = "tree"
    COMMIT = "commit"


class GitHubUser(BaseModel):
    """Account linked to a repository or commit."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Numeric account id")
    login: str = Field(..., description="Account login")
    name: str | None = Field(None, description="Display name when exposed")
    html_url: str | None = Field(None, description="Profile page")

    @classmethod
    def from_api(cls, data: dict[str, Any] | None) -> "GitHubUser | None":
        """Account from an ``owner`` or ``author`` object.

        Commits by unknown emails carry ``null`` or a partial object here.
        """
        if not data or "id" not in data or "login" not in data:
            return None
        return cls.model_validate(data)


class GitHubRepository(BaseModel):
    """Repository metadata from ``GET /repos/{owner}/{repo}``."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Numeric repository id")
    name: str = Field(..., description="Short name")
    full_name: str = Field(..., description="owner/name")
    owner: GitHubUser = Field(..., description="Owning account")
    private: bool = Field(default=False, description="Visibility")
    html_url: str = Field(..., description="Web page")
    default_branch: str = Field(default="main", description="Branch cloned by default")
    language: str | None = Field(None, description="Dominant language per GitHub")
    description: str | None = Field(None, description="Free-form summary")
    created_at: datetime | None = Field(None, description="When the repository was created")
    pushed_at: datetime | None = Field(None, description="Most recent push")

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "GitHubRepository":
        owner = GitHubUser.from_api(data.get("owner"))
        if owner is None:
            owner = GitHubUser(id=0, login=data.get("full_name", "/").split("/")[0])
        fields = {k: v for k, v in data.items() if k in cls.model_fields and k != "owner"}
        fields["default_branch"] = data.get("default_branch") or "main"
        return cls(owner=owner, **fields)


class GitHubFile(BaseModel):
    """One entry of a commit's ``files`` array."""

    model_config = ConfigDict(frozen=True)

    filename: str = Field(..., description="Path after the change")
    status: FileStatus = Field(default=FileStatus.MODIFIED, description="Kind of change")
    additions: int = Field(default=0, description="Added line count")
    deletions: int = Field(default=0, description="Removed line count")
    changes: int = Field(default=0, description="additions + deletions")
    patch: str | None = Field(None, description="Unified diff hunk, absent for binaries")
    previous_filename: str | None = Field(None, description="Path before a rename")

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "GitHubFile":
        return cls.model_validate(data)


class CommitAuthor(BaseModel):
    """Author signature recorded in the git object itself."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(default="Unknown", description="Author name")
    email: str | None = Field(None, description="Author email")
    date: datetime | None = Field(None, description="Authorship date")


class GitHubCommit(BaseModel):
    """A commit as listed or fetched.

    Listing endpoints return commits without ``files``; the detail endpoint
    fills them in along with the parent shas.
    """

    model_config = ConfigDict(frozen=True)

    sha: str = Field(..., description="Full 40-character sha")
    message: str = Field(..., description="Full commit message")
    author: CommitAuthor = Field(default_factory=CommitAuthor, description="Git author")
    user: GitHubUser | None = Field(None, description="Linked GitHub account")
    html_url: str | None = Field(None, description="Web page")
    files: list[GitHubFile] = Field(default_factory=list, description="Touched files")
    parents: list[str] = Field(default_factory=list, description="Parent shas, first first")

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "GitHubCommit":
        git = data.get("commit") or {}
        signature = git.get("author") or {}
        return cls(
            sha=data["sha"],
            message=git.get("message", data.get("message", "")),
            author=CommitAuthor(
                name=signature.get("name") or "Unknown",
                email=signature.get("email"),
                date=signature.get("date"),
            ),
            user=GitHubUser.from_api(data.get("author")),
            html_url=data.get("html_url"),
            files=[GitHubFile.from_api(f) for f in data.get("files") or []],
            parents=[p["sha"] for p in data.get("parents") or []],
        )

    @property
    def first_parent(self) -> str | None:
        """First parent sha, or None for a root commit."""
        return self.parents[0] if self.parents else None

    @property
    def lines_changed(self) -> int:
        """Total additions plus deletions across changed files."""
        return sum(f.additions + f.deletions for f in self.files)


class TreeEntry(BaseModel):
    """Entry in a recursive git tree listing."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Path from repository root")
    type: TreeEntryType = Field(default=TreeEntryType.BLOB, description="Entry type")
    size: int | None = Field(None, description="Blob size in bytes")
    sha: str | None = Field(None, description="Object SHA")

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "TreeEntry":
        return cls.model_validate(data)


class RepositoryStats(BaseModel):
    """Lightweight accessibility summary for a repository."""

    model_config = ConfigDict(frozen=True)

    accessible: bool = Field(..., description="Repository could be read")
    default_branch: str | None = Field(None, description="Default branch")
    description: str | None = Field(None, description="Repository description")
    has_commits: bool = Field(default=False, description="At least one commit exists")
