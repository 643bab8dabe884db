"""Composite identifiers.

Commits are addressed by the pair (repository id, sha). The pair is kept
structured in code and only flattened to ``"{owner}/{name}:{sha}"`` at the
storage boundary, where ``parse`` reverses it exactly.
"""

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.errors import InvalidCommitIdError

_REPO_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")
_SHA_PATTERN = re.compile(r"^[0-9a-f]{40}$")


def is_valid_repo_id(repo_id: str) -> bool:
    """Check that a repository id has the ``owner/name`` shape."""
    return bool(_REPO_ID_PATTERN.match(repo_id))


class CommitId(BaseModel):
    """Structured commit identifier.

    Attributes:
        repo_id: Repository id (``owner/name``); never contains ``:``.
        sha: 40-character lowercase hex commit sha.
    """

    model_config = ConfigDict(frozen=True)

    repo_id: str = Field(..., description="Repository id (owner/name)")
    sha: str = Field(..., description="Commit SHA")

    @field_validator("repo_id")
    @classmethod
    def _check_repo_id(cls, value: str) -> str:
        if not is_valid_repo_id(value):
            raise ValueError(f"invalid repository id: {value!r}")
        return value

    @field_validator("sha")
    @classmethod
    def _check_sha(cls, value: str) -> str:
        value = value.lower()
        if not _SHA_PATTERN.match(value):
            raise ValueError(f"invalid commit sha: {value!r}")
        return value

    @classmethod
    def parse(cls, value: str) -> "CommitId":
        """Parse a flattened ``{repo_id}:{sha}`` identifier.

        Args:
            value: Flattened commit id.

        Returns:
            The structured identifier.

        Raises:
            InvalidCommitIdError: If the value is malformed.
        """
        repo_id, sep, sha = value.rpartition(":")
        if not sep:
            raise InvalidCommitIdError(f"Commit id must be '<owner>/<name>:<sha>': {value!r}")
        try:
            return cls(repo_id=repo_id, sha=sha)
        except ValueError as e:
            raise InvalidCommitIdError(f"Invalid commit id {value!r}: {e}") from e

    @classmethod
    def build(cls, repo_id: str, sha: str) -> "CommitId":
        """Build an identifier, raising the domain error on bad parts."""
        try:
            return cls(repo_id=repo_id, sha=sha)
        except ValueError as e:
            raise InvalidCommitIdError(f"Invalid commit id parts: {e}") from e

    def __str__(self) -> str:
        return f"{self.repo_id}:{self.sha}"
