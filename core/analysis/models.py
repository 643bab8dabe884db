"""Data models for commit analysis.

This module defines the result of classifying a commit: whether it is worth
turning into a tutorial, what kind of change it is, and why.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class CommitCategory(str, Enum):
    """Kind of change a commit makes."""

    FEATURE = "feature"
    FIX = "fix"
    REFACTOR = "refactor"
    TEST = "test"
    DOCS = "docs"
    OTHER = "other"


class CommitAnalysis(BaseModel):
    """Outcome of classifying a single commit.

    Attributes:
        is_learning_worthy: Whether the commit should become a tutorial.
        category: Kind of change.
        reason: Human-readable explanation of the decision.
        file_types: Lowercased extensions of the changed files.
        lines_changed: Total additions plus deletions.
    """

    model_config = ConfigDict(frozen=True)

    is_learning_worthy: bool = Field(..., description="Worth turning into a tutorial")
    category: CommitCategory = Field(default=CommitCategory.OTHER, description="Change kind")
    reason: str = Field(..., description="Why the decision was made")
    file_types: frozenset[str] = Field(default_factory=frozenset, description="File extensions")
    lines_changed: int = Field(default=0, ge=0, description="Additions plus deletions")
