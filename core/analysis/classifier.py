"""Rule-based commit classification.

Decides whether a commit is a good candidate for a tutorial. The rules are
evaluated in order and each sets its own reason:

1. Bulk operations (more than 15 files) are rejected.
2. Very small (< 5 lines) and very large (> 500 lines) changes are rejected.
3. The message and paths pick a category.
4. The category decides worthiness, with size limits for fixes and refactors.
5. Configuration-only commits are rejected.
6. Version bumps are rejected.

Classification is pure; the same input always yields the same result.
"""

import re
from collections.abc import Callable, Sequence
from pathlib import PurePosixPath

from core.storage.models import Commit
from integrations.github.models import GitHubCommit, GitHubFile

from .models import CommitAnalysis, CommitCategory

MAX_FILES = 15
MIN_LINES = 5
MAX_LINES = 500

FIX_MIN_LINES = 10
FIX_MAX_FILES = 5
REFACTOR_MAX_FILES = 8
REFACTOR_MAX_LINES = 200

MAJORITY_RATIO = 0.7

FEATURE_KEYWORDS = ("add", "feat", "implement")
FIX_KEYWORDS = ("fix", "bug", "resolve")
REFACTOR_KEYWORDS = ("refactor", "improve", "clean")
TEST_KEYWORDS = ("test",)
DOCS_KEYWORDS = ("doc", "readme")
VERSION_KEYWORDS = ("bump", "release", "version")

TEST_PATH_MARKERS = ("test", "spec", "__tests__")
DOC_EXTENSIONS = frozenset({"md", "txt", "rst"})
CONFIG_EXTENSIONS = frozenset({"json", "yml", "yaml", "toml", "ini", "config"})
CONFIG_NAME_MARKERS = ("package.json", "package-lock.json", "yarn.lock", ".gitignore", "dockerfile")

_VERSION_PATTERN = re.compile(r"v?\d+\.\d+\.\d+")


def file_extension(path: str) -> str:
    """Lowercased text after the last dot of a path, or "" if there is none."""
    name = PurePosixPath(path).name
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[1].lower()


def _is_test_path(path: str) -> bool:
    lowered = path.lower()
    return any(marker in lowered for marker in TEST_PATH_MARKERS)


def _is_doc_path(path: str) -> bool:
    return file_extension(path) in DOC_EXTENSIONS or "readme" in path.lower()


def _is_config_path(path: str) -> bool:
    lowered = path.lower()
    return file_extension(path) in CONFIG_EXTENSIONS or any(
        marker in lowered for marker in CONFIG_NAME_MARKERS
    )


def _majority(paths: Sequence[str], predicate: Callable[[str], bool]) -> bool:
    if not paths:
        return False
    matching = sum(1 for p in paths if predicate(p))
    return matching / len(paths) > MAJORITY_RATIO


class CommitClassifier:
    """Classifies commits into learning-worthy candidates."""

    def classify(self, commit: GitHubCommit, files: Sequence[GitHubFile]) -> CommitAnalysis:
        """Classify a commit from its message and changed files.

        Args:
            commit: Commit whose message is inspected.
            files: Files changed by the commit.

        Returns:
            Classification result.
        """
        paths = [f.filename for f in files]
        lines = sum(f.additions + f.deletions for f in files)
        file_types = frozenset(ext for ext in (file_extension(p) for p in paths) if ext)

        def result(worthy: bool, reason: str, category: CommitCategory) -> CommitAnalysis:
            return CommitAnalysis(
                is_learning_worthy=worthy,
                category=category,
                reason=reason,
                file_types=file_types,
                lines_changed=lines,
            )

        if len(files) > MAX_FILES:
            return result(False, "Too many files changed (bulk operation)", CommitCategory.OTHER)
        if lines < MIN_LINES:
            return result(False, "Very small change", CommitCategory.OTHER)
        if lines > MAX_LINES:
            return result(
                False, "Too many lines changed (likely auto-generated)", CommitCategory.OTHER
            )

        lowered = commit.message.lower()
        category = self._categorize(lowered, paths)
        worthy, reason = self._judge(category, len(files), lines)

        # Overrides apply regardless of category.
        if all(_is_config_path(p) for p in paths):
            worthy, reason = False, "Only configuration changes"
        if _VERSION_PATTERN.search(lowered) and any(k in lowered for k in VERSION_KEYWORDS):
            worthy, reason = False, "Version bump"

        return result(worthy, reason, category)

    def analyze_commit(self, commit: GitHubCommit) -> CommitAnalysis:
        """Classify a commit detail using its own changed files."""
        return self.classify(commit, commit.files)

    def get_learning_commits(
        self, commits: Sequence[GitHubCommit]
    ) -> list[tuple[GitHubCommit, CommitAnalysis]]:
        """Pair commits with their analyses, keeping only worthy ones.

        Args:
            commits: Commit details (with files).

        Returns:
            ``(commit, analysis)`` pairs in input order.
        """
        pairs = [(c, self.analyze_commit(c)) for c in commits]
        return [(c, a) for c, a in pairs if a.is_learning_worthy]

    def _categorize(self, message: str, paths: Sequence[str]) -> CommitCategory:
        if any(k in message for k in FEATURE_KEYWORDS):
            return CommitCategory.FEATURE
        if any(k in message for k in FIX_KEYWORDS):
            return CommitCategory.FIX
        if any(k in message for k in REFACTOR_KEYWORDS):
            return CommitCategory.REFACTOR
        if any(k in message for k in TEST_KEYWORDS) or _majority(paths, _is_test_path):
            return CommitCategory.TEST
        if any(k in message for k in DOCS_KEYWORDS) or _majority(paths, _is_doc_path):
            return CommitCategory.DOCS
        return CommitCategory.OTHER

    def _judge(self, category: CommitCategory, files: int, lines: int) -> tuple[bool, str]:
        if category is CommitCategory.FEATURE:
            return True, "Adds new functionality"
        if category is CommitCategory.FIX:
            if lines >= FIX_MIN_LINES and files <= FIX_MAX_FILES:
                return True, "Substantial bug fix"
            return False, "Small bug fix"
        if category is CommitCategory.REFACTOR:
            if files <= REFACTOR_MAX_FILES and lines <= REFACTOR_MAX_LINES:
                return True, "Code improvement/refactor"
            return False, "Large refactor (too complex)"
        if category is CommitCategory.TEST:
            return True, "Adds or improves tests"
        return False, "Not a clear feature/improvement"


def to_commit_record(commit: GitHubCommit, repo_id: str, analysis: CommitAnalysis) -> Commit:
    """Convert a source-control commit into a stored commit record.

    Args:
        commit: Commit from the source-control host.
        repo_id: Owning repository id.
        analysis: Classification of the commit.

    Returns:
        Commit record ready for the relational store.
    """
    return Commit.create(
        repo_id=repo_id,
        sha=commit.sha,
        message=commit.message,
        author=commit.author.name,
        date=commit.author.date,
        is_learning_worthy=analysis.is_learning_worthy,
    )
