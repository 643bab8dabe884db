"""Workspace snapshots for the onboarder.

Turns a repository tree at a commit into a nested, filtered file tree with
contents, as shown to learners.
"""

from core.workspace.materializer import WorkspaceMaterializer
from core.workspace.tree import (
    FileFetchResult,
    build_file_tree,
    count_files,
    fetch_file_contents,
    placeholder_content,
    should_include,
)

__all__ = [
    "FileFetchResult",
    "WorkspaceMaterializer",
    "build_file_tree",
    "count_files",
    "fetch_file_contents",
    "placeholder_content",
    "should_include",
]
