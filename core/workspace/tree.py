"""Hierarchical file trees built from flat git tree listings.

Git trees list blobs by full path. The IDE-style views used by tutorials
and workspaces want nested folders instead, so folders are synthesized
from path segments here rather than fetched. File contents are fetched one
at a time; a file that cannot be read gets a placeholder comment instead of
failing the whole tree.
"""

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field

from core.errors import ExternalServiceError
from core.storage.models import FileNode
from integrations.github import GitHubClient, TreeEntry, TreeEntryType

logger = structlog.get_logger(__name__)

# Path substrings of build, dependency and tooling directories
SKIP_DIRS = (
    "node_modules/",
    ".git/",
    "dist/",
    "build/",
    "coverage/",
    ".next/",
    ".nuxt/",
    "vendor/",
    "target/",
    "bin/",
    "obj/",
    "__pycache__/",
    ".pytest_cache/",
    ".vscode/",
    ".idea/",
)

BINARY_EXTENSIONS = (
    ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".ico", ".svg",
    ".woff", ".woff2", ".ttf", ".eot", ".otf",
    ".zip", ".tar", ".gz", ".rar", ".7z",
    ".exe", ".dll", ".so", ".dylib",
    ".pdf", ".doc", ".docx", ".xls", ".xlsx",
    ".mp3", ".mp4", ".avi", ".mov", ".wmv",
    ".class", ".jar", ".war", ".ear",
)  # fmt: skip

# Folders shallower than this start expanded
EXPANDED_DEPTH = 2


class FileFetchResult(BaseModel):
    """Outcome of fetching one file's content.

    Exactly one of ``content`` and ``error`` is set.
    """

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Repository-relative path")
    content: str | None = Field(None, description="File text on success")
    error: str | None = Field(None, description="Failure message")

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def text(self) -> str:
        """Content, or a placeholder describing why it is missing."""
        if self.content is not None:
            return self.content
        return placeholder_content(self.path, self.error or "unknown error")


def placeholder_content(path: str, error: str) -> str:
    return f"// Could not load content for this file\n// Path: {path}\n// Error: {error}"


def should_include(path: str) -> bool:
    """Whether a path is worth showing in a workspace."""
    if any(skip in path for skip in SKIP_DIRS):
        return False
    return not path.lower().endswith(BINARY_EXTENSIONS)


def blob_entries(entries: list[TreeEntry]) -> list[TreeEntry]:
    return [e for e in entries if e.type == TreeEntryType.BLOB]


async def fetch_file_contents(
    github: GitHubClient,
    owner: str,
    repo: str,
    paths: list[str],
    ref: str,
) -> list[FileFetchResult]:
    """Fetch each file at ``ref`` in order, recording failures per file."""
    results: list[FileFetchResult] = []
    for path in paths:
        try:
            content = await github.get_file_content(owner, repo, path, ref)
        except (ExternalServiceError, httpx.HTTPError) as e:
            logger.warning("file_fetch_failed", path=path, ref=ref, error=str(e))
            results.append(FileFetchResult(path=path, error=str(e) or type(e).__name__))
        else:
            results.append(FileFetchResult(path=path, content=content))
    return results


class _Folder:
    """Mutable folder used while assembling the tree."""

    def __init__(self, name: str, path: str, depth: int) -> None:
        self.name = name
        self.path = path
        self.depth = depth
        self.folders: dict[str, _Folder] = {}
        self.files: list[FileNode] = []

    def child(self, name: str) -> "_Folder":
        if name not in self.folders:
            path = f"{self.path}/{name}" if self.path else name
            self.folders[name] = _Folder(name, path, self.depth + 1)
        return self.folders[name]

    def nodes(self) -> list[FileNode]:
        """Folders first, in order of first appearance, then files."""
        return [folder.to_node() for folder in self.folders.values()] + self.files

    def to_node(self) -> FileNode:
        return FileNode(
            id=self.path,
            name=self.name,
            type="folder",
            path=self.path,
            children=self.nodes(),
            expanded=self.depth < EXPANDED_DEPTH,
        )


def build_file_tree(files: list[FileFetchResult]) -> list[FileNode]:
    """Nest flat file results into folders synthesized from their paths.

    Args:
        files: Fetched files, in the order they should appear.

    Returns:
        Top-level nodes. Failed fetches carry placeholder content.
    """
    root = _Folder("", "", -1)
    for result in files:
        *folders, name = result.path.split("/")
        parent = root
        for segment in folders:
            parent = parent.child(segment)
        parent.files.append(
            FileNode(id=result.path, name=name, type="file", path=result.path, content=result.text)
        )
    return root.nodes()


def count_files(nodes: list[FileNode]) -> int:
    """Number of file nodes anywhere in a tree."""
    return sum(
        count_files(node.children or []) if node.type == "folder" else 1 for node in nodes
    )
