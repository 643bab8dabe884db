"""Repository URL parsing.

Turns the URL shapes people paste (web URLs, bare host paths, SSH remotes)
into an ``owner``/``name`` pair and a canonical web URL.
"""

import re

from pydantic import BaseModel, ConfigDict, Field

from core.errors import InvalidRepositoryUrlError

_SEGMENT = r"[A-Za-z0-9_.-]+"
_HOST = r"[A-Za-z0-9.-]+(?::\d+)?"

_HTTP_PATTERN = re.compile(
    rf"^https?://(?P<host>{_HOST})/(?P<owner>{_SEGMENT})/(?P<name>{_SEGMENT})$"
)
_BARE_PATTERN = re.compile(
    rf"^(?P<host>[A-Za-z0-9-]+(?:\.[A-Za-z0-9-]+)+)/(?P<owner>{_SEGMENT})/(?P<name>{_SEGMENT})$"
)
_SSH_PATTERN = re.compile(
    rf"^git@(?P<host>[A-Za-z0-9.-]+):(?P<owner>{_SEGMENT})/(?P<name>{_SEGMENT})$"
)

# Hosts whose owner and repository names are case-insensitive.
_CASE_INSENSITIVE_HOSTS = frozenset({"github.com", "www.github.com"})


class RepoParseResult(BaseModel):
    """Outcome of parsing a repository URL.

    Attributes:
        is_valid: Whether the URL was recognised.
        owner: Repository owner.
        name: Repository name, without a ``.git`` suffix.
        host: Host the repository lives on.
        error: Why parsing failed, when it did.
    """

    model_config = ConfigDict(frozen=True)

    is_valid: bool = Field(..., description="Whether parsing succeeded")
    owner: str | None = Field(None, description="Repository owner")
    name: str | None = Field(None, description="Repository name")
    host: str | None = Field(None, description="Repository host")
    error: str | None = Field(None, description="Parse error message")

    @property
    def repo_id(self) -> str:
        """Repository id in ``owner/name`` form.

        Lowercased on GitHub, where ``Acme/Widgets`` and ``acme/widgets``
        name the same repository.
        """
        self.require()
        return self._slug()

    @property
    def canonical_url(self) -> str:
        """Canonical web URL for the repository, cased like ``repo_id``."""
        self.require()
        host = "github.com" if self.host == "www.github.com" else self.host
        return f"https://{host}/{self._slug()}"

    def _slug(self) -> str:
        slug = f"{self.owner}/{self.name}"
        return slug.lower() if self.host in _CASE_INSENSITIVE_HOSTS else slug

    def require(self) -> "RepoParseResult":
        """Return self, raising if the URL was not valid.

        Raises:
            InvalidRepositoryUrlError: If parsing failed.
        """
        if not self.is_valid:
            raise InvalidRepositoryUrlError(self.error or "Invalid repository URL")
        return self


def parse_repository_url(url: str) -> RepoParseResult:
    """Parse a repository URL.

    Accepts ``https://host/owner/name``, ``host/owner/name`` and
    ``git@host:owner/name``, each with an optional ``.git`` suffix.
    Never raises; malformed input yields an invalid result.

    Args:
        url: URL as supplied by the user.

    Returns:
        Parse result.
    """
    if not isinstance(url, str) or not url.strip():
        return RepoParseResult(is_valid=False, error="Repository URL is empty")

    candidate = url.strip().rstrip("/")
    if candidate.endswith(".git"):
        candidate = candidate[: -len(".git")]

    for pattern in (_HTTP_PATTERN, _SSH_PATTERN, _BARE_PATTERN):
        match = pattern.match(candidate)
        if match is None:
            continue
        owner, name = match.group("owner"), match.group("name")
        if owner in {".", ".."} or name in {".", ".."}:
            break
        return RepoParseResult(
            is_valid=True,
            owner=owner,
            name=name,
            host=match.group("host").lower(),
        )

    return RepoParseResult(is_valid=False, error=f"Unrecognised repository URL: {url}")
