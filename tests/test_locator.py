"""Tests for repository URL parsing and composite commit ids."""

import pytest

from core.errors import InvalidCommitIdError, InvalidRepositoryUrlError, is_client_error
from core.ids import CommitId, is_valid_repo_id
from integrations.github import parse_repository_url

from factories import make_sha

# =============================================================================
# Repository URL Tests
# =============================================================================


class TestParseRepositoryUrl:
    """Tests for parse_repository_url."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://github.com/acme/widgets",
            "https://github.com/acme/widgets.git",
            "https://github.com/acme/widgets/",
            "http://github.com/acme/widgets",
            "github.com/acme/widgets",
            "git@github.com:acme/widgets.git",
            "  https://GitHub.com/acme/widgets  ",
        ],
    )
    def test_accepted_forms(self, url):
        """Every supported form yields the same owner, name and canonical URL."""
        result = parse_repository_url(url)
        assert result.is_valid
        assert result.owner == "acme"
        assert result.name == "widgets"
        assert result.repo_id == "acme/widgets"
        assert result.canonical_url == "https://github.com/acme/widgets"

    @pytest.mark.parametrize(
        "url",
        [
            "",
            "   ",
            "not a url",
            "https://github.com/acme",
            "https://github.com/acme/widgets/tree/main",
            "ftp://github.com/acme/widgets",
            "acme/widgets",
            "https://github.com/../widgets",
        ],
    )
    def test_rejected_forms(self, url):
        """Unrecognised input is reported, not raised."""
        result = parse_repository_url(url)
        assert not result.is_valid
        assert result.error

    def test_require_raises_for_invalid(self):
        """require() turns an invalid result into a client error."""
        result = parse_repository_url("nope")
        with pytest.raises(InvalidRepositoryUrlError) as exc_info:
            result.require()
        assert is_client_error(exc_info.value)

    def test_repo_id_requires_valid_result(self):
        """Derived properties are unavailable on invalid results."""
        with pytest.raises(InvalidRepositoryUrlError):
            _ = parse_repository_url("nope").repo_id

    def test_other_hosts_keep_their_host(self):
        """Self-hosted forges keep their host in the canonical URL."""
        result = parse_repository_url("https://git.example.org/team/tool.git")
        assert result.canonical_url == "https://git.example.org/team/tool"

    @pytest.mark.parametrize(
        "url",
        [
            "https://github.com/Acme/Widgets",
            "https://www.github.com/ACME/widgets.git",
            "git@github.com:acme/WIDGETS.git",
        ],
    )
    def test_github_ids_ignore_case(self, url):
        """GitHub names differing only in case share one id and URL."""
        result = parse_repository_url(url)
        assert result.repo_id == "acme/widgets"
        assert result.canonical_url == "https://github.com/acme/widgets"

    def test_other_hosts_keep_case(self):
        """Case is preserved on hosts that may treat it as significant."""
        result = parse_repository_url("https://git.example.org/Team/Tool")
        assert result.owner == "Team"
        assert result.repo_id == "Team/Tool"
        assert result.canonical_url == "https://git.example.org/Team/Tool"


# =============================================================================
# Commit Id Tests
# =============================================================================


class TestCommitId:
    """Tests for the owner/name:sha composite id."""

    def test_build_and_str(self):
        """A built id renders as repo_id:sha."""
        sha = make_sha(1)
        cid = CommitId.build("acme/widgets", sha)
        assert str(cid) == f"acme/widgets:{sha}"

    def test_parse_round_trip(self):
        """Parsing the string form gives back the same parts."""
        sha = make_sha(42)
        cid = CommitId.parse(f"acme/widgets:{sha}")
        assert cid.repo_id == "acme/widgets"
        assert cid.sha == sha

    def test_sha_is_lowercased(self):
        """Upper-case shas are normalised."""
        sha = "ABCDEF" + "0" * 34
        assert CommitId.parse(f"acme/widgets:{sha}").sha == sha.lower()

    @pytest.mark.parametrize(
        "value",
        [
            "acme/widgets",
            f"acme/widgets:{'z' * 40}",
            "acme/widgets:abc123",
            f"widgets:{'a' * 40}",
            f":{'a' * 40}",
        ],
    )
    def test_parse_rejects_malformed(self, value):
        """Malformed ids raise InvalidCommitIdError."""
        with pytest.raises(InvalidCommitIdError):
            CommitId.parse(value)

    def test_build_rejects_colon_in_repo_id(self):
        """A colon in the repository id would make the id ambiguous."""
        with pytest.raises(InvalidCommitIdError):
            CommitId.build("acme:x/widgets", make_sha(1))

    def test_is_valid_repo_id(self):
        """Repository ids are exactly owner/name."""
        assert is_valid_repo_id("acme/widgets")
        assert not is_valid_repo_id("acme")
        assert not is_valid_repo_id("acme/widgets/extra")
