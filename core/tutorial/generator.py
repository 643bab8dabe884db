"""Tutorial generation from ingested commits.

TutorialContentPipeline captures the repository as it was just before a
commit (the parent's tree with file contents), asks the AI collaborator for
a step-by-step outline of the change, and stores the result.

Content is written to the blob store before the tutorial row, so a
tutorial row always has content behind it. If the row write fails, the
blob is left unreferenced and the error propagates.
"""

import structlog

from core.errors import (
    CommitNotFoundError,
    NoParentCommitError,
    RepositoryNotFoundError,
    TutorialContentNotFoundError,
    TutorialNotFoundError,
)
from core.ids import CommitId
from core.llm import TutorAIService, TutorialDraft
from core.storage import StorageFacade, Tutorial, TutorialContent, TutorialStep
from core.storage.models import new_id
from core.workspace.tree import blob_entries, build_file_tree, fetch_file_contents
from integrations.github import GitHubClient, parse_repository_url

from .models import GeneratedTutorial

logger = structlog.get_logger(__name__)

DEFAULT_REPO_TUTORIAL_LIMIT = 5


def draft_to_steps(draft: TutorialDraft) -> list[TutorialStep]:
    """Give each drafted step a fresh id, keeping order."""
    return [
        TutorialStep(
            id=new_id(),
            title=step.title,
            description=step.description,
            instructions=step.instructions,
            code_example=step.code_example,
            hints=step.hints,
        )
        for step in draft.steps
    ]


class TutorialContentPipeline:
    """Turns stored commits into stored tutorials.

    Attributes:
        github: Source-control client.
        storage: Storage facade.
        ai: Tutorial-generation collaborator.
    """

    def __init__(
        self,
        github: GitHubClient,
        storage: StorageFacade,
        ai: TutorAIService | None = None,
    ) -> None:
        self.github = github
        self.storage = storage
        self.ai = ai or TutorAIService(kv=storage.kv)
        self._logger = logger.bind(component="tutorial_pipeline")

    async def generate(self, commit_id: str) -> GeneratedTutorial:
        """Generate and store a tutorial for an ingested commit.

        Each call creates a new tutorial; earlier ones for the same commit
        are left as they are.

        Args:
            commit_id: Composite ``owner/name:sha`` id.

        Returns:
            The stored tutorial and its content.

        Raises:
            InvalidCommitIdError: If ``commit_id`` is malformed.
            CommitNotFoundError: If the commit was never ingested.
            RepositoryNotFoundError: If its repository is missing.
            InvalidRepositoryUrlError: If the stored URL cannot be parsed.
            NoParentCommitError: If the commit is a root commit.
        """
        cid = CommitId.parse(commit_id)
        log = self._logger.bind(commit_id=str(cid))

        commit = await self.storage.database.get_commit(cid)
        if commit is None:
            raise CommitNotFoundError(f"Commit not found: {cid}")

        repository = await self.storage.database.get_repository(commit.repo_id)
        if repository is None:
            raise RepositoryNotFoundError(f"Repository not found: {commit.repo_id}")

        locator = parse_repository_url(repository.github_url).require()
        owner, name = locator.owner or "", locator.name or ""

        detail = await self.github.get_commit(owner, name, commit.sha)
        parent_sha = detail.first_parent
        if parent_sha is None:
            raise NoParentCommitError(f"Commit has no parent: {cid}")

        entries = await self.github.get_tree(owner, name, parent_sha)
        files = await fetch_file_contents(
            self.github, owner, name, [e.path for e in blob_entries(entries)], parent_sha
        )
        log.info(
            "parent_tree_captured",
            parent_sha=parent_sha,
            files=len(files),
            failed=sum(1 for f in files if not f.ok),
        )

        context = await self.ai.analyze_codebase(entries, repository.name)
        draft = await self.ai.generate_tutorial_content(
            detail, detail.files, repository.name, context
        )

        tutorial = Tutorial(commit_id=str(cid), title=draft.title, description=draft.description)
        content = TutorialContent(
            tutorial_id=tutorial.id,
            steps=draft_to_steps(draft),
            file_tree=build_file_tree(files),
            parent_sha=parent_sha,
        )

        await self.storage.blobs.store_tutorial_content(content)
        await self.storage.database.create_tutorial(tutorial)
        await self._cache(content)

        log.info(
            "tutorial_generated",
            tutorial_id=tutorial.id,
            steps=len(content.steps),
            fallback=draft.is_fallback,
        )
        return GeneratedTutorial(tutorial=tutorial, content=content, is_fallback=draft.is_fallback)

    async def get_tutorial_with_content(self, tutorial_id: str) -> GeneratedTutorial:
        """Load a tutorial and its content, preferring the cached copy.

        Raises:
            TutorialNotFoundError: If there is no such tutorial.
            TutorialContentNotFoundError: If its content blob is missing.
        """
        tutorial = await self.storage.database.get_tutorial(tutorial_id)
        if tutorial is None:
            raise TutorialNotFoundError(f"Tutorial not found: {tutorial_id}")

        content = await self.storage.kv.get_cached_tutorial_content(tutorial_id)
        if content is None:
            content = await self.storage.blobs.get_tutorial_content(tutorial_id)
            if content is None:
                raise TutorialContentNotFoundError(f"Tutorial content not found: {tutorial_id}")
            await self._cache(content)

        return GeneratedTutorial(tutorial=tutorial, content=content)

    async def get_tutorials_by_repo(self, repo_id: str) -> list[Tutorial]:
        return await self.storage.database.get_tutorials_by_repo(repo_id)

    async def generate_for_repo(
        self, repo_id: str, limit: int = DEFAULT_REPO_TUTORIAL_LIMIT
    ) -> list[GeneratedTutorial]:
        """Generate tutorials for a repository's most recent commits.

        A commit that fails is logged and skipped.

        Args:
            repo_id: Repository id.
            limit: How many of the newest stored commits to use.

        Returns:
            The tutorials that were generated, newest commit first.
        """
        commits = await self.storage.database.get_commits_by_repo(repo_id, limit)
        results: list[GeneratedTutorial] = []

        for commit in commits:
            try:
                results.append(await self.generate(commit.id))
            except Exception as e:
                self._logger.warning(
                    "tutorial_generation_failed", commit_id=commit.id, error=str(e)
                )

        self._logger.info(
            "repo_tutorials_generated", repo_id=repo_id, generated=len(results), total=len(commits)
        )
        return results

    async def _cache(self, content: TutorialContent) -> None:
        """Cache content in the key-value store; failures only cost a cache miss."""
        try:
            await self.storage.kv.cache_tutorial_content(content)
        except Exception as e:
            self._logger.warning(
                "tutorial_cache_failed", tutorial_id=content.tutorial_id, error=str(e)
            )
