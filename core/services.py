"""Composition root for the onboarding core.

Builds the GitHub client, storage facade, AI collaborator and the
pipelines on top of them from one ``Settings`` instance, and owns their
startup and shutdown. Components never look each other up; everything is
passed in here.
"""

from typing import Any

import structlog

from core.config import Settings, get_settings
from core.ingestion import IngestionPipeline
from core.llm import ClaudeClient, LLMClient, LLMConfig, TutorAIService
from core.storage import StorageFacade
from core.tutorial import LearnerSessionService, TutorialContentPipeline
from core.workspace import WorkspaceMaterializer
from core.workspace.materializer import MAX_FILE_SIZE
from integrations.github import GitHubClient, GitHubClientConfig

logger = structlog.get_logger(__name__)


class Onboarder:
    """Every service of the onboarder, wired together.

    Attributes:
        github: GitHub client shared by all pipelines.
        storage: Storage facade.
        ai: Tutorial-generation collaborator.
        ingestion: Repository ingestion pipeline.
        tutorials: Tutorial generation and loading.
        sessions: Learner session state machine.
        workspaces: Workspace snapshot materializer.
    """

    def __init__(
        self,
        github: GitHubClient,
        storage: StorageFacade,
        llm: LLMClient | None = None,
        default_commit_limit: int = 50,
        refresh_commit_limit: int = 20,
        max_file_size: int = MAX_FILE_SIZE,
        name: str = "Codebase Onboarder",
    ) -> None:
        self.name = name
        self.github = github
        self.storage = storage
        self.llm = llm
        self.ai = TutorAIService(llm, storage.kv)
        self.ingestion = IngestionPipeline(
            github,
            storage,
            default_commit_limit=default_commit_limit,
            refresh_commit_limit=refresh_commit_limit,
        )
        self.tutorials = TutorialContentPipeline(github, storage, self.ai)
        self.sessions = LearnerSessionService(storage, self.tutorials)
        self.workspaces = WorkspaceMaterializer(github, storage, max_file_size)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "Onboarder":
        """Build the production wiring.

        Without an Anthropic API key no model is used and tutorials come
        from the deterministic template.
        """
        settings = settings or get_settings()
        github = GitHubClient(
            GitHubClientConfig(
                access_token=settings.github_token,
                base_url=settings.github_api_url,
                user_agent=settings.github_user_agent,
                timeout=settings.github_timeout,
            )
        )
        llm = None
        if settings.anthropic_api_key:
            llm = ClaudeClient(settings.anthropic_api_key, LLMConfig(model=settings.llm_model))

        return cls(
            github=github,
            storage=StorageFacade.from_settings(settings),
            llm=llm,
            default_commit_limit=settings.default_commit_limit,
            refresh_commit_limit=settings.refresh_commit_limit,
            max_file_size=settings.workspace_max_file_size,
            name=settings.app_name,
        )

    async def start(self) -> None:
        """Create tables and the vector collection."""
        logger.info("onboarder_starting", name=self.name, llm_enabled=self.llm is not None)
        await self.storage.initialize()

    async def close(self) -> None:
        """Release HTTP pools and storage connections."""
        await self.github.close()
        if self.llm is not None:
            await self.llm.close()
        await self.storage.close()
        logger.info("onboarder_stopped", name=self.name)

    async def __aenter__(self) -> "Onboarder":
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
