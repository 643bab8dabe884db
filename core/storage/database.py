"""Relational store backed by SQLAlchemy's async engine.

Repositories, commits, tutorials and learner sessions live here. Commits
and tutorials are append-only; only session progress and completion are
ever updated. Uniqueness of repositories (by id and URL) and commits (by
composite id) is enforced by the schema, not by read-then-write checks.
"""

from datetime import datetime
from pathlib import Path

import structlog
from sqlalchemy import select, text
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from core.errors import (
    CommitExistsError,
    RepositoryExistsError,
    SessionNotFoundError,
)
from core.ids import CommitId

from .models import Commit, LearnerSession, Repository, Tutorial, utcnow
from .tables import Base, CommitRow, LearnerSessionRow, RepositoryRow, TutorialRow

logger = structlog.get_logger(__name__)

DEFAULT_COMMIT_PAGE = 50


def to_async_url(url: str) -> str:
    """Convert a plain SQLite URL to its aiosqlite form."""
    if url.startswith("sqlite:///"):
        return "sqlite+aiosqlite:///" + url[len("sqlite:///") :]
    return url


class RelationalStore:
    """Async relational store for the onboarder's queryable records."""

    def __init__(self, url: str | None = None, engine: AsyncEngine | None = None) -> None:
        """Initialize the store.

        Args:
            url: Database URL (``sqlite:///`` URLs are converted to aiosqlite).
            engine: Pre-built engine; takes precedence over ``url``.
        """
        if engine is None:
            if url is None:
                raise ValueError("Either url or engine is required")
            engine = create_async_engine(to_async_url(url))
        self._engine = engine
        self._session_factory = async_sessionmaker(engine, expire_on_commit=False)
        self._logger = logger.bind(component="relational_store")

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def initialize(self) -> None:
        """Create tables if they do not exist."""
        url = self._engine.url
        database = url.database
        if url.get_backend_name() == "sqlite" and database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self._logger.info("tables_created")

    async def close(self) -> None:
        """Dispose of the engine's connection pool."""
        await self._engine.dispose()

    async def health_check(self) -> bool:
        """Check the database answers a trivial query.

        Returns:
            True if healthy, False otherwise.
        """
        try:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            self._logger.error("health_check_failed", error=str(e))
            return False

    def _session(self) -> AsyncSession:
        return self._session_factory()

    # Repositories

    async def create_repository(self, repository: Repository) -> Repository:
        """Insert a repository.

        Raises:
            RepositoryExistsError: If the id or URL is already stored.
        """
        row = RepositoryRow(**repository.model_dump())
        try:
            async with self._session() as session, session.begin():
                session.add(row)
        except IntegrityError as e:
            raise RepositoryExistsError(
                f"Repository already exists: {repository.github_url}"
            ) from e
        return repository

    async def get_repository(self, repo_id: str) -> Repository | None:
        async with self._session() as session:
            row = await session.get(RepositoryRow, repo_id)
            return Repository.model_validate(row.to_dict()) if row else None

    async def get_repository_by_url(self, github_url: str) -> Repository | None:
        async with self._session() as session:
            result = await session.execute(
                select(RepositoryRow).where(RepositoryRow.github_url == github_url)
            )
            row = result.scalar_one_or_none()
            return Repository.model_validate(row.to_dict()) if row else None

    async def list_repositories(self, limit: int | None = None) -> list[Repository]:
        stmt = select(RepositoryRow).order_by(RepositoryRow.created_at.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._session() as session:
            result = await session.execute(stmt)
            return [Repository.model_validate(r.to_dict()) for r in result.scalars().all()]

    # Commits

    async def create_commit(self, commit: Commit) -> Commit:
        """Insert a commit.

        Raises:
            CommitExistsError: If the composite id is already stored.
        """
        row = CommitRow(**commit.model_dump())
        try:
            async with self._session() as session, session.begin():
                session.add(row)
        except IntegrityError as e:
            raise CommitExistsError(f"Commit already exists: {commit.id}") from e
        return commit

    async def get_commit(self, commit_id: CommitId | str) -> Commit | None:
        async with self._session() as session:
            row = await session.get(CommitRow, str(commit_id))
            return Commit.model_validate(row.to_dict()) if row else None

    async def get_commits_by_repo(
        self, repo_id: str, limit: int | None = DEFAULT_COMMIT_PAGE
    ) -> list[Commit]:
        """List a repository's commits, newest first."""
        stmt = (
            select(CommitRow)
            .where(CommitRow.repo_id == repo_id)
            .order_by(CommitRow.date.desc(), CommitRow.created_at.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._session() as session:
            result = await session.execute(stmt)
            return [Commit.model_validate(r.to_dict()) for r in result.scalars().all()]

    async def list_commit_shas(self, repo_id: str) -> set[str]:
        """All stored commit shas for a repository."""
        async with self._session() as session:
            result = await session.execute(
                select(CommitRow.sha).where(CommitRow.repo_id == repo_id)
            )
            return set(result.scalars().all())

    # Tutorials

    async def create_tutorial(self, tutorial: Tutorial) -> Tutorial:
        async with self._session() as session, session.begin():
            session.add(TutorialRow(**tutorial.model_dump()))
        return tutorial

    async def get_tutorial(self, tutorial_id: str) -> Tutorial | None:
        async with self._session() as session:
            row = await session.get(TutorialRow, tutorial_id)
            return Tutorial.model_validate(row.to_dict()) if row else None

    async def get_tutorials_by_commit(self, commit_id: CommitId | str) -> list[Tutorial]:
        async with self._session() as session:
            result = await session.execute(
                select(TutorialRow)
                .where(TutorialRow.commit_id == str(commit_id))
                .order_by(TutorialRow.created_at.desc())
            )
            return [Tutorial.model_validate(r.to_dict()) for r in result.scalars().all()]

    async def get_tutorials_by_repo(self, repo_id: str) -> list[Tutorial]:
        """List tutorials generated from any of a repository's commits."""
        async with self._session() as session:
            result = await session.execute(
                select(TutorialRow)
                .join(CommitRow, TutorialRow.commit_id == CommitRow.id)
                .where(CommitRow.repo_id == repo_id)
                .order_by(TutorialRow.created_at.desc())
            )
            return [Tutorial.model_validate(r.to_dict()) for r in result.scalars().all()]

    # Learner sessions

    async def create_session(self, learner_session: LearnerSession) -> LearnerSession:
        async with self._session() as session, session.begin():
            session.add(LearnerSessionRow(**learner_session.model_dump()))
        return learner_session

    async def get_session(self, session_id: str) -> LearnerSession | None:
        async with self._session() as session:
            row = await session.get(LearnerSessionRow, session_id)
            return LearnerSession.model_validate(row.to_dict()) if row else None

    async def update_session_progress(self, session_id: str, current_step: int) -> None:
        """Move a session's step cursor.

        Raises:
            SessionNotFoundError: If the session does not exist.
        """
        await self._update_session(session_id, current_step=current_step)

    async def complete_session(
        self, session_id: str, completed_at: datetime | None = None
    ) -> None:
        """Mark a session as completed.

        Raises:
            SessionNotFoundError: If the session does not exist.
        """
        await self._update_session(session_id, completed_at=completed_at or utcnow())

    async def _update_session(self, session_id: str, **values: object) -> None:
        async with self._session() as session, session.begin():
            result = await session.execute(
                sa_update(LearnerSessionRow)
                .where(LearnerSessionRow.id == session_id)
                .values(**values)
            )
            rowcount: int = getattr(result, "rowcount", 0) or 0
        if rowcount == 0:
            raise SessionNotFoundError(f"Session not found: {session_id}")
