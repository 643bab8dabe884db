"""SQLAlchemy ORM tables for the relational store."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, TypeDecorator, func
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class UTCDateTime(TypeDecorator[datetime]):
    """Timezone-aware datetime that always reads back in UTC.

    SQLite drops the offset on storage, so values are normalized to UTC on
    the way in and tagged as UTC on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is not None and value.tzinfo is not None:
            return value.astimezone(UTC)
        return value

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class Base(DeclarativeBase):
    pass


class RepositoryRow(Base):
    __tablename__ = "repositories"

    id: Mapped[str] = mapped_column(String(200), primary_key=True)
    github_url: Mapped[str] = mapped_column(String(500), unique=True)
    name: Mapped[str] = mapped_column(String(200))
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "github_url": self.github_url,
            "name": self.name,
            "created_at": self.created_at,
        }


class CommitRow(Base):
    __tablename__ = "commits"

    id: Mapped[str] = mapped_column(String(250), primary_key=True)
    repo_id: Mapped[str] = mapped_column(
        String(200), ForeignKey("repositories.id", ondelete="CASCADE"), index=True
    )
    sha: Mapped[str] = mapped_column(String(40))
    message: Mapped[str] = mapped_column(Text)
    author: Mapped[str] = mapped_column(String(200))
    date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    is_learning_worthy: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "repo_id": self.repo_id,
            "sha": self.sha,
            "message": self.message,
            "author": self.author,
            "date": self.date,
            "is_learning_worthy": self.is_learning_worthy,
            "created_at": self.created_at,
        }


class TutorialRow(Base):
    __tablename__ = "tutorials"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    commit_id: Mapped[str] = mapped_column(
        String(250), ForeignKey("commits.id", ondelete="CASCADE"), index=True
    )
    title: Mapped[str] = mapped_column(String(500))
    description: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "commit_id": self.commit_id,
            "title": self.title,
            "description": self.description,
            "created_at": self.created_at,
        }


class LearnerSessionRow(Base):
    __tablename__ = "learner_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tutorial_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tutorials.id", ondelete="CASCADE"), index=True
    )
    current_step: Mapped[int] = mapped_column(Integer, default=0)
    started_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
    )
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tutorial_id": self.tutorial_id,
            "current_step": self.current_step,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }
