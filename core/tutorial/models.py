"""Pydantic models for the tutorial module."""

from pydantic import BaseModel, ConfigDict, Field

from core.storage.models import FileNode, LearnerSession, Tutorial, TutorialContent, TutorialStep


class GeneratedTutorial(BaseModel):
    """A tutorial row together with its stored content.

    Attributes:
        tutorial: Relational metadata.
        content: Steps, file tree and parent sha.
        is_fallback: True when the steps came from the template rather than
            the model. Only meaningful right after generation.
    """

    model_config = ConfigDict(frozen=True)

    tutorial: Tutorial = Field(..., description="Tutorial metadata")
    content: TutorialContent = Field(..., description="Tutorial content")
    is_fallback: bool = Field(default=False, description="Template steps were used")


class TutorialSessionView(BaseModel):
    """Everything a learner needs to render the current session state.

    Attributes:
        session: Session progress.
        tutorial: Tutorial metadata.
        content: Full tutorial content.
    """

    model_config = ConfigDict(frozen=True)

    session: LearnerSession
    tutorial: Tutorial
    content: TutorialContent

    @property
    def current_step_content(self) -> TutorialStep:
        return self.content.steps[self.session.current_step]

    @property
    def total_steps(self) -> int:
        return len(self.content.steps)

    @property
    def file_tree(self) -> list[FileNode] | None:
        return self.content.file_tree

    @property
    def parent_sha(self) -> str | None:
        return self.content.parent_sha

    @property
    def is_last_step(self) -> bool:
        return self.session.current_step == self.total_steps - 1
