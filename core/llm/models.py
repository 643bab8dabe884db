"""Pydantic models for AI-generated content.

Everything here is parsed from model output. Unknown keys are ignored and
only the fields a tutorial cannot do without are required.
"""

from pydantic import BaseModel, ConfigDict, Field


class DraftStep(BaseModel):
    """A tutorial step as proposed by the model, before it is given an id."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str = Field(..., min_length=1, description="Step title")
    description: str = Field(default="", description="What to do")
    instructions: str = Field(default="", description="Detailed instructions")
    code_example: str | None = Field(
        default=None, alias="codeExample", description="Optional code example"
    )
    hints: list[str] = Field(default_factory=list, description="Helpful hints")


class TutorialDraft(BaseModel):
    """Tutorial outline produced for a commit.

    Attributes:
        title: Tutorial title.
        description: What the learner will build.
        steps: Ordered steps, never empty.
        is_fallback: True when the deterministic template was used.
    """

    model_config = ConfigDict(frozen=True)

    title: str = Field(..., min_length=1, description="Tutorial title")
    description: str = Field(default="", description="Tutorial description")
    steps: list[DraftStep] = Field(..., min_length=1, description="Ordered steps")
    is_fallback: bool = Field(default=False, description="Template fallback was used")


class RepositoryProfile(BaseModel):
    """High-level facts about a repository."""

    model_config = ConfigDict(frozen=True)

    name: str = "Unknown"
    owner: str = "Unknown"
    language: str = "Unknown"
    framework: str | None = None
    architecture: str | None = None


class FileStructure(BaseModel):
    """Notable files grouped by role."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    main_files: list[str] = Field(default_factory=list, alias="mainFiles")
    config_files: list[str] = Field(default_factory=list, alias="configFiles")
    test_files: list[str] = Field(default_factory=list, alias="testFiles")
    documentation_files: list[str] = Field(default_factory=list, alias="documentationFiles")


class CodePatterns(BaseModel):
    """Recurring code patterns."""

    model_config = ConfigDict(frozen=True)

    imports: list[str] = Field(default_factory=list)
    functions: list[str] = Field(default_factory=list)
    classes: list[str] = Field(default_factory=list)
    patterns: list[str] = Field(default_factory=list)


class RelatedFile(BaseModel):
    """A file relevant to the current tutorial."""

    model_config = ConfigDict(frozen=True)

    path: str
    relevance: str = ""


class CodebaseContext(BaseModel):
    """Summary of a codebase used to ground tutorial generation.

    Attributes:
        repository: Language, framework and architecture.
        file_structure: Notable files by role.
        code_patterns: Recurring patterns.
        related_files: Files worth reading alongside the tutorial.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    repository: RepositoryProfile = Field(default_factory=RepositoryProfile)
    file_structure: FileStructure = Field(default_factory=FileStructure, alias="fileStructure")
    code_patterns: CodePatterns = Field(default_factory=CodePatterns, alias="codePatterns")
    related_files: list[RelatedFile] = Field(default_factory=list, alias="relatedFiles")
