"""Prompt templates for tutorial generation.

This module defines the prompts sent to the model for turning a commit into
a tutorial, summarizing a codebase, and answering learner questions, along
with helpers that render commits, file lists and context into prompt text.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from integrations.github import GitHubCommit, GitHubFile, TreeEntry

from .models import CodebaseContext


class PromptKind(str, Enum):
    """Kinds of prompts sent to the model."""

    TUTORIAL = "tutorial"  # Commit to tutorial outline
    CODEBASE = "codebase"  # Repository structure summary
    HELP = "help"  # Learner question during a session


class PromptTemplate(BaseModel):
    """A prompt template for LLM calls.

    Attributes:
        kind: What this template is used for.
        system_prompt: System message for the LLM.
        user_template: Template for the user message with placeholders.
        max_tokens: Output token budget.
        temperature: Sampling temperature.
    """

    model_config = ConfigDict(frozen=True)

    kind: PromptKind = Field(..., description="Prompt kind")
    system_prompt: str = Field(..., description="System prompt")
    user_template: str = Field(..., description="User message template")
    max_tokens: int = Field(default=2000, description="Max output tokens")
    temperature: float = Field(default=0.7, description="Temperature")

    def format_user_message(self, **kwargs: Any) -> str:
        """Format the user message with provided values.

        Args:
            **kwargs: Template variables.

        Returns:
            Formatted user message.
        """
        return self.user_template.format(**kwargs)

    @property
    def sampling(self) -> dict[str, Any]:
        """Keyword arguments for ``LLMClient.complete``."""
        return {"max_tokens": self.max_tokens, "temperature": self.temperature}


# =============================================================================
# System Prompts
# =============================================================================

SYSTEM_PROMPT_TUTORIAL = """You are an expert coding instructor with deep knowledge of codebases. Create step-by-step tutorials for developers to learn from real commits. Focus on teaching patterns, concepts, and best practices. Use the codebase context to provide relevant, specific guidance."""

SYSTEM_PROMPT_CODEBASE = """You are an expert codebase analyst. Analyze repository structure and provide detailed context about patterns, architecture, and relationships."""

SYSTEM_PROMPT_HELP = """You are a helpful coding mentor with deep knowledge of the codebase. Provide clear, encouraging guidance that considers the broader context and patterns in the repository. Remember previous conversations to provide consistent, helpful responses."""


# =============================================================================
# User Message Templates
# =============================================================================

USER_TEMPLATE_TUTORIAL = """Create a step-by-step tutorial for this commit:

COMMIT DETAILS:
- Message: {message}
- Author: {author}
- Repository: {repository}
- Files changed: {file_count}
- Lines changed: {lines_changed}

FILES CHANGED:
{file_changes}{context_section}

Create a tutorial with:
1. A clear, engaging title (max 60 chars)
2. A brief description of what the learner will build (max 150 chars)
3. 3-5 step-by-step instructions that guide implementation
4. Each step should include:
   - Clear title (max 40 chars)
   - Description of what to do (max 100 chars)
   - Detailed instructions (max 300 chars)
   - Code example if applicable
   - Helpful hints

Focus on teaching the patterns and concepts, not just copying code.
Make it beginner-friendly but educational.

Format as JSON:
{{
  "title": "...",
  "description": "...",
  "steps": [
    {{
      "title": "...",
      "description": "...",
      "instructions": "...",
      "codeExample": "...",
      "hints": ["...", "..."]
    }}
  ]
}}"""

USER_TEMPLATE_CODEBASE = """Analyze this codebase structure and provide context:

REPOSITORY: {repository}
FILES: {file_count} files

FILE STRUCTURE:
{file_list}

Analyze and provide:
1. Primary programming language and framework
2. Architecture patterns (MVC, microservices, etc.)
3. Key files and their purposes
4. Common code patterns and imports
5. Related files that work together

Format as JSON with keys: repository, fileStructure, codePatterns, relatedFiles."""

USER_TEMPLATE_HELP = """Answer this question in the context of a coding tutorial:

Question: {question}

Context:
- Current Step: {current_step}
- File: {file_name}
- Repository: {repository}{context_section}{history_section}{selected_code}

Provide a helpful, specific answer that guides the learner. Be encouraging and educational."""


# =============================================================================
# Prompt Templates
# =============================================================================

TUTORIAL_TEMPLATE = PromptTemplate(
    kind=PromptKind.TUTORIAL,
    system_prompt=SYSTEM_PROMPT_TUTORIAL,
    user_template=USER_TEMPLATE_TUTORIAL,
    max_tokens=2000,
    temperature=0.7,
)

CODEBASE_TEMPLATE = PromptTemplate(
    kind=PromptKind.CODEBASE,
    system_prompt=SYSTEM_PROMPT_CODEBASE,
    user_template=USER_TEMPLATE_CODEBASE,
    max_tokens=1500,
    temperature=0.4,
)

HELP_TEMPLATE = PromptTemplate(
    kind=PromptKind.HELP,
    system_prompt=SYSTEM_PROMPT_HELP,
    user_template=USER_TEMPLATE_HELP,
    max_tokens=600,
    temperature=0.6,
)


# =============================================================================
# Rendering helpers
# =============================================================================


def format_file_changes(files: list[GitHubFile]) -> str:
    """One line per changed file: ``- path (status): +adds -dels``."""
    return "\n".join(
        f"- {f.filename} ({f.status.value}): +{f.additions} -{f.deletions}" for f in files
    )


def format_codebase_context(context: CodebaseContext | None) -> str:
    """Render a codebase summary as a prompt section, or nothing."""
    if context is None:
        return ""

    repo = context.repository
    lines = [
        "",
        "",
        "CODEBASE CONTEXT:",
        f"- Language: {repo.language}",
        f"- Framework: {repo.framework or 'Not specified'}",
        f"- Architecture: {repo.architecture or 'Not specified'}",
    ]
    if context.file_structure.main_files:
        lines += ["", "KEY FILES:"] + [f"- {f}" for f in context.file_structure.main_files]
    if context.code_patterns.patterns:
        lines += ["", "CODE PATTERNS:"] + [f"- {p}" for p in context.code_patterns.patterns]
    if context.related_files:
        lines += ["", "RELATED FILES:"] + [
            f"- {f.path}: {f.relevance}" for f in context.related_files
        ]
    return "\n".join(lines)


def build_tutorial_prompt(
    commit: GitHubCommit,
    files: list[GitHubFile],
    repository: str,
    context: CodebaseContext | None = None,
) -> str:
    """Build the user message asking for a tutorial outline."""
    return TUTORIAL_TEMPLATE.format_user_message(
        message=commit.message,
        author=commit.author.name,
        repository=repository,
        file_count=len(files),
        lines_changed=sum(f.additions + f.deletions for f in files),
        file_changes=format_file_changes(files),
        context_section=format_codebase_context(context),
    )


def build_codebase_prompt(entries: list[TreeEntry], repository: str) -> str:
    """Build the user message asking for a codebase summary."""
    return CODEBASE_TEMPLATE.format_user_message(
        repository=repository,
        file_count=len(entries),
        file_list="\n".join(f"- {e.path} ({e.type.value})" for e in entries),
    )


def build_help_prompt(
    question: str,
    current_step: str,
    repository: str,
    file_name: str | None = None,
    selected_code: str | None = None,
    context: CodebaseContext | None = None,
    history: list[tuple[str, str]] | None = None,
) -> str:
    """Build the user message for a learner question.

    Args:
        question: The learner's question.
        current_step: Title of the step the learner is on.
        repository: Repository name.
        file_name: File the learner has open.
        selected_code: Code the learner selected.
        context: Optional codebase summary.
        history: Recent (role, content) turns, oldest first.
    """
    history_section = ""
    if history:
        turns = "\n".join(f"{role.upper()}: {content}" for role, content in history)
        history_section = f"\n\nRECENT CONVERSATION HISTORY:\n{turns}"

    return HELP_TEMPLATE.format_user_message(
        question=question,
        current_step=current_step,
        file_name=file_name or "Not specified",
        repository=repository,
        context_section=format_codebase_context(context),
        history_section=history_section,
        selected_code=f"\n- Selected Code:\n```\n{selected_code}\n```" if selected_code else "",
    )
