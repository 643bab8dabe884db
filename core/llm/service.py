"""AI collaborator for tutorial generation.

TutorAIService wraps an LLMClient with the prompts in ``prompts`` and turns
model output into validated models. Model output is never trusted: anything
that is not a JSON object matching the expected shape, an LLM outage, or a
missing client all degrade to deterministic templates so that tutorial
creation never blocks on the model.
"""

import json
import re
from collections import Counter
from typing import Any, Literal, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from core.analysis import file_extension
from core.storage.kv import KeyValueStore
from core.storage.models import ConversationMessage
from integrations.github import GitHubCommit, GitHubFile, TreeEntry, TreeEntryType

from .client import LLMClient
from .models import (
    CodebaseContext,
    CodePatterns,
    DraftStep,
    FileStructure,
    RepositoryProfile,
    TutorialDraft,
)
from .prompts import (
    CODEBASE_TEMPLATE,
    HELP_TEMPLATE,
    TUTORIAL_TEMPLATE,
    build_codebase_prompt,
    build_help_prompt,
    build_tutorial_prompt,
)

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

# Turns of history included in a help prompt
HELP_HISTORY_TURNS = 10

FALLBACK_DESCRIPTION = "Step-by-step implementation guide based on the commit changes."

_LANGUAGES = {
    "py": "Python",
    "ts": "TypeScript",
    "tsx": "TypeScript",
    "js": "JavaScript",
    "jsx": "JavaScript",
    "go": "Go",
    "rs": "Rust",
    "java": "Java",
    "kt": "Kotlin",
    "rb": "Ruby",
    "php": "PHP",
    "c": "C",
    "cpp": "C++",
    "cs": "C#",
    "swift": "Swift",
}

_MAIN_FILE_MARKERS = ("index.", "main.", "app.", "__main__.")
_CONFIG_MARKERS = ("config", "package.json", "pyproject.toml", "setup.cfg", "cargo.toml")
_TEST_MARKERS = ("test", "spec")
_DOC_MARKERS = ("readme", ".md", "docs/")


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Parse the outermost ``{...}`` span of ``text``, if it is a JSON object."""
    match = _JSON_OBJECT.search(text)
    if match is None:
        return None
    try:
        value = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


def fallback_tutorial(commit: GitHubCommit | None) -> TutorialDraft:
    """Deterministic three-step outline used when the model is unavailable."""
    title = "Learn from this commit"
    if commit is not None:
        first_line = commit.message.splitlines()[0].strip() if commit.message.strip() else ""
        if first_line:
            title = f"Learn: {first_line}"

    return TutorialDraft(
        title=title,
        description=FALLBACK_DESCRIPTION,
        is_fallback=True,
        steps=[
            DraftStep(
                title="Understand the Changes",
                description="Review what was modified",
                instructions="Study the commit message and file changes to understand the goal.",
                hints=["Look at the commit message for context", "Check which files were modified"],
            ),
            DraftStep(
                title="Plan Your Implementation",
                description="Break down the approach",
                instructions="Think about the implementation strategy and required changes.",
                hints=["Start with the main functionality", "Consider edge cases"],
            ),
            DraftStep(
                title="Implement the Changes",
                description="Write the code",
                instructions=(
                    "Implement the feature following the same patterns as the original commit."
                ),
                hints=["Follow existing code patterns", "Add proper error handling"],
            ),
        ],
    )


def fallback_codebase_context(entries: list[TreeEntry], repository: str) -> CodebaseContext:
    """Summarize a codebase from its file paths alone."""
    paths = [e.path for e in entries if e.type == TreeEntryType.BLOB]
    lowered = [(p, p.lower()) for p in paths]

    languages = Counter(
        _LANGUAGES[ext] for ext in map(file_extension, paths) if ext in _LANGUAGES
    )
    language = languages.most_common(1)[0][0] if languages else "Unknown"

    owner, _, name = repository.rpartition("/")

    return CodebaseContext(
        repository=RepositoryProfile(
            name=name or repository, owner=owner or "Unknown", language=language
        ),
        file_structure=FileStructure(
            main_files=[
                p for p, low in lowered
                if any(m in low.rsplit("/", 1)[-1] for m in _MAIN_FILE_MARKERS)
            ][:5],
            config_files=[p for p, low in lowered if any(m in low for m in _CONFIG_MARKERS)],
            test_files=[p for p, low in lowered if any(m in low for m in _TEST_MARKERS)],
            documentation_files=[
                p for p, low in lowered if any(m in low for m in _DOC_MARKERS)
            ],
        ),
        code_patterns=CodePatterns(
            patterns=[f"Standard {language} patterns"] if languages else []
        ),
    )


def fallback_help(question: str, current_step: str) -> str:
    return (
        f'I\'d be happy to help with "{question}"!\n\n'
        f'For the current step "{current_step}", I recommend:\n'
        "- Review the tutorial instructions carefully\n"
        "- Check the existing code patterns in the repository\n"
        "- Start with a simple implementation and iterate\n\n"
        "Feel free to ask more specific questions!"
    )


class TutorAIService:
    """Generates tutorial outlines, codebase summaries and help answers.

    Attributes:
        llm: Model client, or None to always use the templates.
        kv: Key-value store holding conversation memory, or None.
    """

    def __init__(self, llm: LLMClient | None = None, kv: KeyValueStore | None = None) -> None:
        self.llm = llm
        self.kv = kv
        self._logger = logger.bind(component="tutor_ai")

    async def generate_tutorial_content(
        self,
        commit: GitHubCommit,
        files: list[GitHubFile],
        repository: str,
        codebase_context: CodebaseContext | None = None,
    ) -> TutorialDraft:
        """Produce a tutorial outline for a commit.

        Args:
            commit: Commit detail.
            files: Files changed by the commit.
            repository: Repository name shown to the model.
            codebase_context: Optional summary of the codebase.

        Returns:
            A draft with at least one step. Falls back to the template when
            the model fails or its output does not validate.
        """
        if self.llm is None:
            return fallback_tutorial(commit)

        prompt = build_tutorial_prompt(commit, files, repository, codebase_context)
        draft = await self._ask(
            TUTORIAL_TEMPLATE.system_prompt, prompt, TUTORIAL_TEMPLATE.sampling, TutorialDraft
        )
        if draft is None:
            self._logger.info("tutorial_fallback_used", sha=commit.sha)
            return fallback_tutorial(commit)
        return draft

    async def analyze_codebase(self, entries: list[TreeEntry], repository: str) -> CodebaseContext:
        """Summarize a codebase's structure for tutorial grounding.

        Args:
            entries: Flat tree listing.
            repository: Repository name (``owner/name``).

        Returns:
            Model-produced summary, or one derived from file paths.
        """
        if self.llm is None:
            return fallback_codebase_context(entries, repository)

        prompt = build_codebase_prompt(entries, repository)
        context = await self._ask(
            CODEBASE_TEMPLATE.system_prompt, prompt, CODEBASE_TEMPLATE.sampling, CodebaseContext
        )
        return context or fallback_codebase_context(entries, repository)

    async def get_contextual_help(
        self,
        question: str,
        current_step: str,
        repository: str,
        session_id: str | None = None,
        file_name: str | None = None,
        selected_code: str | None = None,
        codebase_context: CodebaseContext | None = None,
    ) -> str:
        """Answer a learner question, remembering the exchange per session.

        Conversation memory is best effort: an unreadable history is treated
        as empty, and a failed write is logged while the answer is still
        returned.

        Returns:
            The model's answer, or a canned hint when the model fails.
        """
        history = await self._read_history(session_id) if session_id else []
        prompt = build_help_prompt(
            question,
            current_step,
            repository,
            file_name=file_name,
            selected_code=selected_code,
            context=codebase_context,
            history=[(m.role, m.content) for m in history[-HELP_HISTORY_TURNS:]],
        )

        if self.llm is None:
            return fallback_help(question, current_step)

        try:
            response = await self.llm.complete(
                HELP_TEMPLATE.system_prompt, prompt, **HELP_TEMPLATE.sampling
            )
        except Exception as e:
            self._logger.warning("help_request_failed", error=str(e))
            return fallback_help(question, current_step)

        if session_id:
            try:
                await self.add_to_conversation(session_id, "user", question)
                await self.add_to_conversation(session_id, "assistant", response.content)
            except Exception as e:
                self._logger.warning(
                    "conversation_write_failed", session_id=session_id, error=str(e)
                )
        return response.content

    async def _read_history(self, session_id: str) -> list[ConversationMessage]:
        try:
            return await self.get_conversation(session_id)
        except Exception as e:
            self._logger.warning("conversation_read_failed", session_id=session_id, error=str(e))
            return []

    async def add_to_conversation(
        self,
        session_id: str,
        role: Literal["user", "assistant"],
        content: str,
    ) -> list[ConversationMessage]:
        """Append a turn to a session's conversation memory."""
        if self.kv is None:
            return []
        return await self.kv.add_conversation_message(
            session_id, ConversationMessage(role=role, content=content)
        )

    async def get_conversation(self, session_id: str) -> list[ConversationMessage]:
        """Remembered turns for a session, oldest first."""
        if self.kv is None:
            return []
        return await self.kv.get_conversation(session_id)

    async def _ask(
        self, system: str, user: str, sampling: dict[str, Any], model: type[ModelT]
    ) -> ModelT | None:
        """Call the model and validate its JSON answer, or return None."""
        if self.llm is None:
            return None
        try:
            response = await self.llm.complete(system, user, **sampling)
        except Exception as e:
            self._logger.warning("llm_request_failed", error=str(e))
            return None

        payload = extract_json_object(response.content)
        if payload is None:
            self._logger.warning("llm_response_not_json", model=model.__name__)
            return None
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            self._logger.warning(
                "llm_response_invalid", model=model.__name__, errors=e.error_count()
            )
            return None
