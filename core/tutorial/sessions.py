"""Learner sessions: progress through a tutorial's steps.

A session moves forward and back one step at a time and completes when the
learner moves past the last step or completes it explicitly. Completed
sessions never reopen; any further move returns the session unchanged.
"""

import structlog

from core.errors import SessionNotFoundError
from core.storage import LearnerSession, LearnerWorkspace, SessionState, StorageFacade
from core.storage.models import utcnow

from .generator import TutorialContentPipeline
from .models import TutorialSessionView

logger = structlog.get_logger(__name__)


class LearnerSessionService:
    """Drives the learner session state machine.

    The relational row is the source of truth; a copy of the progress is
    mirrored to the key-value store for quick reads.

    Attributes:
        storage: Storage facade.
        tutorials: Pipeline used to load tutorial content.
    """

    def __init__(self, storage: StorageFacade, tutorials: TutorialContentPipeline) -> None:
        self.storage = storage
        self.tutorials = tutorials
        self._logger = logger.bind(component="learner_sessions")

    async def start_session(self, tutorial_id: str) -> TutorialSessionView:
        """Start a new session at step 0.

        Raises:
            TutorialNotFoundError: If there is no such tutorial.
            TutorialContentNotFoundError: If its content is missing.
        """
        loaded = await self.tutorials.get_tutorial_with_content(tutorial_id)
        session = await self.storage.database.create_session(
            LearnerSession(tutorial_id=tutorial_id)
        )
        await self._mirror(session)
        self._logger.info("session_started", session_id=session.id, tutorial_id=tutorial_id)
        return TutorialSessionView(
            session=session, tutorial=loaded.tutorial, content=loaded.content
        )

    async def get_session(self, session_id: str) -> TutorialSessionView:
        """Current state of a session.

        Raises:
            SessionNotFoundError: If there is no such session.
        """
        session = await self._load(session_id)
        return await self._view(session)

    async def next_step(self, session_id: str) -> TutorialSessionView:
        """Advance one step, completing the session from the last step."""
        session = await self._load(session_id)
        view = await self._view(session)
        if session.is_completed:
            return view

        if view.is_last_step:
            return await self._complete(view)

        return await self._move(view, session.current_step + 1)

    async def previous_step(self, session_id: str) -> TutorialSessionView:
        """Go back one step; a no-op at step 0 or once completed."""
        session = await self._load(session_id)
        view = await self._view(session)
        if session.is_completed or session.current_step == 0:
            return view
        return await self._move(view, session.current_step - 1)

    async def complete_session(self, session_id: str) -> TutorialSessionView:
        """Mark a session completed; a no-op if it already is."""
        session = await self._load(session_id)
        view = await self._view(session)
        if session.is_completed:
            return view
        return await self._complete(view)

    async def save_workspace(
        self, session_id: str, step_id: str, files: dict[str, str]
    ) -> LearnerWorkspace:
        """Store the learner's edited files for a step, replacing earlier saves.

        Raises:
            SessionNotFoundError: If there is no such session.
        """
        await self._load(session_id)
        workspace = LearnerWorkspace(session_id=session_id, step_id=step_id, files=files)
        await self.storage.blobs.save_learner_workspace(workspace)
        return workspace

    async def get_workspace(self, session_id: str, step_id: str) -> LearnerWorkspace | None:
        return await self.storage.blobs.get_learner_workspace(session_id, step_id)

    async def _load(self, session_id: str) -> LearnerSession:
        session = await self.storage.database.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        return session

    async def _view(self, session: LearnerSession) -> TutorialSessionView:
        loaded = await self.tutorials.get_tutorial_with_content(session.tutorial_id)
        return TutorialSessionView(
            session=session, tutorial=loaded.tutorial, content=loaded.content
        )

    async def _move(self, view: TutorialSessionView, step: int) -> TutorialSessionView:
        await self.storage.database.update_session_progress(view.session.id, step)
        session = view.session.model_copy(update={"current_step": step})
        await self._mirror(session)
        return view.model_copy(update={"session": session})

    async def _complete(self, view: TutorialSessionView) -> TutorialSessionView:
        completed_at = utcnow()
        await self.storage.database.complete_session(view.session.id, completed_at)
        session = view.session.model_copy(update={"completed_at": completed_at})
        await self._mirror(session)
        self._logger.info("session_completed", session_id=session.id)
        return view.model_copy(update={"session": session})

    async def _mirror(self, session: LearnerSession) -> None:
        await self.storage.kv.set_session_state(
            SessionState(
                session_id=session.id,
                tutorial_id=session.tutorial_id,
                current_step=session.current_step,
                completed=session.is_completed,
            )
        )
