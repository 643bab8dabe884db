"""Tutorials for the onboarder.

This module turns ingested commits into step-by-step tutorials and tracks
learners' progress through them.

Example:
    >>> from core.tutorial import TutorialContentPipeline, LearnerSessionService
    >>> pipeline = TutorialContentPipeline(github, storage, ai)
    >>> generated = await pipeline.generate("owner/repo:<sha>")
    >>> sessions = LearnerSessionService(storage, pipeline)
    >>> view = await sessions.start_session(generated.tutorial.id)
    >>> view = await sessions.next_step(view.session.id)
"""

from .generator import TutorialContentPipeline, draft_to_steps
from .models import GeneratedTutorial, TutorialSessionView
from .sessions import LearnerSessionService

__all__ = [
    "GeneratedTutorial",
    "LearnerSessionService",
    "TutorialContentPipeline",
    "TutorialSessionView",
    "draft_to_steps",
]
