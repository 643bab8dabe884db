"""LLM module for the onboarder.

This module provides the Claude API client, the prompts used for tutorial
generation, and TutorAIService, which validates model output and falls
back to deterministic templates.
"""

from core.llm.client import (
    ClaudeClient,
    LLMClient,
    LLMClientError,
    LLMConfig,
    LLMResponse,
    MockLLMClient,
    RateLimitError,
)
from core.llm.models import CodebaseContext, DraftStep, TutorialDraft
from core.llm.prompts import PromptKind, PromptTemplate
from core.llm.service import TutorAIService, fallback_tutorial

__all__ = [
    # Client
    "ClaudeClient",
    "LLMClient",
    "LLMClientError",
    "LLMConfig",
    "LLMResponse",
    "MockLLMClient",
    "RateLimitError",
    # Models
    "CodebaseContext",
    "DraftStep",
    "TutorialDraft",
    # Prompts
    "PromptKind",
    "PromptTemplate",
    # Service
    "TutorAIService",
    "fallback_tutorial",
]
