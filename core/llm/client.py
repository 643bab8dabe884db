"""Language model clients used by the tutor AI service.

``ClaudeClient`` talks to the Anthropic Messages API over httpx;
``MockLLMClient`` replays scripted answers in tests. Whatever comes back is
plain text that callers still have to validate.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field

from core.errors import ExternalServiceError

logger = structlog.get_logger(__name__)

# Statuses worth another attempt: rate limited, and overloaded upstream
RETRYABLE_STATUSES = frozenset({429, 502, 503, 529})


class LLMClientError(ExternalServiceError):
    """The model could not produce a completion."""

    pass


class RateLimitError(LLMClientError):
    """Still rate limited after every retry."""

    pass


class LLMConfig(BaseModel):
    """Model and transport settings for a client.

    Attributes:
        model: Model identifier sent with each request.
        max_tokens: Output budget when the caller gives none.
        temperature: Sampling temperature when the caller gives none.
        timeout: Per-request timeout in seconds.
        max_retries: Attempts per completion, including the first.
        max_backoff: Upper bound in seconds for a single wait.
    """

    model_config = ConfigDict(frozen=True)

    model: str = Field(default="claude-sonnet-4-20250514", description="Model identifier")
    max_tokens: int = Field(default=2000, ge=1, le=8192, description="Default output budget")
    temperature: float = Field(default=0.7, ge=0.0, le=1.0, description="Default temperature")
    timeout: float = Field(default=120.0, gt=0, description="Request timeout in seconds")
    max_retries: int = Field(default=3, ge=1, le=10, description="Attempts per completion")
    max_backoff: float = Field(default=30.0, gt=0, description="Longest single wait")


class LLMResponse(BaseModel):
    """Text produced by a model, with token accounting."""

    model_config = ConfigDict(frozen=True)

    content: str = Field(..., description="Concatenated text blocks")
    model: str = Field(..., description="Model that answered")
    input_tokens: int = Field(default=0, ge=0, description="Prompt tokens")
    output_tokens: int = Field(default=0, ge=0, description="Completion tokens")
    stop_reason: str = Field(default="end_turn", description="Why generation stopped")


class LLMClient(ABC):
    """A single-turn completion endpoint."""

    @abstractmethod
    async def complete(self, system: str, user: str, **kwargs: Any) -> LLMResponse:
        """Answer one user message under a system prompt.

        Args:
            system: System prompt.
            user: User message.
            **kwargs: Per-call overrides such as ``max_tokens`` and
                ``temperature``.

        Raises:
            LLMClientError: If no completion could be obtained.
        """

    @abstractmethod
    async def close(self) -> None:
        """Release any connections held by the client."""


def retry_delay(response: httpx.Response | None, attempt: int, ceiling: float) -> float:
    """Seconds to wait before the next attempt.

    A numeric ``retry-after`` header wins; otherwise the wait doubles with
    every attempt. Either way it never exceeds ``ceiling``.
    """
    if response is not None:
        header = response.headers.get("retry-after", "")
        try:
            return min(max(float(header), 0.0), ceiling)
        except ValueError:
            pass
    return min(float(2**attempt), ceiling)


class ClaudeClient(LLMClient):
    """Anthropic Messages API client with bounded retries.

    Rate limiting and upstream overload are retried with backoff; any other
    error status fails immediately.
    """

    API_URL = "https://api.anthropic.com/v1/messages"
    API_VERSION = "2023-06-01"

    def __init__(
        self,
        api_key: str,
        config: LLMConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Create a client.

        Args:
            api_key: Anthropic API key.
            config: Model and transport settings.
            http_client: Pre-built HTTP client, e.g. one with a mock transport.
        """
        self.config = config or LLMConfig()
        self._http = http_client or httpx.AsyncClient(timeout=self.config.timeout)
        self._headers = {
            "x-api-key": api_key,
            "anthropic-version": self.API_VERSION,
            "content-type": "application/json",
        }
        self._logger = logger.bind(component="claude_client", model=self.config.model)

    async def complete(self, system: str, user: str, **kwargs: Any) -> LLMResponse:
        """Send one message and return the joined text of the answer.

        Raises:
            RateLimitError: If every attempt was rate limited.
            LLMClientError: On any other failure.
        """
        payload = {
            "model": kwargs.get("model", self.config.model),
            "max_tokens": kwargs.get("max_tokens", self.config.max_tokens),
            "temperature": kwargs.get("temperature", self.config.temperature),
            "system": system,
            "messages": [{"role": "user", "content": user}],
        }
        data = await self._post(payload)
        return self._to_response(data)

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        last_status: int | None = None

        for attempt in range(self.config.max_retries):
            final = attempt == self.config.max_retries - 1
            try:
                response = await self._http.post(
                    self.API_URL, json=payload, headers=self._headers
                )
            except httpx.TimeoutException as e:
                self._logger.warning("llm_request_timeout", attempt=attempt)
                if final:
                    raise LLMClientError("Claude API timeout") from e
                await asyncio.sleep(retry_delay(None, attempt, self.config.max_backoff))
                continue
            except httpx.HTTPError as e:
                raise LLMClientError(f"Claude API request failed: {e}") from e

            if response.status_code == 200:
                return response.json()

            last_status = response.status_code
            if response.status_code not in RETRYABLE_STATUSES:
                raise LLMClientError(
                    f"Claude API error: {response.status_code} - {response.text}"
                )

            wait = retry_delay(response, attempt, self.config.max_backoff)
            self._logger.warning(
                "llm_request_retryable",
                status=response.status_code,
                attempt=attempt,
                wait=wait,
            )
            if not final:
                await asyncio.sleep(wait)

        if last_status == 429:
            raise RateLimitError("Claude API rate limit: retries exhausted")
        raise LLMClientError(f"Claude API error: {last_status} after retries")

    def _to_response(self, data: dict[str, Any]) -> LLMResponse:
        text = "".join(
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        )
        usage = data.get("usage") or {}
        return LLMResponse(
            content=text,
            model=data.get("model", self.config.model),
            input_tokens=usage.get("input_tokens", 0),
            output_tokens=usage.get("output_tokens", 0),
            stop_reason=data.get("stop_reason") or "end_turn",
        )

    async def close(self) -> None:
        await self._http.aclose()


class MockLLMClient(LLMClient):
    """Replays scripted answers, cycling when they run out.

    An exception instance in the script is raised instead of returned, so
    outages can be scripted alongside good and bad answers.
    """

    def __init__(self, responses: list[str | Exception] | None = None) -> None:
        self._script: list[str | Exception] = responses or ["This is a mock response."]
        self._position = 0
        self.calls: list[dict[str, Any]] = []

    async def complete(self, system: str, user: str, **kwargs: Any) -> LLMResponse:
        self.calls.append({"system": system, "user": user, **kwargs})
        item = self._script[self._position % len(self._script)]
        self._position += 1
        if isinstance(item, Exception):
            raise item
        return LLMResponse(
            content=item,
            model="mock-model",
            input_tokens=len(system) + len(user),
            output_tokens=len(item),
        )

    async def close(self) -> None:
        pass

    def reset(self) -> None:
        """Restart the script and forget recorded calls."""
        self._position = 0
        self.calls = []
