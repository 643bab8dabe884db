"""TTL-bearing key-value store for transient state.

Holds ingestion status, learner-session quick state, cached tutorial
content, repository metadata, rate-limit counters and help-conversation
memory. Everything here is reconstructable; entries expire on their own.
"""

import json
from typing import Any, TypeVar

import redis.asyncio as redis
import structlog
from pydantic import BaseModel

from .models import (
    AnalysisState,
    AnalysisStatus,
    ConversationMessage,
    SessionState,
    TutorialContent,
    utcnow,
)
from .protocols import KeyValueBackend

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

ANALYSIS_TTL = 24 * 60 * 60
SESSION_TTL = 8 * 60 * 60
TUTORIAL_TTL = 7 * 24 * 60 * 60
REPO_META_TTL = 6 * 60 * 60
RATE_LIMIT_WINDOW = 60 * 60
CONVERSATION_TTL = SESSION_TTL
CONVERSATION_LIMIT = 20


def analysis_key(repo_id: str) -> str:
    return f"analysis:{repo_id}"


def session_key(session_id: str) -> str:
    return f"session:{session_id}"


def tutorial_key(tutorial_id: str) -> str:
    return f"tutorial:{tutorial_id}"


def repo_meta_key(repo_id: str) -> str:
    return f"repo:meta:{repo_id}"


def rate_key(key: str) -> str:
    return f"rate:{key}"


def conversation_key(session_id: str) -> str:
    return f"conversation:{session_id}"


class RedisBackend:
    """Key-value backend over ``redis.asyncio``."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisBackend":
        return cls(redis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> str | None:
        value = await self._client.get(key)
        return None if value is None else str(value)

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        await self._client.set(key, value, ex=ttl)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._client.delete(*keys))

    async def incr(self, key: str) -> int:
        return int(await self._client.incr(key))

    async def expire(self, key: str, ttl: int) -> None:
        await self._client.expire(key, ttl)

    async def keys(self, prefix: str = "") -> list[str]:
        return [str(k) async for k in self._client.scan_iter(match=f"{prefix}*")]

    async def ping(self) -> bool:
        return bool(await self._client.ping())

    async def close(self) -> None:
        await self._client.aclose()


class KeyValueStore:
    """Domain operations over a key-value backend.

    The backend only needs string get/set with TTL, delete, incr/expire,
    prefix listing and ping; ``RedisBackend`` is the production one.
    """

    def __init__(self, backend: KeyValueBackend) -> None:
        """Initialize the store.

        Args:
            backend: Storage backend.
        """
        self._backend = backend
        self._logger = logger.bind(component="kv_store")

    async def close(self) -> None:
        await self._backend.close()

    async def health_check(self) -> bool:
        """Round-trip a probe key.

        Returns:
            True if healthy, False otherwise.
        """
        try:
            await self._backend.set("health-check", "ok", 60)
            value = await self._backend.get("health-check")
            await self._backend.delete("health-check")
            return value == "ok"
        except Exception as e:
            self._logger.error("health_check_failed", error=str(e))
            return False

    # Generic operations

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store any JSON-serializable value (pydantic models included)."""
        if isinstance(value, BaseModel):
            payload = value.model_dump_json()
        else:
            payload = json.dumps(value, default=str)
        await self._backend.set(key, payload, ttl)

    async def get(self, key: str) -> Any | None:
        raw = await self._backend.get(key)
        return None if raw is None else json.loads(raw)

    async def delete(self, *keys: str) -> int:
        return await self._backend.delete(*keys)

    async def list_keys(self, prefix: str = "") -> list[str]:
        return sorted(await self._backend.keys(prefix))

    async def _get_model(self, key: str, model: type[ModelT]) -> ModelT | None:
        raw = await self._backend.get(key)
        return None if raw is None else model.model_validate_json(raw)

    # Analysis status

    async def set_analysis_status(
        self,
        repo_id: str,
        status: AnalysisState,
        error_message: str | None = None,
    ) -> AnalysisStatus:
        """Record ingestion progress, keeping the original start time."""
        previous = await self.get_analysis_status(repo_id)
        now = utcnow()
        record = AnalysisStatus(
            repo_id=repo_id,
            status=status,
            error_message=error_message,
            started_at=previous.started_at if previous else now,
            updated_at=now,
        )
        await self.set(analysis_key(repo_id), record, ANALYSIS_TTL)
        return record

    async def get_analysis_status(self, repo_id: str) -> AnalysisStatus | None:
        return await self._get_model(analysis_key(repo_id), AnalysisStatus)

    # Session quick state

    async def set_session_state(self, state: SessionState) -> None:
        await self.set(session_key(state.session_id), state, SESSION_TTL)

    async def get_session_state(self, session_id: str) -> SessionState | None:
        return await self._get_model(session_key(session_id), SessionState)

    async def delete_session_state(self, session_id: str) -> None:
        await self._backend.delete(session_key(session_id), conversation_key(session_id))

    # Tutorial content cache

    async def cache_tutorial_content(self, content: TutorialContent) -> None:
        await self.set(tutorial_key(content.tutorial_id), content, TUTORIAL_TTL)

    async def get_cached_tutorial_content(self, tutorial_id: str) -> TutorialContent | None:
        return await self._get_model(tutorial_key(tutorial_id), TutorialContent)

    async def delete_cached_tutorial_content(self, tutorial_id: str) -> None:
        await self._backend.delete(tutorial_key(tutorial_id))

    # Repository metadata cache

    async def cache_repo_metadata(self, repo_id: str, metadata: dict[str, Any]) -> None:
        await self.set(repo_meta_key(repo_id), metadata, REPO_META_TTL)

    async def get_repo_metadata(self, repo_id: str) -> dict[str, Any] | None:
        value = await self.get(repo_meta_key(repo_id))
        return value if isinstance(value, dict) else None

    async def delete_repo_data(self, repo_id: str) -> None:
        await self._backend.delete(analysis_key(repo_id), repo_meta_key(repo_id))

    # Rate limiting

    async def increment_rate_limit(self, key: str, window: int = RATE_LIMIT_WINDOW) -> int:
        """Count a hit in a fixed window starting at the first hit.

        Returns:
            Hits recorded in the current window, including this one.
        """
        count = await self._backend.incr(rate_key(key))
        if count == 1:
            await self._backend.expire(rate_key(key), window)
        return count

    async def get_rate_limit(self, key: str) -> int:
        raw = await self._backend.get(rate_key(key))
        return int(raw) if raw is not None else 0

    # Conversation memory

    async def add_conversation_message(
        self, session_id: str, message: ConversationMessage
    ) -> list[ConversationMessage]:
        """Append to a session's conversation, keeping the last 20 turns."""
        history = await self.get_conversation(session_id)
        history = [*history, message][-CONVERSATION_LIMIT:]
        await self.set(
            conversation_key(session_id),
            [m.model_dump(mode="json") for m in history],
            CONVERSATION_TTL,
        )
        return history

    async def get_conversation(self, session_id: str) -> list[ConversationMessage]:
        value = await self.get(conversation_key(session_id))
        if not isinstance(value, list):
            return []
        return [ConversationMessage.model_validate(m) for m in value]
