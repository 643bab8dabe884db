"""In-memory backends for testing and local runs.

Dict-backed implementations of the backend protocols.
No network, no disk; expiry uses the monotonic clock.
"""

import time


class InMemoryKeyValueBackend:
    """Dict-backed KeyValueBackend with TTL support."""

    def __init__(self) -> None:
        self._store: dict[str, str] = {}
        self._expires: dict[str, float] = {}

    def _alive(self, key: str) -> bool:
        deadline = self._expires.get(key)
        if deadline is not None and time.monotonic() >= deadline:
            self._store.pop(key, None)
            self._expires.pop(key, None)
        return key in self._store

    def ttl(self, key: str) -> float | None:
        """Seconds until a key expires, or None if it never does."""
        if not self._alive(key) or key not in self._expires:
            return None
        return self._expires[key] - time.monotonic()

    async def get(self, key: str) -> str | None:
        return self._store[key] if self._alive(key) else None

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        self._store[key] = value
        if ttl is None:
            self._expires.pop(key, None)
        else:
            self._expires[key] = time.monotonic() + ttl

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._alive(key):
                removed += 1
            self._store.pop(key, None)
            self._expires.pop(key, None)
        return removed

    async def incr(self, key: str) -> int:
        value = int(self._store[key]) + 1 if self._alive(key) else 1
        self._store[key] = str(value)
        return value

    async def expire(self, key: str, ttl: int) -> None:
        if self._alive(key):
            self._expires[key] = time.monotonic() + ttl

    async def keys(self, prefix: str = "") -> list[str]:
        return [k for k in list(self._store) if k.startswith(prefix) and self._alive(k)]

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        pass


class InMemoryObjectBackend:
    """Dict-backed ObjectBackend."""

    def __init__(self) -> None:
        self._store: dict[str, bytes] = {}

    async def put(self, key: str, data: bytes) -> None:
        self._store[key] = bytes(data)

    async def get(self, key: str) -> bytes | None:
        return self._store.get(key)

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def list_keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._store if k.startswith(prefix))
