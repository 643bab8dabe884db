"""Protocol-based backend interfaces.

Production backends (Redis, filesystem) and the in-memory ones in
``fakes`` satisfy these protocols structurally (no inheritance).
"""

from typing import Protocol


class KeyValueBackend(Protocol):
    async def get(self, key: str) -> str | None: ...
    async def set(self, key: str, value: str, ttl: int | None = None) -> None: ...
    async def delete(self, *keys: str) -> int: ...
    async def incr(self, key: str) -> int: ...
    async def expire(self, key: str, ttl: int) -> None: ...
    async def keys(self, prefix: str = "") -> list[str]: ...
    async def ping(self) -> bool: ...
    async def close(self) -> None: ...


class ObjectBackend(Protocol):
    async def put(self, key: str, data: bytes) -> None: ...
    async def get(self, key: str) -> bytes | None: ...
    async def delete(self, key: str) -> None: ...
    async def list_keys(self, prefix: str = "") -> list[str]: ...
