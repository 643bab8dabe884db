"""Single entry point over the four storage backends.

Each backend has its own consistency model and nothing here is
transactional across them. Cleanup operations delete sequentially and stop
at the first failure, leaving earlier deletes applied.
"""

from typing import TYPE_CHECKING

import structlog

from .blob import BlobStore, FilesystemBackend
from .database import RelationalStore
from .kv import KeyValueStore, RedisBackend
from .vector import VectorIndex, VectorIndexConfig

if TYPE_CHECKING:
    from core.config import Settings

logger = structlog.get_logger(__name__)


class StorageFacade:
    """Relational, key-value, blob and vector stores behind one object.

    Components receive a facade through their constructor; nothing reaches
    a backend through module-level state.

    Attributes:
        database: Relational store.
        kv: Key-value store.
        blobs: Blob store.
        vectors: Vector index.
    """

    def __init__(
        self,
        database: RelationalStore,
        kv: KeyValueStore,
        blobs: BlobStore,
        vectors: VectorIndex,
    ) -> None:
        self.database = database
        self.kv = kv
        self.blobs = blobs
        self.vectors = vectors
        self._logger = logger.bind(component="storage")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "StorageFacade":
        """Build a facade over the production backends."""
        return cls(
            database=RelationalStore(settings.database_url),
            kv=KeyValueStore(RedisBackend.from_url(settings.redis_url)),
            blobs=BlobStore(FilesystemBackend(settings.blob_root)),
            vectors=VectorIndex(
                VectorIndexConfig(
                    url=settings.qdrant_url,
                    api_key=settings.qdrant_api_key,
                    collection_name=settings.qdrant_collection,
                    vector_size=settings.vector_size,
                )
            ),
        )

    async def initialize(self) -> None:
        """Create relational tables and the vector collection."""
        await self.database.initialize()
        await self.vectors.create_collection()

    async def close(self) -> None:
        await self.database.close()
        await self.kv.close()
        await self.vectors.close()

    async def health_check(self) -> dict[str, bool]:
        """Probe every backend independently.

        Returns:
            Per-store health keyed by ``database``, ``kv``, ``blob``, ``vector``.
        """
        probes = {
            "database": self.database.health_check,
            "kv": self.kv.health_check,
            "blob": self.blobs.health_check,
            "vector": self.vectors.health_check,
        }
        results: dict[str, bool] = {}
        for name, probe in probes.items():
            try:
                results[name] = await probe()
            except Exception as e:
                self._logger.error("health_probe_failed", store=name, error=str(e))
                results[name] = False
        return results

    async def cleanup_repository_data(self, repo_id: str) -> None:
        """Delete a repository's diffs, snapshots, embeddings and cached state.

        Raises:
            Exception: The first backend failure, after earlier deletes applied.
        """
        try:
            await self.blobs.delete_repo_data(repo_id)
            await self.vectors.delete_repo_embeddings(repo_id)
            await self.kv.delete_repo_data(repo_id)
        except Exception as e:
            self._logger.error("repository_cleanup_failed", repo_id=repo_id, error=str(e))
            raise
        self._logger.info("repository_data_cleaned", repo_id=repo_id)

    async def cleanup_tutorial_data(self, tutorial_id: str) -> None:
        """Delete a tutorial's content, artifacts, embedding and cache entry."""
        try:
            await self.blobs.delete_tutorial_data(tutorial_id)
            await self.vectors.delete_tutorial_embedding(tutorial_id)
            await self.kv.delete_cached_tutorial_content(tutorial_id)
        except Exception as e:
            self._logger.error("tutorial_cleanup_failed", tutorial_id=tutorial_id, error=str(e))
            raise
        self._logger.info("tutorial_data_cleaned", tutorial_id=tutorial_id)

    async def cleanup_session_data(self, session_id: str) -> None:
        """Delete a session's saved workspaces and quick state."""
        try:
            await self.blobs.delete_session_data(session_id)
            await self.kv.delete_session_state(session_id)
        except Exception as e:
            self._logger.error("session_cleanup_failed", session_id=session_id, error=str(e))
            raise
        self._logger.info("session_data_cleaned", session_id=session_id)
