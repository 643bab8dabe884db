"""Qdrant vector index for commit, code and tutorial embeddings.

Items are addressed by readable string ids:

    commit:   {repo_id}:{sha}
    code:     {repo_id}:{sha}:{path}:{chunk_index}
    tutorial: tutorial:{tutorial_id}

Qdrant only accepts integers or UUIDs as point ids, so each item id is
mapped to a deterministic UUID5 and kept in the payload as ``item_id``.
"""

import contextlib
import uuid
from collections.abc import Sequence
from datetime import datetime
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field
from qdrant_client import AsyncQdrantClient, models
from qdrant_client.http.exceptions import UnexpectedResponse

from core.errors import StorageError

logger = structlog.get_logger(__name__)

KIND_COMMIT = "commit"
KIND_CODE = "code"
KIND_TUTORIAL = "tutorial"

TUTORIAL_PREFIX = "tutorial:"

_POINT_NAMESPACE = uuid.UUID("6f1c1d4e-8c57-4d4b-9a0e-3f1b8f3f5a10")

MetadataFilter = dict[str, str | int | bool]

_DISTANCES = {
    "cosine": models.Distance.COSINE,
    "euclid": models.Distance.EUCLID,
    "dot": models.Distance.DOT,
    "manhattan": models.Distance.MANHATTAN,
}


class VectorIndexError(StorageError):
    """Vector index operation failed."""

    pass


class EmbeddingNotFoundError(VectorIndexError):
    """Requested embedding does not exist."""

    pass


class VectorIndexConfig(BaseModel):
    """Configuration for the vector index.

    Attributes:
        url: Qdrant server URL.
        api_key: Optional Qdrant API key.
        collection_name: Name of the collection.
        vector_size: Size of embedding vectors.
        distance: Distance metric for similarity.
        batch_size: Points per upsert request.
    """

    model_config = ConfigDict(frozen=True)

    url: str = Field(default="http://localhost:6333", description="Qdrant URL")
    api_key: str | None = Field(None, description="Qdrant API key")
    collection_name: str = Field(default="onboarder", description="Collection name")
    vector_size: int = Field(default=768, ge=1, description="Vector dimension")
    distance: str = Field(default="Cosine", description="Distance metric")
    batch_size: int = Field(default=100, ge=1, description="Upsert batch size")


class VectorRecord(BaseModel):
    """Vector with its item id and metadata."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Item id")
    values: list[float] = Field(..., description="Embedding vector")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Metadata")


class VectorMatch(BaseModel):
    """Result from a similarity query."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Item id")
    score: float = Field(..., description="Similarity score")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Metadata")


class CodeEmbedding(BaseModel):
    """Embedding of one chunk of a file at a commit."""

    model_config = ConfigDict(frozen=True)

    path: str
    chunk_index: int = 0
    values: list[float]
    content: str = ""
    language: str | None = None


def point_id(item_id: str) -> str:
    """Deterministic Qdrant point id for an item id."""
    return str(uuid.uuid5(_POINT_NAMESPACE, item_id))


def commit_item_id(repo_id: str, sha: str) -> str:
    return f"{repo_id}:{sha}"


def code_item_id(repo_id: str, sha: str, path: str, chunk_index: int) -> str:
    return f"{repo_id}:{sha}:{path}:{chunk_index}"


def tutorial_item_id(tutorial_id: str) -> str:
    return f"{TUTORIAL_PREFIX}{tutorial_id}"


def _build_filter(
    must: MetadataFilter | None = None,
    must_not: MetadataFilter | None = None,
) -> models.Filter | None:
    def conditions(values: MetadataFilter | None) -> list[models.Condition]:
        return [
            models.FieldCondition(key=key, match=models.MatchValue(value=value))
            for key, value in (values or {}).items()
        ]

    must_conditions = conditions(must)
    must_not_conditions = conditions(must_not)
    if not must_conditions and not must_not_conditions:
        return None
    return models.Filter(
        must=must_conditions or None,
        must_not=must_not_conditions or None,
    )


class VectorIndex:
    """Qdrant-backed vector index.

    Stores embeddings for commits, code chunks and tutorials in a single
    collection, discriminated by the ``kind`` payload field.
    """

    def __init__(
        self,
        config: VectorIndexConfig | None = None,
        client: AsyncQdrantClient | None = None,
    ) -> None:
        """Initialize vector index.

        Args:
            config: Index configuration.
            client: Optional pre-configured Qdrant client.
        """
        self.config = config or VectorIndexConfig()
        self._client = client
        self._logger = logger.bind(component="vector_index")

    @property
    def qdrant(self) -> AsyncQdrantClient:
        """Connected Qdrant client, created on first use."""
        if self._client is None:
            self._client = AsyncQdrantClient(url=self.config.url, api_key=self.config.api_key)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def health_check(self) -> bool:
        """True if Qdrant answers a collection listing."""
        try:
            await self.qdrant.get_collections()
        except Exception as e:
            self._logger.error("vector_index_unhealthy", error=str(e))
            return False
        return True

    async def create_collection(self) -> None:
        """Create the collection if it does not exist.

        Raises:
            VectorIndexError: If creation fails.
        """
        client = self.qdrant

        try:
            collections = await client.get_collections()
            if any(c.name == self.config.collection_name for c in collections.collections):
                self._logger.debug("collection_exists", name=self.config.collection_name)
                return

            distance = _DISTANCES.get(self.config.distance.lower(), models.Distance.COSINE)
            await client.create_collection(
                collection_name=self.config.collection_name,
                vectors_config=models.VectorParams(size=self.config.vector_size, distance=distance),
            )

            for field in ("kind", "repo_id", "language"):
                with contextlib.suppress(UnexpectedResponse):
                    await client.create_payload_index(
                        collection_name=self.config.collection_name,
                        field_name=field,
                        field_schema=models.PayloadSchemaType.KEYWORD,
                    )

            self._logger.info(
                "collection_created",
                name=self.config.collection_name,
                vector_size=self.config.vector_size,
            )
        except Exception as e:
            raise VectorIndexError(f"Failed to create collection: {e}") from e

    # Generic operations

    async def upsert(self, records: Sequence[VectorRecord]) -> int:
        """Insert or update vectors in batches.

        Args:
            records: Vectors to store.

        Returns:
            Number of stored vectors.

        Raises:
            VectorIndexError: If a batch fails.
        """
        if not records:
            return 0

        client = self.qdrant
        batch_size = self.config.batch_size

        for batch_start in range(0, len(records), batch_size):
            batch = records[batch_start : batch_start + batch_size]
            points = [
                models.PointStruct(
                    id=point_id(record.id),
                    vector=record.values,
                    payload={**record.metadata, "item_id": record.id},
                )
                for record in batch
            ]
            try:
                await client.upsert(collection_name=self.config.collection_name, points=points)
            except Exception as e:
                raise VectorIndexError(f"Failed to upsert batch: {e}") from e

        self._logger.info(
            "vectors_upserted",
            count=len(records),
            batches=(len(records) + batch_size - 1) // batch_size,
        )
        return len(records)

    async def query(
        self,
        vector: list[float],
        top_k: int = 10,
        filter: MetadataFilter | None = None,
        exclude: MetadataFilter | None = None,
    ) -> list[VectorMatch]:
        """Top-k similarity query with optional metadata filters.

        Args:
            vector: Query vector.
            top_k: Maximum number of matches.
            filter: Metadata fields that must match.
            exclude: Metadata fields that must not match.

        Returns:
            Matches sorted by score.
        """
        client = self.qdrant
        try:
            response = await client.query_points(
                collection_name=self.config.collection_name,
                query=vector,
                query_filter=_build_filter(filter, exclude),
                limit=top_k,
                with_payload=True,
            )
        except Exception as e:
            raise VectorIndexError(f"Query failed: {e}") from e

        matches = []
        for point in response.points:
            payload = dict(point.payload or {})
            item_id = str(payload.pop("item_id", point.id))
            matches.append(VectorMatch(id=item_id, score=point.score, metadata=payload))
        return matches

    async def get_by_id(self, item_id: str) -> VectorRecord | None:
        """Fetch a stored vector by item id, or None if absent."""
        client = self.qdrant
        try:
            points = await client.retrieve(
                collection_name=self.config.collection_name,
                ids=[point_id(item_id)],
                with_payload=True,
                with_vectors=True,
            )
        except Exception as e:
            raise VectorIndexError(f"Retrieve failed: {e}") from e

        if not points:
            return None
        point = points[0]
        payload = dict(point.payload or {})
        payload.pop("item_id", None)
        vector = point.vector
        if isinstance(vector, dict):
            vector = next(iter(vector.values()), [])
        return VectorRecord(id=item_id, values=list(vector or []), metadata=payload)

    async def delete_by_ids(self, item_ids: Sequence[str]) -> None:
        if not item_ids:
            return
        client = self.qdrant
        try:
            await client.delete(
                collection_name=self.config.collection_name,
                points_selector=models.PointIdsList(points=[point_id(i) for i in item_ids]),
            )
        except Exception as e:
            raise VectorIndexError(f"Failed to delete points: {e}") from e

    async def delete_by_filter(self, filter: MetadataFilter) -> None:
        query_filter = _build_filter(filter)
        if query_filter is None:
            raise ValueError("Refusing to delete with an empty filter")
        client = self.qdrant
        try:
            await client.delete(
                collection_name=self.config.collection_name,
                points_selector=models.FilterSelector(filter=query_filter),
            )
        except Exception as e:
            raise VectorIndexError(f"Failed to delete by filter: {e}") from e

    async def get_index_stats(self) -> dict[str, Any]:
        client = self.qdrant
        result = await client.count(collection_name=self.config.collection_name, exact=True)
        return {
            "collection": self.config.collection_name,
            "vector_size": self.config.vector_size,
            "count": result.count,
        }

    # Domain operations

    async def store_commit_embedding(
        self,
        repo_id: str,
        sha: str,
        vector: list[float],
        message: str,
        author: str,
        date: datetime | None = None,
    ) -> str:
        item_id = commit_item_id(repo_id, sha)
        await self.upsert(
            [
                VectorRecord(
                    id=item_id,
                    values=vector,
                    metadata={
                        "kind": KIND_COMMIT,
                        "repo_id": repo_id,
                        "commit_sha": sha,
                        "message": message,
                        "author": author,
                        "date": date.isoformat() if date else None,
                    },
                )
            ]
        )
        return item_id

    async def store_code_embeddings(
        self, repo_id: str, sha: str, chunks: Sequence[CodeEmbedding]
    ) -> list[str]:
        records = [
            VectorRecord(
                id=code_item_id(repo_id, sha, chunk.path, chunk.chunk_index),
                values=chunk.values,
                metadata={
                    "kind": KIND_CODE,
                    "repo_id": repo_id,
                    "commit_sha": sha,
                    "file_path": chunk.path,
                    "chunk_index": chunk.chunk_index,
                    "content": chunk.content,
                    "language": chunk.language,
                },
            )
            for chunk in chunks
        ]
        await self.upsert(records)
        return [r.id for r in records]

    async def store_tutorial_embedding(
        self,
        tutorial_id: str,
        vector: list[float],
        title: str,
        description: str,
        commit_id: str,
    ) -> str:
        item_id = tutorial_item_id(tutorial_id)
        await self.upsert(
            [
                VectorRecord(
                    id=item_id,
                    values=vector,
                    metadata={
                        "kind": KIND_TUTORIAL,
                        "tutorial_id": tutorial_id,
                        "title": title,
                        "description": description,
                        "commit_id": commit_id,
                    },
                )
            ]
        )
        return item_id

    async def search_similar_commits(
        self, vector: list[float], top_k: int = 10, repo_id: str | None = None
    ) -> list[VectorMatch]:
        filter: MetadataFilter = {"kind": KIND_COMMIT}
        if repo_id:
            filter["repo_id"] = repo_id
        return await self.query(vector, top_k, filter)

    async def search_similar_code(
        self,
        vector: list[float],
        top_k: int = 10,
        repo_id: str | None = None,
        language: str | None = None,
    ) -> list[VectorMatch]:
        filter: MetadataFilter = {"kind": KIND_CODE}
        if repo_id:
            filter["repo_id"] = repo_id
        if language:
            filter["language"] = language
        return await self.query(vector, top_k, filter)

    async def search_similar_tutorials(
        self, vector: list[float], top_k: int = 10
    ) -> list[VectorMatch]:
        return await self.query(vector, top_k, {"kind": KIND_TUTORIAL})

    async def find_similar_commits_to_commit(
        self, repo_id: str, sha: str, top_k: int = 5
    ) -> list[VectorMatch]:
        """Commits whose embeddings are closest to a stored commit's.

        The commit itself is never part of the result.

        Raises:
            EmbeddingNotFoundError: If the commit has no stored embedding.
        """
        item_id = commit_item_id(repo_id, sha)
        record = await self.get_by_id(item_id)
        if record is None:
            raise EmbeddingNotFoundError(f"Commit embedding not found: {item_id}")

        matches = await self.search_similar_commits(record.values, top_k + 1)
        return [m for m in matches if m.id != item_id][:top_k]

    async def find_related_code_patterns(
        self, vector: list[float], top_k: int = 10, repo_id: str | None = None
    ) -> list[VectorMatch]:
        """Commits and code similar to a vector, excluding tutorials."""
        filter: MetadataFilter | None = {"repo_id": repo_id} if repo_id else None
        matches = await self.query(vector, top_k, filter, exclude={"kind": KIND_TUTORIAL})
        return [m for m in matches if not m.id.startswith(TUTORIAL_PREFIX)]

    async def delete_repo_embeddings(self, repo_id: str) -> None:
        """Delete every commit and code embedding of a repository."""
        await self.delete_by_filter({"repo_id": repo_id})
        self._logger.info("repo_embeddings_deleted", repo_id=repo_id)

    async def delete_tutorial_embedding(self, tutorial_id: str) -> None:
        await self.delete_by_ids([tutorial_item_id(tutorial_id)])
