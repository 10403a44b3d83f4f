import logging
import uuid
from typing import List, Sequence

from qdrant_client import AsyncQdrantClient
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse
from qdrant_client.http.models import Distance, PointStruct, VectorParams

from contentflow.core.errors import UpstreamUnavailableError
from .base import VectorMatch, VectorRecord

logger = logging.getLogger(__name__)

NAMESPACE = uuid.UUID("12345678-1234-5678-1234-567812345678")
DENSE_VECTOR_NAME = "dense"


def stable_point_id(record_id: str) -> str:
    """Return a deterministic UUID string for a record id (for Qdrant point id).
    Why available: Qdrant only accepts UUID/int ids; the same "{content_id}-chunk-{index}" always maps to the same point, so redelivered jobs overwrite."""
    return str(uuid.uuid5(NAMESPACE, record_id))


class QdrantVectorStore:
    """VectorStore over an async Qdrant client. The collection is created on first upsert, sized from the first vector."""

    def __init__(self, client: AsyncQdrantClient, collection: str):
        self._client = client
        self.collection = collection
        self._ensured = False

    async def _ensure_collection(self, vector_size: int) -> None:
        """Create the collection if it does not exist (single named dense vector, cosine)."""
        if self._ensured:
            return
        if not await self._client.collection_exists(self.collection):
            await self._client.create_collection(
                collection_name=self.collection,
                vectors_config={
                    DENSE_VECTOR_NAME: VectorParams(size=vector_size, distance=Distance.COSINE),
                },
            )
            logger.info("qdrant_collection_created", extra={"collection": self.collection, "size": vector_size})
        self._ensured = True

    async def upsert(self, records: Sequence[VectorRecord]) -> None:
        if not records:
            return
        points = [
            PointStruct(
                id=stable_point_id(r.id),
                vector={DENSE_VECTOR_NAME: list(r.values)},
                payload={**r.metadata, "record_id": r.id},
            )
            for r in records
        ]
        try:
            await self._ensure_collection(len(records[0].values))
            await self._client.upsert(collection_name=self.collection, points=points)
        except (UnexpectedResponse, ResponseHandlingException) as e:
            raise UpstreamUnavailableError(f"Vector store upsert failed: {e}") from e

    async def query(self, vector: Sequence[float], top_k: int) -> List[VectorMatch]:
        """Nearest neighbours by cosine score, highest first. A missing collection means nothing was indexed yet: empty result."""
        try:
            if not await self._client.collection_exists(self.collection):
                return []
            res = await self._client.query_points(
                collection_name=self.collection,
                query=list(vector),
                using=DENSE_VECTOR_NAME,
                limit=top_k,
                with_payload=True,
            )
        except (UnexpectedResponse, ResponseHandlingException) as e:
            raise UpstreamUnavailableError(f"Vector store query failed: {e}") from e

        matches: List[VectorMatch] = []
        for p in res.points or []:
            payload = dict(p.payload or {})
            matches.append(
                VectorMatch(
                    id=str(payload.pop("record_id", p.id)),
                    score=float(p.score or 0.0),
                    metadata=payload,
                )
            )
        return matches
