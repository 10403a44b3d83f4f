import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from contentflow.core.config import EmbeddingBatchConfig, RetryPolicy
from contentflow.models.jobs import ContentEmbedPayload, ContentKind
from contentflow.providers.base import EmbeddingProvider, VectorRecord, VectorStore
from contentflow.utils.retry import Sleep, with_retry
from .chunker import Chunk

logger = logging.getLogger(__name__)


def vector_id(content_id: str, chunk_index: int) -> str:
    """Stable record id for a chunk. Same content and chunk index always give the same id, so redelivery overwrites."""
    return f"{content_id}-chunk-{chunk_index}"


def build_record(content: ContentEmbedPayload, chunk: Chunk, values: List[float], created_at: str) -> VectorRecord:
    """Vector record for one chunk, carrying the content's title/tags/kind/owner so search can build context and video links."""
    metadata: Dict[str, Any] = {
        "content_id": content.content_id,
        "chunk_index": chunk.index,
        "text": chunk.text,
        "title": content.title,
        "tags": list(content.tags),
        "content_kind": content.content_kind.value,
        "owner_id": content.owner_id,
        "created_at": created_at,
        "content_length": len(chunk.text),
    }
    if content.content_kind != ContentKind.ARTICLE and content.media_url:
        metadata["media_url"] = content.media_url
    return VectorRecord(id=vector_id(content.content_id, chunk.index), values=values, metadata=metadata)


async def embed_chunks(
    chunks: Sequence[Chunk],
    embedder: EmbeddingProvider,
    *,
    config: EmbeddingBatchConfig,
    retry_policy: RetryPolicy,
    sleep: Sleep = asyncio.sleep,
) -> List[List[float]]:
    """Embed chunks in groups of config.embedding_batch_size, each group through the retry engine, pausing config.inter_batch_delay between groups (not after the last)."""
    size = config.embedding_batch_size
    total_batches = (len(chunks) + size - 1) // size
    vectors: List[List[float]] = []

    for n, start in enumerate(range(0, len(chunks), size), start=1):
        texts = [c.text for c in chunks[start : start + size]]
        batch_vectors = await with_retry(
            lambda texts=texts: embedder.embed(texts),
            policy=retry_policy,
            operation_name=f"embedding batch {n}/{total_batches}",
            sleep=sleep,
        )
        if len(batch_vectors) != len(texts):
            raise ValueError(f"embedding provider returned {len(batch_vectors)} vectors for {len(texts)} texts")
        vectors.extend(batch_vectors)
        logger.info("embedding_batch_done", extra={"batch": n, "batches": total_batches})

        if n < total_batches and config.inter_batch_delay > 0:
            await sleep(config.inter_batch_delay)

    return vectors


async def upsert_records(records: Sequence[VectorRecord], store: VectorStore, *, batch_size: int) -> int:
    """Write records in groups of batch_size. A failing group propagates; there is no partial-success bookkeeping."""
    total = 0
    total_batches = (len(records) + batch_size - 1) // batch_size
    for n, start in enumerate(range(0, len(records), batch_size), start=1):
        batch = list(records[start : start + batch_size])
        await store.upsert(batch)
        total += len(batch)
        logger.info("upsert_batch_done", extra={"batch": n, "batches": total_batches, "points": len(batch)})
    return total


async def embed_and_store(
    chunks: Sequence[Chunk],
    content: ContentEmbedPayload,
    embedder: EmbeddingProvider,
    store: VectorStore,
    *,
    config: EmbeddingBatchConfig,
    retry_policy: RetryPolicy,
    sleep: Sleep = asyncio.sleep,
    on_stage: Optional[Callable[[str], None]] = None,
) -> int:
    """Embed chunks in small paced batches, build one record per chunk and upsert them in larger batches. Returns the number of vectors written. on_stage is called with "EMBEDDING" and "UPSERTING" as each phase starts.
    Why available: The embedding/upsert half of the content pipeline; rate-limit friendly and idempotent by record id."""
    if not chunks:
        return 0
    if on_stage:
        on_stage("EMBEDDING")
    vectors = await embed_chunks(chunks, embedder, config=config, retry_policy=retry_policy, sleep=sleep)
    created_at = datetime.now(timezone.utc).isoformat()
    records = [build_record(content, c, v, created_at) for c, v in zip(chunks, vectors)]
    if on_stage:
        on_stage("UPSERTING")
    return await upsert_records(records, store, batch_size=config.upsert_batch_size)
