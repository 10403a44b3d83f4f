import asyncio
import json
import logging
from typing import Any, Dict, Optional

from contentflow.core.config import ChunkingConfig, EmbeddingBatchConfig, RetryPolicy
from contentflow.core.errors import JobValidationError, is_quota_failure
from contentflow.models.events import StatusEvent
from contentflow.models.jobs import ContentEmbedJob, ContentEmbedPayload, ContentKind, parse_job
from contentflow.providers.base import EmbeddingProvider, StatusStore, VectorStore
from contentflow.status.publisher import StatusPublisher
from contentflow.utils.retry import Sleep
from .chunker import chunk_content
from .indexer import embed_and_store
from .jobs import JobState, JobStatus
from .media import MediaTranscriber

logger = logging.getLogger(__name__)

NO_CONTENT_MESSAGE = "Content processed but no content found"


def build_full_content(title: str, text: str) -> str:
    """Text that gets chunked: title and body in one template so every chunk's embedding carries the title context."""
    return f"Title: {title or 'Untitled'}\n\nContent: {text}".strip()


class ContentEmbedWorker:
    """Handles CONTENT_EMBED messages: normalize -> (transcribe) -> chunk -> embed -> upsert, then one terminal status and one StatusEvent.
    Why available: Consumer-side handler for the content queue; every outcome (including bad payloads) ends in COMPLETED or FAILED and the message is acked by JobConsumer."""

    def __init__(
        self,
        *,
        embedder: EmbeddingProvider,
        vector_store: VectorStore,
        status_store: StatusStore,
        publisher: StatusPublisher,
        media: MediaTranscriber,
        channel: str,
        chunking: ChunkingConfig,
        batches: EmbeddingBatchConfig,
        retry_policy: RetryPolicy,
        sleep: Sleep = asyncio.sleep,
    ):
        self.embedder = embedder
        self.vector_store = vector_store
        self.status_store = status_store
        self.publisher = publisher
        self.media = media
        self.channel = channel
        self.chunking = chunking
        self.batches = batches
        self.retry_policy = retry_policy
        self.sleep = sleep

    async def handle(self, body: str) -> None:
        try:
            job = parse_job(body)
            if not isinstance(job, ContentEmbedJob):
                raise JobValidationError(f"content queue received a {job.kind.value} job")
        except JobValidationError as e:
            await self._reject(body, e)
            return
        await self.process(job)

    async def process(self, job: ContentEmbedJob) -> JobState:
        content = job.payload
        state = JobState(job_id=job.id)
        log_ctx = {"job_id": job.id, "content_id": content.content_id, "content_kind": content.content_kind.value}
        logger.info("content_job_received", extra=log_ctx)

        try:
            state.enter("NORMALIZING")
            if content.content_kind == ContentKind.ARTICLE:
                text = content.raw_text or ""
            else:
                state.enter("TRANSCRIBING")
                text = await self.media.transcribe(content.media_url, content.content_kind)

            if not text.strip():
                logger.warning("content_job_no_content", extra=log_ctx)
                await self._complete(
                    state,
                    content,
                    NO_CONTENT_MESSAGE,
                    {"contentId": content.content_id, "chunksCount": 0, "embeddingsCount": 0},
                )
                return state

            full_content = build_full_content(content.title, text)
            state.enter("CHUNKING")
            chunks = chunk_content(full_content, self.chunking)
            logger.info("content_chunked", extra={**log_ctx, "chunks": len(chunks), "chars": len(full_content)})

            written = await embed_and_store(
                chunks,
                content,
                self.embedder,
                self.vector_store,
                config=self.batches,
                retry_policy=self.retry_policy,
                sleep=self.sleep,
                on_stage=state.enter,
            )

            await self._complete(
                state,
                content,
                f"Content processed successfully. Created {written} embeddings from {len(chunks)} chunks.",
                {"contentId": content.content_id, "chunksCount": len(chunks), "embeddingsCount": written},
            )
        except Exception as e:
            logger.error("content_job_failed", exc_info=True, extra={**log_ctx, "stage": state.stage})
            await self._fail(state, content.content_id, content.owner_id, e)
        return state

    async def _complete(self, state: JobState, content: ContentEmbedPayload, message: str, data: Dict[str, Any]) -> None:
        # Status is persisted before the state flips, so a store failure still lands in the FAILED path.
        await self.status_store.set_status(content.content_id, JobStatus.COMPLETED.value)
        state.finish(JobStatus.COMPLETED)
        logger.info("content_job_completed", extra={"job_id": state.job_id, "content_id": content.content_id})
        await self.publisher.publish(self.channel, StatusEvent.completed(content.owner_id, message, data))

    async def _fail(self, state: Optional[JobState], content_id: Optional[str], owner_id: Optional[str], error: Exception) -> None:
        if state is not None and not state.is_terminal:
            state.finish(JobStatus.FAILED, error=str(error))
        if content_id:
            try:
                await self.status_store.set_status(content_id, JobStatus.FAILED.value)
            except Exception as e:
                logger.error("status_update_failed", extra={"content_id": content_id, "error": str(e)})
        if owner_id:
            event = StatusEvent.failed(
                owner_id,
                f"Processing failed: {error}",
                {
                    "contentId": content_id,
                    "errorType": "QUOTA_EXCEEDED" if is_quota_failure(error) else "PROCESSING_ERROR",
                },
            )
            await self.publisher.publish(self.channel, event)

    async def _reject(self, body: str, error: JobValidationError) -> None:
        """Invalid message: fail whatever can still be identified from the raw JSON (content id for status, owner id for the event)."""
        hint = _payload_hint(body)
        logger.error("content_job_invalid", extra={"error": str(error), **hint})
        await self._fail(None, hint.get("content_id"), hint.get("owner_id"), error)


def _payload_hint(body: str) -> Dict[str, str]:
    try:
        raw = json.loads(body)
    except ValueError:
        return {}
    payload = raw.get("payload") if isinstance(raw, dict) else None
    if not isinstance(payload, dict):
        return {}
    hint = {}
    for key, wire in (("content_id", "contentId"), ("owner_id", "ownerId")):
        value = payload.get(wire)
        if isinstance(value, str) and value:
            hint[key] = value
    return hint
