"""
Worker process: one JobConsumer per queue (content embedding and search), sharing one Redis
connection, one OpenAI client, one Qdrant client and one HTTP client for media downloads.

Run: contentflow-worker   (or python -m contentflow.run_workers)
"""
import asyncio
import logging
import signal

import httpx
from qdrant_client import AsyncQdrantClient

from contentflow.core.config import settings
from contentflow.core.logging import configure_logging
from contentflow.core.openai_client import create_openai_client
from contentflow.core.redis_client import RedisConnectionManager
from contentflow.ingest.media import MediaTranscriber
from contentflow.ingest.worker import ContentEmbedWorker
from contentflow.prompts.loader import get_system_prompt
from contentflow.providers.openai_provider import (
    OpenAIEmbeddingProvider,
    OpenAILanguageModel,
    OpenAITranscriptionProvider,
)
from contentflow.providers.qdrant_store import QdrantVectorStore
from contentflow.queue.broker import RedisJobQueue
from contentflow.queue.consumer import JobConsumer
from contentflow.rag.retriever import FallbackRetriever
from contentflow.rag.worker import SearchWorker
from contentflow.status.publisher import StatusPublisher
from contentflow.status.store import RedisStatusStore

logger = logging.getLogger(__name__)


async def run() -> None:
    """Connect, build both consumers, run them until SIGINT/SIGTERM, then close every client."""
    redis_manager = RedisConnectionManager(settings.redis_url)
    client = await redis_manager.connect()
    openai_client = create_openai_client(settings.openai_api_key)
    qdrant = AsyncQdrantClient(url=settings.qdrant_url)
    http = httpx.AsyncClient(timeout=settings.media_download_timeout)

    retry_policy = settings.retry_policy()
    embedder = OpenAIEmbeddingProvider(openai_client, settings.embedding_model)
    llm = OpenAILanguageModel(openai_client, settings.chat_model)
    vector_store = QdrantVectorStore(qdrant, settings.qdrant_collection)
    publisher = StatusPublisher(client)

    transcriber = OpenAITranscriptionProvider(
        openai_client,
        settings.transcription_model,
        prompt=get_system_prompt("transcribe", version=settings.prompt_version),
    )
    content_worker = ContentEmbedWorker(
        embedder=embedder,
        vector_store=vector_store,
        status_store=RedisStatusStore(client),
        publisher=publisher,
        media=MediaTranscriber(transcriber, http, config=settings.media(), retry_policy=retry_policy),
        channel=settings.content_status_channel,
        chunking=settings.chunking(),
        batches=settings.embedding_batches(),
        retry_policy=retry_policy,
    )
    search_worker = SearchWorker(
        retriever=FallbackRetriever(
            embedder=embedder,
            vector_store=vector_store,
            llm=llm,
            config=settings.retrieval(),
            retry_policy=retry_policy,
            prompt_version=settings.prompt_version,
        ),
        publisher=publisher,
        channel=settings.search_status_channel,
    )

    consumers = [
        JobConsumer(
            RedisJobQueue(redis_manager.queue_client, settings.content_queue),
            content_worker,
            name="content-embed",
            poll_timeout=settings.queue_poll_timeout,
        ),
        JobConsumer(
            RedisJobQueue(redis_manager.queue_client, settings.search_queue),
            search_worker,
            name="search",
            poll_timeout=settings.queue_poll_timeout,
        ),
    ]

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _stop_all, consumers)

    logger.info("workers_started", extra={"consumers": [c.name for c in consumers]})
    try:
        await run_consumers(consumers)
    finally:
        await http.aclose()
        await qdrant.close()
        await openai_client.close()
        await redis_manager.close()
        logger.info("workers_stopped", extra={"processed": {c.name: c.processed for c in consumers}})


async def run_consumers(consumers) -> None:
    """Run every consumer until all stop. If one crashes the others are stopped and cancelled before the error is re-raised, so no consumer outlives the shared clients."""
    tasks = [asyncio.create_task(c.run(), name=c.name) for c in consumers]
    done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    if pending:
        _stop_all(consumers)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
    for task in done:
        if task.exception() is not None:
            logger.error("consumer_crashed", extra={"consumer": task.get_name(), "error": str(task.exception())})
            raise task.exception()


def _stop_all(consumers) -> None:
    logger.info("shutdown_requested")
    for c in consumers:
        c.stop()


def main() -> None:
    configure_logging(settings.log_level)
    asyncio.run(run())


if __name__ == "__main__":
    main()
