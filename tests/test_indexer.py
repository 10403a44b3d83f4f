"""Unit tests for batched embedding and vector upsert."""
import pytest

from contentflow.core.config import EmbeddingBatchConfig
from contentflow.core.errors import ExhaustedRetriesError, TransientQuotaError
from contentflow.ingest.chunker import Chunk
from contentflow.ingest.indexer import build_record, embed_and_store, embed_chunks, vector_id
from contentflow.models.jobs import ContentEmbedPayload, ContentKind

from conftest import FakeEmbedder, FakeVectorStore


def _chunks(n):
    return [Chunk(index=i, text=f"chunk text {i}") for i in range(n)]


def _article(**kw):
    fields = dict(content_id="c1", content_kind=ContentKind.ARTICLE, raw_text="x", owner_id="u1", title="T", tags=["diy"])
    fields.update(kw)
    return ContentEmbedPayload(**fields)


def test_vector_id_format():
    assert vector_id("c1", 0) == "c1-chunk-0"
    assert vector_id("c1", 12) == "c1-chunk-12"


def test_record_metadata_for_article():
    rec = build_record(_article(), Chunk(index=2, text="hello world"), [0.1, 0.2], "2024-01-01T00:00:00+00:00")
    assert rec.id == "c1-chunk-2"
    assert rec.values == [0.1, 0.2]
    assert rec.metadata["text"] == "hello world"
    assert rec.metadata["title"] == "T"
    assert rec.metadata["tags"] == ["diy"]
    assert rec.metadata["content_kind"] == "ARTICLE"
    assert rec.metadata["owner_id"] == "u1"
    assert rec.metadata["chunk_index"] == 2
    assert rec.metadata["content_length"] == len("hello world")
    assert "media_url" not in rec.metadata


def test_record_metadata_for_video_carries_media_url():
    video = _article(content_kind=ContentKind.VIDEO, raw_text=None, media_url="https://cdn.example.com/v.mp4")
    rec = build_record(video, Chunk(index=0, text="t"), [1.0], "now")
    assert rec.metadata["media_url"] == "https://cdn.example.com/v.mp4"


@pytest.mark.asyncio
async def test_embeds_in_batches_with_pacing(batches, retry_policy, sleep):
    embedder = FakeEmbedder()
    vectors = await embed_chunks(_chunks(7), embedder, config=batches, retry_policy=retry_policy, sleep=sleep)
    assert len(vectors) == 7
    assert [len(c) for c in embedder.calls] == [3, 3, 1]
    # pause between batches, not after the last one
    assert sleep.delays == [5.0, 5.0]


@pytest.mark.asyncio
async def test_quota_error_in_batch_is_retried(batches, retry_policy, sleep):
    embedder = FakeEmbedder(failures=[TransientQuotaError("429")])
    vectors = await embed_chunks(_chunks(2), embedder, config=batches, retry_policy=retry_policy, sleep=sleep)
    assert len(vectors) == 2
    assert len(embedder.calls) == 2
    assert sleep.delays == [1.0]


@pytest.mark.asyncio
async def test_persistent_quota_error_exhausts(batches, retry_policy, sleep):
    embedder = FakeEmbedder(failures=[TransientQuotaError("429")] * 5)
    with pytest.raises(ExhaustedRetriesError):
        await embed_chunks(_chunks(2), embedder, config=batches, retry_policy=retry_policy, sleep=sleep)


@pytest.mark.asyncio
async def test_embed_and_store_upserts_in_batches(retry_policy, sleep):
    store = FakeVectorStore()
    stages = []
    config = EmbeddingBatchConfig(embedding_batch_size=3, inter_batch_delay=0, upsert_batch_size=4)
    written = await embed_and_store(
        _chunks(10),
        _article(),
        FakeEmbedder(),
        store,
        config=config,
        retry_policy=retry_policy,
        sleep=sleep,
        on_stage=stages.append,
    )
    assert written == 10
    assert store.upsert_batches == [4, 4, 2]
    assert stages == ["EMBEDDING", "UPSERTING"]
    assert sleep.delays == []
    assert sorted(store.records) == sorted(vector_id("c1", i) for i in range(10))


@pytest.mark.asyncio
async def test_replay_overwrites_instead_of_duplicating(batches, retry_policy, sleep):
    store = FakeVectorStore()
    for _ in range(2):
        await embed_and_store(_chunks(4), _article(), FakeEmbedder(), store, config=batches, retry_policy=retry_policy, sleep=sleep)
    assert len(store.records) == 4
    assert store.upsert_batches == [4, 4]


@pytest.mark.asyncio
async def test_no_chunks_writes_nothing(batches, retry_policy, sleep):
    store = FakeVectorStore()
    embedder = FakeEmbedder()
    assert await embed_and_store([], _article(), embedder, store, config=batches, retry_policy=retry_policy, sleep=sleep) == 0
    assert embedder.calls == []
    assert store.upsert_batches == []
