import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pytest

# Ensure repo root is on sys.path so `import contentflow...` works in tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from contentflow.core.config import ChunkingConfig, EmbeddingBatchConfig, RetrievalConfig, RetryPolicy  # noqa: E402
from contentflow.providers.base import VectorMatch, VectorRecord  # noqa: E402


class RecordingSleep:
    """Stands in for asyncio.sleep; records requested delays without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeEmbedder:
    """Returns a 3-dim vector per text. Exceptions in `failures` are raised, in order, before any success."""

    def __init__(self, failures: Optional[List[Exception]] = None):
        self.calls: List[List[str]] = []
        self.failures = list(failures or [])

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        if self.failures:
            raise self.failures.pop(0)
        return [[float(len(t)), 1.0, 0.0] for t in texts]


class FakeLLM:
    """Replies in order from `replies` (then `default`); records every prompt."""

    def __init__(self, replies: Optional[List[Any]] = None, default: str = "An answer."):
        self.replies = list(replies or [])
        self.default = default
        self.prompts: List[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.replies:
            reply = self.replies.pop(0)
            if isinstance(reply, Exception):
                raise reply
            return reply
        return self.default


class FakeTranscriber:
    def __init__(self, text: str = "spoken words", error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def transcribe(self, file_bytes: bytes, mime_type: str) -> str:
        self.calls.append({"size": len(file_bytes), "mime_type": mime_type})
        if self.error:
            raise self.error
        return self.text


class FakeVectorStore:
    """Upserts overwrite by record id. query() returns the next entry of `results` (or [] once exhausted)."""

    def __init__(self, results: Optional[List[List[VectorMatch]]] = None, upsert_error: Optional[Exception] = None):
        self.records: Dict[str, VectorRecord] = {}
        self.upsert_batches: List[int] = []
        self.results = list(results or [])
        self.queries: List[Dict[str, Any]] = []
        self.upsert_error = upsert_error

    async def upsert(self, records: Sequence[VectorRecord]) -> None:
        if self.upsert_error:
            raise self.upsert_error
        self.upsert_batches.append(len(records))
        for r in records:
            self.records[r.id] = r

    async def query(self, vector: Sequence[float], top_k: int) -> List[VectorMatch]:
        self.queries.append({"vector": list(vector), "top_k": top_k})
        return self.results.pop(0) if self.results else []


class FakeStatusStore:
    def __init__(self, error: Optional[Exception] = None):
        self.statuses: Dict[str, str] = {}
        self.history: List[tuple] = []
        self.error = error

    async def set_status(self, content_id: str, status: str) -> None:
        if self.error and status != "FAILED":
            raise self.error
        self.statuses[content_id] = status
        self.history.append((content_id, status))

    async def get_status(self, content_id: str) -> Optional[str]:
        return self.statuses.get(content_id)


class FakePubSub:
    def __init__(self, redis: "FakeRedis"):
        self._redis = redis
        self._queue: asyncio.Queue = asyncio.Queue()
        self.channels: List[str] = []

    async def subscribe(self, *channels: str) -> None:
        self.channels.extend(channels)
        self._redis.subscribers.append(self)
        for ch in channels:
            await self._queue.put({"type": "subscribe", "channel": ch, "data": 1})

    async def listen(self):
        while True:
            yield await self._queue.get()

    async def unsubscribe(self) -> None:
        if self in self._redis.subscribers:
            self._redis.subscribers.remove(self)

    async def aclose(self) -> None:
        pass


class FakeRedis:
    """The slice of redis.asyncio.Redis the pipeline uses. Lists are Python lists with index 0 as the LEFT end."""

    def __init__(self):
        self.lists: Dict[str, List[str]] = {}
        self.hashes: Dict[str, Dict[str, str]] = {}
        self.published: List[tuple] = []
        self.subscribers: List[FakePubSub] = []
        self.publish_error: Optional[Exception] = None

    async def lpush(self, name: str, *values: str) -> int:
        lst = self.lists.setdefault(name, [])
        for v in values:
            lst.insert(0, v)
        return len(lst)

    async def blmove(self, src: str, dst: str, timeout: float, wherefrom: str, whereto: str) -> Optional[str]:
        return await self.lmove(src, dst, wherefrom, whereto)

    async def lmove(self, src: str, dst: str, wherefrom: str, whereto: str) -> Optional[str]:
        source = self.lists.get(src) or []
        if not source:
            return None
        value = source.pop(0) if wherefrom == "LEFT" else source.pop()
        target = self.lists.setdefault(dst, [])
        if whereto == "LEFT":
            target.insert(0, value)
        else:
            target.append(value)
        return value

    async def lrem(self, name: str, count: int, value: str) -> int:
        lst = self.lists.get(name) or []
        if value in lst:
            lst.remove(value)
            return 1
        return 0

    async def llen(self, name: str) -> int:
        return len(self.lists.get(name) or [])

    async def hset(self, name: str, key: str, value: str) -> int:
        self.hashes.setdefault(name, {})[key] = value
        return 1

    async def hget(self, name: str, key: str) -> Optional[str]:
        return self.hashes.get(name, {}).get(key)

    async def publish(self, channel: str, message: str) -> int:
        if self.publish_error:
            raise self.publish_error
        self.published.append((channel, message))
        receivers = 0
        for sub in self.subscribers:
            if channel in sub.channels:
                await sub._queue.put({"type": "message", "channel": channel, "data": message})
                receivers += 1
        return receivers

    def pubsub(self) -> FakePubSub:
        return FakePubSub(self)


class FakeConnection:
    def __init__(self, fail: bool = False):
        self.sent: List[Dict[str, Any]] = []
        self.fail = fail
        self.closed_with: Optional[int] = None

    async def send(self, event: Dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionError("socket gone")
        self.sent.append(event)

    async def close(self, code: int = 1000) -> None:
        self.closed_with = code


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def retry_policy():
    return RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=10.0, backoff_multiplier=2.0)


@pytest.fixture
def chunking():
    return ChunkingConfig(chunk_size=100, chunk_overlap=20)


@pytest.fixture
def batches():
    return EmbeddingBatchConfig(embedding_batch_size=3, inter_batch_delay=5.0, upsert_batch_size=100)


@pytest.fixture
def retrieval():
    return RetrievalConfig()
