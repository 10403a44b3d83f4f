"""
Narrow interfaces for the external collaborators the pipeline calls.
Workers depend on these Protocols, not on SDKs, so tests swap in fakes
and providers can be replaced without touching the job logic.

Every provider call may raise TransientQuotaError (retried by
contentflow.utils.retry) or UpstreamUnavailableError (fails the job).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence


@dataclass
class VectorRecord:
    id: str
    values: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class VectorMatch:
    id: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)


class EmbeddingProvider(Protocol):
    async def embed(self, texts: Sequence[str]) -> List[List[float]]: ...


class LanguageModel(Protocol):
    async def complete(self, prompt: str) -> str: ...


class TranscriptionProvider(Protocol):
    async def transcribe(self, file_bytes: bytes, mime_type: str) -> str: ...


class VectorStore(Protocol):
    async def upsert(self, records: Sequence[VectorRecord]) -> None: ...

    async def query(self, vector: Sequence[float], top_k: int) -> List[VectorMatch]: ...


class StatusStore(Protocol):
    async def set_status(self, content_id: str, status: str) -> None: ...

    async def get_status(self, content_id: str) -> Optional[str]: ...
