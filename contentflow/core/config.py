import os
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

load_dotenv()

DEFAULT_SEPARATORS = ["\n\n", "\n", ".", "!", "?", ";", " ", ""]


class RetryPolicy(BaseModel):
    """Quota-aware backoff parameters for provider calls (seconds)."""

    max_attempts: int = 3
    base_delay: float = 60.0
    max_delay: float = 300.0
    backoff_multiplier: float = 2.0


class ChunkingConfig(BaseModel):
    chunk_size: int = 1000
    chunk_overlap: int = 200
    separators: List[str] = Field(default_factory=lambda: list(DEFAULT_SEPARATORS))


class EmbeddingBatchConfig(BaseModel):
    """Batching for the embed-then-upsert step: small embedding batches paced by inter_batch_delay, larger upsert batches."""

    embedding_batch_size: int = 3
    inter_batch_delay: float = 5.0
    upsert_batch_size: int = 100


class MediaConfig(BaseModel):
    max_mb: float = 20.0
    download_timeout: float = 30.0
    scratch_dir: str = os.path.join(os.getcwd(), "data", "scratch")


class RetrievalConfig(BaseModel):
    """Thresholds for the search fallback: primary score cut, relaxed cut, top_k fetched, and how many matches feed the answer context."""

    top_k: int = 10
    primary_threshold: float = 0.30
    fallback_threshold: float = 0.15
    max_context_matches: int = 5


class Settings(BaseModel):
    """Application settings loaded from environment: provider keys and models, Qdrant and Redis endpoints, queue/channel names, retry, chunking, batching, media and retrieval limits.
    Why available: Single source of configuration; entry points build the per-component config objects from it so no component reads the environment itself."""
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")
    embedding_model: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    chat_model: str = os.getenv("CHAT_MODEL", "gpt-4o-mini")
    transcription_model: str = os.getenv("TRANSCRIPTION_MODEL", "whisper-1")

    qdrant_url: str = os.getenv("QDRANT_URL", "http://localhost:6333")
    qdrant_collection: str = os.getenv("QDRANT_COLLECTION", "content_chunks")

    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    content_queue: str = os.getenv("CONTENT_QUEUE", "embedding_queue")
    search_queue: str = os.getenv("SEARCH_QUEUE", "search_queue")
    content_status_channel: str = os.getenv("CONTENT_STATUS_CHANNEL", "content-status")
    search_status_channel: str = os.getenv("SEARCH_STATUS_CHANNEL", "search-status")
    queue_poll_timeout: float = float(os.getenv("QUEUE_POLL_TIMEOUT", "5"))

    retry_max_attempts: int = int(os.getenv("RETRY_MAX_ATTEMPTS", "3"))
    retry_base_delay: float = float(os.getenv("RETRY_BASE_DELAY", "60"))
    retry_max_delay: float = float(os.getenv("RETRY_MAX_DELAY", "300"))
    retry_backoff_multiplier: float = float(os.getenv("RETRY_BACKOFF_MULTIPLIER", "2"))

    chunk_size: int = int(os.getenv("CHUNK_SIZE", "1000"))
    chunk_overlap: int = int(os.getenv("CHUNK_OVERLAP", "200"))
    embedding_batch_size: int = int(os.getenv("EMBEDDING_BATCH_SIZE", "3"))
    inter_batch_delay: float = float(os.getenv("INTER_BATCH_DELAY", "5"))
    upsert_batch_size: int = int(os.getenv("UPSERT_BATCH_SIZE", "100"))

    media_max_mb: float = float(os.getenv("MEDIA_MAX_MB", "20"))
    media_download_timeout: float = float(os.getenv("MEDIA_DOWNLOAD_TIMEOUT", "30"))
    scratch_dir: str = os.getenv("SCRATCH_DIR", os.path.join(os.getcwd(), "data", "scratch"))

    retrieve_top_k: int = int(os.getenv("RETRIEVE_TOP_K", "10"))
    primary_threshold: float = float(os.getenv("PRIMARY_THRESHOLD", "0.30"))
    fallback_threshold: float = float(os.getenv("FALLBACK_THRESHOLD", "0.15"))
    max_context_matches: int = int(os.getenv("MAX_CONTEXT_MATCHES", "5"))

    prompt_version: str = os.getenv("PROMPT_VERSION", "v1")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    @field_validator(
        "retry_max_attempts",
        "chunk_size",
        "embedding_batch_size",
        "upsert_batch_size",
        "retrieve_top_k",
        "max_context_matches",
    )
    @classmethod
    def must_be_positive(cls, v):
        """Ensure counts and sizes are positive integers. Prevents invalid config from env."""
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @field_validator("chunk_overlap")
    @classmethod
    def overlap_non_negative(cls, v):
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @field_validator("primary_threshold", "fallback_threshold")
    @classmethod
    def score_in_range(cls, v):
        if not 0.0 <= v <= 1.0:
            raise ValueError("must be between 0 and 1")
        return v

    @model_validator(mode="after")
    def limits_are_consistent(self):
        """Reject combinations the pipeline cannot run with, at startup instead of on the first job."""
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        if self.fallback_threshold > self.primary_threshold:
            raise ValueError("fallback_threshold must not exceed primary_threshold")
        return self

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
            backoff_multiplier=self.retry_backoff_multiplier,
        )

    def chunking(self) -> ChunkingConfig:
        return ChunkingConfig(chunk_size=self.chunk_size, chunk_overlap=self.chunk_overlap)

    def embedding_batches(self) -> EmbeddingBatchConfig:
        return EmbeddingBatchConfig(
            embedding_batch_size=self.embedding_batch_size,
            inter_batch_delay=self.inter_batch_delay,
            upsert_batch_size=self.upsert_batch_size,
        )

    def media(self) -> MediaConfig:
        return MediaConfig(
            max_mb=self.media_max_mb,
            download_timeout=self.media_download_timeout,
            scratch_dir=self.scratch_dir,
        )

    def retrieval(self) -> RetrievalConfig:
        return RetrievalConfig(
            top_k=self.retrieve_top_k,
            primary_threshold=self.primary_threshold,
            fallback_threshold=self.fallback_threshold,
            max_context_matches=self.max_context_matches,
        )


settings = Settings()
