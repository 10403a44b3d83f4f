"""OpenAI async client construction and SDK error translation into the pipeline taxonomy."""
from typing import Optional

import httpx
import openai
from openai import AsyncOpenAI

from contentflow.core.errors import PipelineError, TransientQuotaError, UpstreamUnavailableError


def create_openai_client(api_key: str, timeout: float = 60.0) -> AsyncOpenAI:
    """Return an AsyncOpenAI client. SDK-level retries are disabled; quota retries belong to contentflow.utils.retry.
    Why available: Entry points own the client and inject it into every provider adapter (embeddings, chat, transcription)."""
    return AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)


def _retry_after_seconds(response: Optional[httpx.Response]) -> Optional[float]:
    """Read Retry-After (seconds) or retry-after-ms from a 429 response; None when absent or not numeric."""
    if response is None:
        return None
    ms = response.headers.get("retry-after-ms")
    if ms:
        try:
            return float(ms) / 1000.0
        except ValueError:
            pass
    raw = response.headers.get("retry-after")
    if raw:
        try:
            return float(raw)
        except ValueError:
            return None
    return None


def map_openai_error(e: openai.OpenAIError) -> PipelineError:
    """Classify an OpenAI SDK error: 429 or quota wording -> TransientQuotaError (with retry-after hint); connection, timeout and 5xx -> UpstreamUnavailableError; anything else -> PipelineError."""
    if isinstance(e, openai.RateLimitError):
        return TransientQuotaError(str(e), retry_after=_retry_after_seconds(e.response))
    if isinstance(e, openai.APIStatusError):
        if e.status_code == 429 or "quota" in str(e).lower():
            return TransientQuotaError(str(e), retry_after=_retry_after_seconds(e.response))
        if e.status_code >= 500:
            return UpstreamUnavailableError(str(e))
        return PipelineError(str(e))
    if isinstance(e, openai.APIConnectionError):
        return UpstreamUnavailableError(str(e))
    return PipelineError(str(e))
