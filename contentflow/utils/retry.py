import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from contentflow.core.config import RetryPolicy
from contentflow.core.errors import ExhaustedRetriesError, TransientQuotaError

T = TypeVar("T")

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def backoff_delay(policy: RetryPolicy, attempt: int, retry_after: Optional[float] = None) -> float:
    """Delay before the attempt after `attempt` (1-based): exponential backoff, raised to the provider hint when that is larger, capped at max_delay."""
    delay = policy.base_delay * (policy.backoff_multiplier ** (attempt - 1))
    if retry_after is not None and retry_after > delay:
        delay = retry_after
    return min(policy.max_delay, delay)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    operation_name: str = "operation",
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Await fn() and retry it only on TransientQuotaError, sleeping with exponential backoff between attempts. Any other error propagates on first occurrence; after policy.max_attempts quota failures raises ExhaustedRetriesError chained to the last one.
    Why available: Every embedding, transcription and LLM call goes through here so provider rate limits slow a job down instead of failing it."""
    last_err: Optional[TransientQuotaError] = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await fn()
        except TransientQuotaError as e:
            last_err = e
            if attempt >= policy.max_attempts:
                break
            delay = backoff_delay(policy, attempt, e.retry_after)
            logger.warning(
                "quota_retry",
                extra={
                    "operation": operation_name,
                    "attempt": attempt,
                    "max_attempts": policy.max_attempts,
                    "delay_s": round(delay, 2),
                },
            )
            await sleep(delay)

    assert last_err is not None
    raise ExhaustedRetriesError(operation_name, policy.max_attempts, last_err) from last_err
