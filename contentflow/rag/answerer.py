import asyncio
from typing import Optional

from contentflow.core.config import RetryPolicy
from contentflow.prompts.loader import render_prompt
from contentflow.providers.base import LanguageModel
from contentflow.utils.retry import Sleep, with_retry


async def generate_answer(
    query: str,
    context: str,
    llm: LanguageModel,
    *,
    retry_policy: RetryPolicy,
    prompt_version: Optional[str] = None,
    sleep: Sleep = asyncio.sleep,
) -> str:
    """Answer the user's original query from the packed context; with the no-context sentence the model answers from general knowledge."""
    prompt = render_prompt("search_answer", version=prompt_version, query=query, context=context)
    return await with_retry(
        lambda: llm.complete(prompt),
        policy=retry_policy,
        operation_name="answer generation",
        sleep=sleep,
    )
