"""
Query refinement: ask the LLM to rephrase/expand a search query into one retrieval-friendly query.
"""
import asyncio
import logging
from typing import Optional

from contentflow.core.config import RetryPolicy
from contentflow.prompts.loader import render_prompt
from contentflow.providers.base import LanguageModel
from contentflow.utils.retry import Sleep, with_retry

logger = logging.getLogger(__name__)


def _first_line(raw: str) -> str:
    """First non-empty line of the model output, without a "Refined query:" label or wrapping quotes."""
    for ln in (raw or "").splitlines():
        ln = ln.strip()
        if not ln:
            continue
        if ln.lower().startswith("refined query:"):
            ln = ln.split(":", 1)[1].strip()
        return ln.strip('"').strip()
    return ""


async def refine_query(
    query: str,
    llm: LanguageModel,
    *,
    retry_policy: RetryPolicy,
    prompt_version: Optional[str] = None,
    sleep: Sleep = asyncio.sleep,
) -> str:
    """Return a refined version of query for a second retrieval pass. Provider errors propagate (through the retry engine); an empty model reply falls back to the original query.
    Why available: Second stage of the retrieval fallback when the original query finds nothing above the primary threshold."""
    query = (query or "").strip()
    prompt = render_prompt("search_refine", version=prompt_version, query=query)
    raw = await with_retry(
        lambda: llm.complete(prompt),
        policy=retry_policy,
        operation_name="query refinement",
        sleep=sleep,
    )
    refined = _first_line(raw)
    if not refined:
        logger.warning("query_refine_empty", extra={"query_preview": query[:80]})
        return query
    return refined
