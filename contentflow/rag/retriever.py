import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from contentflow.core.config import RetrievalConfig, RetryPolicy
from contentflow.providers.base import EmbeddingProvider, LanguageModel, VectorMatch, VectorStore
from contentflow.utils.retry import Sleep, with_retry
from .answerer import generate_answer
from .context import pack_context, select_matches, video_links
from .query_rewriter import refine_query

logger = logging.getLogger(__name__)

STAGE_ORIGINAL = "original"
STAGE_REFINED = "refined"
STAGE_RELAXED = "relaxed"
STAGE_NONE = "none"


@dataclass
class SearchResult:
    text: str
    video_links: List[str] = field(default_factory=list)
    match_count: int = 0
    top_score: Optional[float] = None
    stage: str = STAGE_NONE
    refined_query: Optional[str] = None

    def to_data(self) -> Dict[str, Any]:
        """Wire shape of the search result inside a completed StatusEvent."""
        return {
            "text": self.text,
            "videoLinks": list(self.video_links),
            "matchCount": self.match_count,
            "topScore": self.top_score,
        }


class FallbackRetriever:
    """Three-stage retrieval: original query at the primary threshold, LLM-refined query at the primary threshold, refined query at the relaxed threshold. First stage with any qualifying match wins; the answer is generated from the winning matches (or with no context).
    Why available: Short or vague queries often miss at the primary threshold; refining before relaxing keeps precision where possible."""

    def __init__(
        self,
        *,
        embedder: EmbeddingProvider,
        vector_store: VectorStore,
        llm: LanguageModel,
        config: RetrievalConfig,
        retry_policy: RetryPolicy,
        prompt_version: Optional[str] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.embedder = embedder
        self.vector_store = vector_store
        self.llm = llm
        self.config = config
        self.retry_policy = retry_policy
        self.prompt_version = prompt_version
        self.sleep = sleep

    async def _search(self, query: str) -> List[VectorMatch]:
        vectors = await with_retry(
            lambda: self.embedder.embed([query]),
            policy=self.retry_policy,
            operation_name="query embedding",
            sleep=self.sleep,
        )
        return await self.vector_store.query(vectors[0], self.config.top_k)

    async def resolve(self, query: str) -> SearchResult:
        cfg = self.config
        stage = STAGE_NONE
        refined: Optional[str] = None

        matches = await self._search(query)
        selected = select_matches(matches, cfg.primary_threshold, cfg.max_context_matches)
        if selected:
            stage = STAGE_ORIGINAL
        else:
            refined = await refine_query(
                query,
                self.llm,
                retry_policy=self.retry_policy,
                prompt_version=self.prompt_version,
                sleep=self.sleep,
            )
            logger.info("search_query_refined", extra={"query_preview": query[:80], "refined_preview": refined[:80]})
            matches = await self._search(refined)
            selected = select_matches(matches, cfg.primary_threshold, cfg.max_context_matches)
            if selected:
                stage = STAGE_REFINED
            else:
                # Relaxed pass reuses the refined query's matches.
                selected = select_matches(matches, cfg.fallback_threshold, cfg.max_context_matches)
                if selected:
                    stage = STAGE_RELAXED

        logger.info("search_retrieval_done", extra={"stage": stage, "matches": len(selected)})
        text = await generate_answer(
            query,
            pack_context(selected),
            self.llm,
            retry_policy=self.retry_policy,
            prompt_version=self.prompt_version,
            sleep=self.sleep,
        )
        return SearchResult(
            text=text,
            video_links=video_links(selected),
            match_count=len(selected),
            top_score=selected[0].score if selected else None,
            stage=stage,
            refined_query=refined,
        )
