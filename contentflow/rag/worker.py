import json
import logging
from typing import Optional

from contentflow.core.errors import JobValidationError
from contentflow.ingest.jobs import JobState, JobStatus
from contentflow.models.events import StatusEvent
from contentflow.models.jobs import SearchJob, parse_job
from contentflow.status.publisher import StatusPublisher
from .retriever import FallbackRetriever

logger = logging.getLogger(__name__)

SEARCH_COMPLETED_MESSAGE = "Search completed successfully"


class SearchWorker:
    """Handles SEARCH messages: resolve the query through the fallback retriever and publish one completed or failed StatusEvent keyed by searchId.
    Why available: Consumer-side handler for the search queue; search outcomes are not persisted, only published."""

    def __init__(self, *, retriever: FallbackRetriever, publisher: StatusPublisher, channel: str):
        self.retriever = retriever
        self.publisher = publisher
        self.channel = channel

    async def handle(self, body: str) -> None:
        try:
            job = parse_job(body)
            if not isinstance(job, SearchJob):
                raise JobValidationError(f"search queue received a {job.kind.value} job")
        except JobValidationError as e:
            search_id = _search_id_hint(body)
            logger.error("search_job_invalid", extra={"error": str(e), "search_id": search_id})
            await self._fail(None, search_id, e)
            return
        await self.process(job)

    async def process(self, job: SearchJob) -> JobState:
        search_id = job.payload.search_id
        state = JobState(job_id=job.id)
        log_ctx = {"job_id": job.id, "search_id": search_id}
        logger.info("search_job_received", extra={**log_ctx, "query_preview": job.payload.query[:80]})

        try:
            state.enter("RETRIEVING")
            result = await self.retriever.resolve(job.payload.query)
            state.finish(JobStatus.COMPLETED)
            logger.info(
                "search_job_completed",
                extra={**log_ctx, "stage": result.stage, "match_count": result.match_count},
            )
            await self.publisher.publish(
                self.channel, StatusEvent.completed(search_id, SEARCH_COMPLETED_MESSAGE, result.to_data())
            )
        except Exception as e:
            logger.error("search_job_failed", exc_info=True, extra=log_ctx)
            await self._fail(state, search_id, e)
        return state

    async def _fail(self, state: Optional[JobState], search_id: Optional[str], error: Exception) -> None:
        if state is not None and not state.is_terminal:
            state.finish(JobStatus.FAILED, error=str(error))
        if search_id:
            event = StatusEvent.failed(search_id, f"Search processing failed: {error}", {"error": str(error)})
            await self.publisher.publish(self.channel, event)


def _search_id_hint(body: str) -> Optional[str]:
    try:
        raw = json.loads(body)
    except ValueError:
        return None
    payload = raw.get("payload") if isinstance(raw, dict) else None
    value = payload.get("searchId") if isinstance(payload, dict) else None
    return value if isinstance(value, str) and value else None
