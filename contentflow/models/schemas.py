from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ContentAcceptedResponse(_ApiModel):
    """Response for POST /content. Why available: Gives the client the job id; the result arrives on /ws/content for the owner."""

    job_id: str
    content_id: str
    status: str = Field("PROCESSING", description="Status persisted at submission time")


class ContentStatusResponse(_ApiModel):
    """Response for GET /content/{content_id}/status. Why available: Polling fallback for clients that missed the WebSocket event."""

    content_id: str
    status: str


class SearchRequest(_ApiModel):
    """Request body for POST /search. search_id is generated when omitted; clients that want to open the WebSocket first can choose their own."""

    query: str = Field(..., min_length=1)
    search_id: Optional[str] = Field(None, description="Correlation key for /ws/search")


class SearchAcceptedResponse(_ApiModel):
    job_id: str
    search_id: str


class HealthResponse(_ApiModel):
    status: str
    redis: bool
    connections: int = Field(..., ge=0)
