"""Queue job envelopes: a tagged variant keyed by `kind`, validated when the message is deserialized."""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from contentflow.core.errors import JobValidationError


class JobKind(str, Enum):
    CONTENT_EMBED = "CONTENT_EMBED"
    SEARCH = "SEARCH"


class ContentKind(str, Enum):
    ARTICLE = "ARTICLE"
    VIDEO = "VIDEO"
    AUDIO = "AUDIO"


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ContentEmbedPayload(_WireModel):
    """A submitted post to embed. ARTICLE carries raw_text (may be empty: that is the "no content" path); VIDEO/AUDIO carry an http(s) media_url.
    Why available: Worker input for the content-embedding queue; the same payload replayed yields the same vector ids."""

    content_id: str = Field(..., min_length=1)
    content_kind: ContentKind
    raw_text: Optional[str] = None
    media_url: Optional[str] = None
    title: str = "Untitled"
    tags: List[str] = Field(default_factory=list)
    owner_id: str = Field(..., min_length=1)

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, v):
        """Accept a list or a comma-separated string; drop blanks and duplicates, keep first-seen order."""
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        out: List[str] = []
        for t in v:
            t = str(t).strip()
            if t and t not in out:
                out.append(t)
        return out

    @field_validator("title", mode="before")
    @classmethod
    def default_title(cls, v):
        return (v or "").strip() or "Untitled"

    @model_validator(mode="after")
    def media_needs_url(self):
        if self.content_kind in (ContentKind.VIDEO, ContentKind.AUDIO):
            parsed = urlparse(self.media_url or "")
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                raise ValueError(f"{self.content_kind.value} content requires an http(s) mediaUrl")
        return self


class SearchPayload(_WireModel):
    query: str
    search_id: str = Field(..., min_length=1)

    @field_validator("query")
    @classmethod
    def query_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("query must not be empty")
        return v


class _JobBase(_WireModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), alias="jobId")
    enqueued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_message(self) -> bytes:
        """UTF-8 JSON body for the queue."""
        return self.model_dump_json(by_alias=True).encode("utf-8")


class ContentEmbedJob(_JobBase):
    kind: Literal[JobKind.CONTENT_EMBED] = JobKind.CONTENT_EMBED
    payload: ContentEmbedPayload


class SearchJob(_JobBase):
    kind: Literal[JobKind.SEARCH] = JobKind.SEARCH
    payload: SearchPayload


Job = Annotated[Union[ContentEmbedJob, SearchJob], Field(discriminator="kind")]

_job_adapter: TypeAdapter = TypeAdapter(Job)


def parse_job(body: Union[bytes, str]) -> Union[ContentEmbedJob, SearchJob]:
    """Deserialize and validate a queue message. Unknown kinds, bad JSON and payload invariant violations raise JobValidationError."""
    try:
        return _job_adapter.validate_json(body)
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}" for err in e.errors()
        )
        raise JobValidationError(f"Invalid job message: {errors}") from e
