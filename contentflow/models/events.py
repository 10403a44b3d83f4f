import json
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

EVENT_COMPLETED = "completed"
EVENT_FAILED = "failed"


class StatusEvent(BaseModel):
    """Outcome of one terminal job transition, published on the job kind's status channel and routed to the client registered under correlation_id.
    Why available: The only thing a waiting client ever receives; never persisted, delivered at most once."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    correlation_id: str
    status: Literal["completed", "failed"]
    message: str
    data: Optional[Dict[str, Any]] = None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "StatusEvent":
        return cls.model_validate(json.loads(raw))

    @classmethod
    def completed(cls, correlation_id: str, message: str, data: Optional[Dict[str, Any]] = None) -> "StatusEvent":
        return cls(correlation_id=correlation_id, status=EVENT_COMPLETED, message=message, data=data)

    @classmethod
    def failed(cls, correlation_id: str, message: str, data: Optional[Dict[str, Any]] = None) -> "StatusEvent":
        return cls(correlation_id=correlation_id, status=EVENT_FAILED, message=message, data=data)
