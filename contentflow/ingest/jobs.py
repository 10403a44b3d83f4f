"""Per-delivery job state: PROCESSING -> COMPLETED | FAILED, with terminal states absorbing."""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from contentflow.core.errors import InvalidTransitionError


class JobStatus(str, Enum):
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass
class JobState:
    """Tracks one delivery of a job through its stages and its single terminal transition.
    Why available: Consumers finish every job through finish(); a second terminal transition raises instead of publishing a second event."""

    job_id: str
    status: JobStatus = JobStatus.PROCESSING
    stage: str = "RECEIVED"
    stages: List[str] = field(default_factory=lambda: ["RECEIVED"])
    created_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def enter(self, stage: str) -> None:
        if self.is_terminal:
            raise InvalidTransitionError(f"job {self.job_id} is {self.status.value}; cannot enter {stage}")
        self.stage = stage
        self.stages.append(stage)

    def finish(self, status: JobStatus, error: Optional[str] = None) -> None:
        if status not in TERMINAL_STATUSES:
            raise InvalidTransitionError(f"{status.value} is not a terminal status")
        if self.is_terminal:
            raise InvalidTransitionError(f"job {self.job_id} already {self.status.value}")
        self.status = status
        self.stage = status.value
        self.stages.append(status.value)
        self.error = error
        self.finished_at = time.time()
