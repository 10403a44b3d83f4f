"""Pipeline error taxonomy. Provider adapters translate SDK errors into these; consumers turn any of them into a FAILED job."""
from typing import Optional


class PipelineError(Exception):
    """Base class for every error raised inside the job pipeline."""


class TransientQuotaError(PipelineError):
    """Provider signalled rate/quota exhaustion. retry_after is the provider's hint in seconds, if any."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class UpstreamUnavailableError(PipelineError):
    """Network failure, timeout or 5xx from an external service. Not retried by the retry engine."""


class JobValidationError(PipelineError):
    """Malformed or unknown job payload. Fails the job immediately."""


class ExhaustedRetriesError(PipelineError):
    """A TransientQuotaError persisted through every allowed attempt."""

    def __init__(self, operation_name: str, attempts: int, last_error: BaseException):
        super().__init__(f"{operation_name} exhausted {attempts} attempts: {last_error}")
        self.operation_name = operation_name
        self.attempts = attempts
        self.last_error = last_error


class InvalidTransitionError(PipelineError):
    """A job tried to leave an absorbing (terminal) status."""


def is_quota_failure(exc: BaseException) -> bool:
    """True for errors that should be reported to clients as QUOTA_EXCEEDED."""
    return isinstance(exc, (TransientQuotaError, ExhaustedRetriesError))
