"""Error taxonomy for job submission, polling and multi-phase pipelines."""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ..models.schemas import Job


class StudioError(Exception):
    """Base class; ``message`` is always safe to show to a user."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(StudioError):
    """A credential or provider setting is missing. Raised before any network call."""


class SubmissionError(StudioError):
    """The provider rejected the creation call or it never reached the provider."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PollError(StudioError):
    """A status check failed at the transport or HTTP level."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class JobFailedError(StudioError):
    """The provider reported a terminal failure for the job."""

    def __init__(self, detail: str, *, job: Optional["Job"] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.job = job


class JobTimeoutError(StudioError, TimeoutError):
    """Attempts were exhausted. The job may still finish on the provider side."""

    def __init__(self, message: str, *, attempts: int, job_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.job_id = job_id


class JobCancelledError(StudioError):
    """Polling or a phase stopped because the caller cancelled it."""


class PhaseError(StudioError):
    """One phase of a pipeline run failed or could not be started."""

    def __init__(self, message: str, *, phase: str) -> None:
        super().__init__(message)
        self.phase = phase


class InvalidInputError(StudioError):
    """Caller-supplied input was rejected; the phase can be retried with corrected input."""
