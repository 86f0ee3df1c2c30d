"""Maps terminal job and pipeline states to user-facing outcomes."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..models.schemas import HistoryRecord, Job, JobStatus
from .history import HistoryLog
from .pipeline import PipelineRun, RunState
from .submitter import AcceptedWithoutId
from .transport import message_from_body

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "An unknown error occurred."


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = value if isinstance(value, str) else str(value)
    return text if text.strip() else None


def error_message(err: Any, default: str = DEFAULT_ERROR_MESSAGE) -> str:
    """Human-readable message for ``err``.

    Precedence: the structured ``message`` field, then a generic ``error``
    field (a string, or an object carrying ``message``), then the error
    stringified, then ``default``. Works on exceptions, provider error
    bodies (dicts) and plain strings alike.
    """

    if err is None:
        return default
    if isinstance(err, str):
        return err if err.strip() else default
    if isinstance(err, dict):
        # Provider bodies nest the text in several shapes; never show a dict repr.
        return message_from_body(err) or default

    message = getattr(err, "message", None)
    if isinstance(message, dict):
        message = message_from_body(message)
    message = _text(message)
    if message:
        return message

    generic = getattr(err, "error", None)
    if isinstance(generic, dict):
        generic = message_from_body(generic)
    elif generic is not None and not isinstance(generic, str):
        generic = getattr(generic, "message", None) or generic
    generic_text = _text(generic)
    if generic_text:
        return generic_text

    return _text(err) or default


@dataclass
class Outcome:
    """What the UI shows once a job or run stops."""

    ok: bool
    message: Optional[str] = None
    outputs: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None
    accepted: bool = False
    artifacts: Dict[str, Any] = field(default_factory=dict)


class ResultReporter:
    """Builds ``Outcome`` values and records finished video jobs in history."""

    def __init__(self, history: Optional[HistoryLog] = None) -> None:
        self._history = history

    def job_succeeded(self, job: Job, *, record_history: bool = True) -> Outcome:
        if job.status is not JobStatus.COMPLETED:
            raise ValueError(f"job {job.id} is {job.status.value}, not completed")
        if record_history and self._history is not None:
            self._history.append(HistoryRecord.from_job(job))
        return Outcome(ok=True, outputs=list(job.outputs), created_at=job.created_at)

    def failed(self, err: Any, *, default: str = DEFAULT_ERROR_MESSAGE) -> Outcome:
        message = error_message(err, default)
        logger.info("Reporting failure: %s", message)
        return Outcome(ok=False, message=message)

    def accepted(self, result: AcceptedWithoutId) -> Outcome:
        return Outcome(ok=True, accepted=True, message=result.message)

    def submitted(self, job: Job) -> Outcome:
        """Job handed to a provider that delivers its result by callback rather than polling."""

        return Outcome(ok=True, accepted=True, created_at=job.created_at, message=f"Task {job.id} submitted.")

    def run_finished(self, run: PipelineRun) -> Outcome:
        if run.state is RunState.COMPLETED:
            return Outcome(ok=True, message="Voice training completed successfully!", artifacts=dict(run.phase_artifacts))
        if run.state is RunState.FAILED:
            message = error_message(run.error)
            return Outcome(ok=False, message=f"{run.failed_phase}: {message}", artifacts=dict(run.phase_artifacts))
        if run.state is RunState.CANCELLED:
            return Outcome(ok=False, message="Cancelled by the user.", artifacts=dict(run.phase_artifacts))
        raise ValueError(f"run {run.id} is not terminal ({run.state.value})")
