from __future__ import annotations

from datetime import datetime, timezone

import pytest

from studio.models.schemas import Job
from studio.services.errors import JobFailedError, JobTimeoutError, SubmissionError
from studio.services.history import HistoryLog
from studio.services.pipeline import PipelineRun, RunState
from studio.services.reporter import DEFAULT_ERROR_MESSAGE, ResultReporter, error_message
from studio.services.storage import MemoryStore
from studio.services.submitter import AcceptedWithoutId


class _Plain:
    def __str__(self) -> str:
        return "plain object"


class _WithError:
    error = {"message": "nested provider message"}


def test_message_field_wins() -> None:
    assert error_message({"message": "structured", "error": "generic"}) == "structured"
    assert error_message(SubmissionError("rejected")) == "rejected"


def test_generic_error_field_is_second() -> None:
    assert error_message({"error": "generic"}) == "generic"
    assert error_message(_WithError()) == "nested provider message"


def test_nested_provider_shapes_never_show_a_dict() -> None:
    assert error_message({"message": {"detail": "voice limit reached"}}) == "voice limit reached"
    assert error_message({"detail": {"status": "error", "message": "storage offline"}}) == "storage offline"
    assert error_message({"code": 402, "msg": "Insufficient credits"}) == "Insufficient credits"
    assert error_message({"message": {}}) == DEFAULT_ERROR_MESSAGE


def test_stringified_object_is_third() -> None:
    assert error_message(_Plain()) == "plain object"
    assert error_message(ValueError("bad input")) == "bad input"
    assert error_message("already text") == "already text"


def test_default_is_last() -> None:
    assert error_message(None) == DEFAULT_ERROR_MESSAGE
    assert error_message(ValueError()) == DEFAULT_ERROR_MESSAGE
    assert error_message("  ", default="Failed to train voice.") == "Failed to train voice."


def test_success_outcome_records_history() -> None:
    history = HistoryLog(MemoryStore())
    job = Job(id="j1", created_at=datetime(2026, 3, 1, tzinfo=timezone.utc), prompt="dog in park").complete(
        ["https://x/video.mp4"]
    )

    outcome = ResultReporter(history).job_succeeded(job)

    assert outcome.ok is True
    assert outcome.outputs == ["https://x/video.mp4"]
    assert outcome.created_at == job.created_at
    assert [entry.id for entry in history.entries()] == ["j1"]


def test_success_requires_completed_job() -> None:
    with pytest.raises(ValueError):
        ResultReporter().job_succeeded(Job(id="j2"))


def test_failure_outcomes() -> None:
    reporter = ResultReporter()

    assert reporter.failed(JobFailedError("content policy violation")).message == "content policy violation"
    timeout = reporter.failed(JobTimeoutError("Stopped waiting for job j3 after 60 attempts.", attempts=60))
    assert timeout.ok is False
    assert "failed" not in timeout.message


def test_accepted_without_id_outcome() -> None:
    outcome = ResultReporter().accepted(AcceptedWithoutId(provider="wavespeed"))
    assert outcome.ok is True
    assert outcome.accepted is True
    assert "Generation History" in outcome.message


def test_callback_job_is_reported_as_submitted_not_recorded() -> None:
    history = HistoryLog(MemoryStore())
    outcome = ResultReporter(history).submitted(Job(id="veo-1", model="veo3_fast"))

    assert outcome.ok is True
    assert outcome.accepted is True
    assert outcome.message == "Task veo-1 submitted."
    assert history.entries() == []


def test_run_outcomes() -> None:
    reporter = ResultReporter()
    failed = PipelineRun(phases=("a", "b"), state=RunState.FAILED, terminal=True, failed_phase="b", error="boom")
    assert reporter.run_finished(failed).message == "b: boom"

    done = PipelineRun(phases=("a",), state=RunState.COMPLETED, terminal=True, phase_artifacts={"a": 1})
    assert reporter.run_finished(done).artifacts == {"a": 1}

    with pytest.raises(ValueError):
        reporter.run_finished(PipelineRun(phases=("a",)))
