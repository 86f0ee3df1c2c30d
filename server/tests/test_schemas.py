from __future__ import annotations

import pytest
from pydantic import ValidationError

from studio.models.schemas import Job, JobStatus, MotionControlRequest


def test_completed_requires_outputs() -> None:
    with pytest.raises(ValidationError):
        Job(id="a", status=JobStatus.COMPLETED)
    with pytest.raises(ValidationError):
        Job(id="a", status=JobStatus.PROCESSING, outputs=["https://x/v.mp4"])


def test_failed_requires_error_detail() -> None:
    with pytest.raises(ValidationError):
        Job(id="a", status=JobStatus.FAILED)
    with pytest.raises(ValidationError):
        Job(id="a", status=JobStatus.SUBMITTED, error_detail="nope")


def test_transitions_keep_terminal_fields_exclusive() -> None:
    job = Job(id="a")
    processing = job.mark_processing()
    done = processing.complete(["https://x/v.mp4"])
    failed = processing.fail("quota exceeded")

    assert job.status is JobStatus.SUBMITTED
    assert processing.status is JobStatus.PROCESSING and not processing.is_terminal
    assert done.is_terminal and done.outputs and done.error_detail is None
    assert failed.is_terminal and failed.outputs == [] and failed.error_detail == "quota exceeded"
    assert done.created_at == job.created_at


def test_motion_control_needs_image_or_video() -> None:
    with pytest.raises(ValidationError):
        MotionControlRequest()
    assert MotionControlRequest(video="dmlkZW8=").character_orientation == "video"
