"""Pydantic models describing jobs, history records and request payloads."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    SUBMITTED = "submitted"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})


class Job(BaseModel):
    """One asynchronous task tracked by its provider-assigned identifier.

    Instances are treated as values: the transition helpers return a new,
    re-validated ``Job`` rather than mutating in place.
    """

    id: str
    status: JobStatus = JobStatus.SUBMITTED
    created_at: datetime = Field(default_factory=_utcnow)
    outputs: List[str] = Field(default_factory=list)
    error_detail: Optional[str] = None
    model: Optional[str] = None
    prompt: Optional[str] = None

    @model_validator(mode="after")
    def _check_terminal_fields(self) -> "Job":
        if bool(self.outputs) != (self.status is JobStatus.COMPLETED):
            raise ValueError("outputs must be non-empty exactly when status is completed")
        if (self.error_detail is not None) != (self.status is JobStatus.FAILED):
            raise ValueError("error_detail must be set exactly when status is failed")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def _transition(self, **changes: Any) -> "Job":
        return Job.model_validate({**self.model_dump(), **changes})

    def mark_processing(self) -> "Job":
        return self._transition(status=JobStatus.PROCESSING)

    def complete(self, outputs: List[str]) -> "Job":
        return self._transition(status=JobStatus.COMPLETED, outputs=list(outputs), error_detail=None)

    def fail(self, detail: str) -> "Job":
        return self._transition(status=JobStatus.FAILED, outputs=[], error_detail=detail)


class HistoryRecord(BaseModel):
    """Entry of the bounded generation history kept in the settings store."""

    id: str
    status: JobStatus
    created_at: datetime
    outputs: List[str] = Field(default_factory=list)
    model: Optional[str] = None
    prompt: Optional[str] = None

    @classmethod
    def from_job(cls, job: Job) -> "HistoryRecord":
        return cls(
            id=job.id,
            status=job.status,
            created_at=job.created_at,
            outputs=list(job.outputs),
            model=job.model,
            prompt=job.prompt,
        )


class ImageToVideoRequest(BaseModel):
    """Image plus prompt animated by the Kling image-to-video model."""

    image: str = Field(..., min_length=1, description="Base64-encoded source image")
    prompt: str = Field(..., min_length=1, description="Motion / scene description")
    duration: Literal[5, 10] = Field(default=5, description="Clip length in seconds")


class MotionControlRequest(BaseModel):
    """Transfer motion from a reference video onto a character image."""

    image: str = Field(default="", description="Base64-encoded character image")
    video: str = Field(default="", description="Base64-encoded motion reference video")
    character_orientation: Literal["video", "image"] = "video"
    keep_original_sound: bool = True

    @model_validator(mode="after")
    def _require_media(self) -> "MotionControlRequest":
        if not self.image and not self.video:
            raise ValueError("Please provide an image or video.")
        return self


class VeoRequest(BaseModel):
    """Reference-image video generation on kie.ai Veo."""

    prompt: str = Field(..., min_length=1)
    image_urls: List[str] = Field(..., description="Public URLs of the reference images")
    model: str = "veo3_fast"
    watermark: Optional[str] = None
    call_back_url: Optional[str] = Field(default=None, description="Provider posts the result here when done")
    aspect_ratio: Literal["16:9", "9:16", "1:1", "4:3", "3:4"] = "16:9"
    seeds: Optional[int] = None
    enable_fallback: bool = False
    enable_translation: bool = True
    generation_type: str = "REFERENCE_2_VIDEO"

    @model_validator(mode="after")
    def _clean(self) -> "VeoRequest":
        self.prompt = self.prompt.strip()
        if not self.prompt:
            raise ValueError("Please enter a prompt.")
        self.image_urls = [url.strip() for url in self.image_urls if url.strip()]
        if not self.image_urls:
            raise ValueError("Please provide at least one image URL.")
        return self


class SampleFile(BaseModel):
    """Audio file handed over by the UI as base64 text."""

    filename: str
    content: str = Field(..., description="Base64-encoded file bytes")
    mime_type: str = "audio/mpeg"


class VoiceCloneRequest(BaseModel):
    """Inputs for the first voice-clone phase (voice creation)."""

    name: str = Field(..., min_length=1)
    language: str = "en"
    description: Optional[str] = None


class JobResponse(BaseModel):
    """Job state plus the latest progress text and outcome message for the UI."""

    job: Optional[Job] = None
    accepted_without_id: bool = False
    progress: Optional[str] = None
    message: Optional[str] = None


class PipelineRunResponse(BaseModel):
    run_id: str
    state: str
    phases: List[str]
    current_phase: int
    next_phase: Optional[str] = None
    terminal: bool
    failed_phase: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = Field(default=None, description="Outcome text once the run is terminal")
    artifacts: Dict[str, Any] = Field(default_factory=dict)


class PhaseRunRequest(BaseModel):
    phase: Optional[str] = None
    input: Optional[Any] = None


class CredentialUpdate(BaseModel):
    api_key: str = ""
