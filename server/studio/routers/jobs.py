"""Video generation job endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ..models import schemas
from ..services.errors import StudioError
from ..services.orchestration import GenerationOrchestrator, GenerationRequest, JobHandle
from ..services.submitter import AcceptedWithoutId
from .common import get_orchestrator, http_error

router = APIRouter(prefix="/jobs", tags=["jobs"])


def _response(handle: JobHandle) -> schemas.JobResponse:
    outcome = handle.outcome
    return schemas.JobResponse(
        job=handle.job,
        progress=handle.progress,
        message=outcome.message if outcome is not None else None,
    )


async def _submit(orchestrator: GenerationOrchestrator, payload: GenerationRequest) -> schemas.JobResponse:
    try:
        result = await orchestrator.submit(payload)
    except StudioError as exc:
        raise http_error(exc) from exc
    if isinstance(result, AcceptedWithoutId):
        return schemas.JobResponse(accepted_without_id=True, message=result.message)
    return _response(orchestrator.launch(result))


@router.post("/image-to-video", response_model=schemas.JobResponse, status_code=202)
async def create_image_to_video(
    payload: schemas.ImageToVideoRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> schemas.JobResponse:
    """Submit an image-to-video job and start polling it in the background."""

    return await _submit(orchestrator, payload)


@router.post("/motion-control", response_model=schemas.JobResponse, status_code=202)
async def create_motion_control(
    payload: schemas.MotionControlRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> schemas.JobResponse:
    return await _submit(orchestrator, payload)


@router.post("/veo", response_model=schemas.JobResponse, status_code=202)
async def create_veo(
    payload: schemas.VeoRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> schemas.JobResponse:
    """Submit a kie.ai Veo task. The result is posted to ``call_back_url``; nothing is polled."""

    try:
        result = await orchestrator.submit(payload)
    except StudioError as exc:
        raise http_error(exc) from exc
    if isinstance(result, AcceptedWithoutId):
        return schemas.JobResponse(accepted_without_id=True, message=result.message)
    return schemas.JobResponse(job=result, message=orchestrator.reporter.submitted(result).message)


@router.get("/{job_id}", response_model=schemas.JobResponse)
async def get_job(
    job_id: str,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> schemas.JobResponse:
    """Latest known state, progress text and outcome message for a job."""

    handle = orchestrator.handle(job_id)
    if handle is None:
        raise HTTPException(status_code=404, detail=f"Unknown job {job_id}")
    return _response(handle)


@router.post("/{job_id}/cancel", response_model=schemas.JobResponse)
async def cancel_job(
    job_id: str,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> schemas.JobResponse:
    handle = orchestrator.handle(job_id)
    if handle is None:
        raise HTTPException(status_code=404, detail=f"Unknown job {job_id}")
    orchestrator.cancel(handle.job)
    return _response(handle)


@router.delete("/{job_id}", status_code=204)
async def discard_job(
    job_id: str,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> None:
    """Forget a job when the UI resets; cancels it first if it is still polling."""

    orchestrator.discard(job_id)
