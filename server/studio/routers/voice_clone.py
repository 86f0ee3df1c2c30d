"""Professional voice clone pipeline endpoints.

Each POST to ``/{run_id}/phases`` runs exactly one phase; the UI asks the
user to confirm before moving on.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ..models import schemas
from ..services.errors import StudioError
from ..services.orchestration import GenerationOrchestrator
from ..services.pipeline import PipelineRun
from .common import get_orchestrator, http_error

router = APIRouter(prefix="/voice-clones", tags=["voice-clone"])


def _response(run: PipelineRun, orchestrator: GenerationOrchestrator) -> schemas.PipelineRunResponse:
    outcome = orchestrator.run_outcome(run)
    return schemas.PipelineRunResponse(
        run_id=run.id,
        state=run.state.value,
        phases=list(run.phases),
        current_phase=run.current_phase,
        next_phase=run.next_phase,
        terminal=run.terminal,
        failed_phase=run.failed_phase,
        error=run.error,
        message=outcome.message if outcome is not None else None,
        artifacts=dict(run.phase_artifacts),
    )


def _lookup(orchestrator: GenerationOrchestrator, run_id: str) -> PipelineRun:
    run = orchestrator.run(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail=f"Unknown voice clone run {run_id}")
    return run


@router.post("/", response_model=schemas.PipelineRunResponse, status_code=201)
async def start_voice_clone(
    payload: schemas.VoiceCloneRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> schemas.PipelineRunResponse:
    """Create the PVC voice (phase one) and return the new run."""

    run = orchestrator.new_voice_clone_run()
    try:
        await orchestrator.run_phase(run, payload)
    except StudioError as exc:
        raise http_error(exc) from exc
    return _response(run, orchestrator)


@router.get("/{run_id}", response_model=schemas.PipelineRunResponse)
async def get_voice_clone(
    run_id: str,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> schemas.PipelineRunResponse:
    return _response(_lookup(orchestrator, run_id), orchestrator)


@router.post("/{run_id}/phases", response_model=schemas.PipelineRunResponse)
async def run_voice_clone_phase(
    run_id: str,
    payload: schemas.PhaseRunRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> schemas.PipelineRunResponse:
    """Run the next phase, or the named one if its predecessor is done."""

    run = _lookup(orchestrator, run_id)
    try:
        await orchestrator.run_phase(run, payload.input, phase=payload.phase)
    except StudioError as exc:
        raise http_error(exc) from exc
    return _response(run, orchestrator)


@router.post("/{run_id}/cancel", response_model=schemas.PipelineRunResponse)
async def cancel_voice_clone(
    run_id: str,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> schemas.PipelineRunResponse:
    run = _lookup(orchestrator, run_id)
    orchestrator.cancel(run)
    return _response(run, orchestrator)


@router.delete("/{run_id}", status_code=204)
async def discard_voice_clone(
    run_id: str,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> None:
    orchestrator.discard_run(run_id)
