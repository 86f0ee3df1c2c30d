"""Generation history endpoints."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from ..models import schemas
from ..services.errors import StudioError
from ..services.history import HistoryLog
from ..services.orchestration import GenerationOrchestrator
from .common import get_history, get_orchestrator, http_error

router = APIRouter(prefix="/history", tags=["history"])


@router.get("/", response_model=list[schemas.HistoryRecord])
async def list_history(history: HistoryLog = Depends(get_history)) -> list[schemas.HistoryRecord]:
    """Locally recorded video jobs, newest first."""

    return list(reversed(history.entries()))


@router.get("/provider")
async def list_provider_history(
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> list[dict[str, Any]]:
    """Kling video predictions as listed by WaveSpeed, including ones submitted without an id."""

    try:
        return await orchestrator.wavespeed.list_predictions()
    except StudioError as exc:
        raise http_error(exc) from exc
