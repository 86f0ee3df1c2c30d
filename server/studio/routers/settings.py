"""Provider API key management and account balance."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ..models import schemas
from ..services.credentials import ELEVENLABS, KIE, WAVESPEED, StoreCredentialProvider
from ..services.errors import ConfigurationError, StudioError
from ..services.orchestration import GenerationOrchestrator
from .common import get_credentials, get_orchestrator, http_error

router = APIRouter(prefix="/settings", tags=["settings"])

_PROVIDERS = (WAVESPEED, ELEVENLABS, KIE)


@router.get("/credentials")
async def credential_status(credentials: StoreCredentialProvider = Depends(get_credentials)) -> dict[str, bool]:
    """Which providers have a key configured. Keys themselves are never returned."""

    return {name: bool((credentials.get(name) or "").strip()) for name in _PROVIDERS}


@router.put("/credentials/{provider}", status_code=204)
async def save_credential(
    provider: str,
    payload: schemas.CredentialUpdate,
    credentials: StoreCredentialProvider = Depends(get_credentials),
) -> None:
    if provider not in _PROVIDERS:
        raise HTTPException(status_code=404, detail=f"Unknown provider {provider}")
    credentials.save(provider, payload.api_key)


@router.get("/balance")
async def wavespeed_balance(
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> dict[str, Optional[float]]:
    """WaveSpeed credit; ``null`` until a key is configured."""

    try:
        return {"balance": await orchestrator.wavespeed.fetch_balance()}
    except ConfigurationError:
        return {"balance": None}
    except StudioError as exc:
        raise http_error(exc) from exc
