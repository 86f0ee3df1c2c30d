"""kie.ai client: Veo reference-image video generation."""
from __future__ import annotations

import logging
from typing import Any, Optional

from ..config import settings
from ..models.schemas import VeoRequest
from .credentials import KIE, CredentialProvider
from .submitter import JobSubmitter, SubmitResult, bearer_auth
from .transport import ProviderTransport

logger = logging.getLogger(__name__)

VEO_FAILURE_MESSAGE = "Failed to generate video. Please try again."


def veo_payload(request: VeoRequest) -> dict[str, Any]:
    """Request body for ``/api/v1/veo/generate``; unset optional fields are omitted."""

    payload: dict[str, Any] = {
        "prompt": request.prompt,
        "imageUrls": list(request.image_urls),
        "model": request.model,
        "watermark": (request.watermark or "").strip() or None,
        "callBackUrl": (request.call_back_url or "").strip() or None,
        "aspect_ratio": request.aspect_ratio,
        "seeds": request.seeds or None,
        "enableFallback": request.enable_fallback,
        "enableTranslation": request.enable_translation,
        "generationType": request.generation_type,
    }
    return {key: value for key, value in payload.items() if value is not None}


class KieClient:
    """Submits Veo tasks. kie.ai reports results through ``callBackUrl``, so there is no status check."""

    def __init__(
        self,
        credentials: CredentialProvider,
        *,
        base_url: Optional[str] = None,
        transport: Optional[ProviderTransport] = None,
    ) -> None:
        raw_base = (base_url or settings.kie_base_url or "").strip()
        if not raw_base.startswith(("http://", "https://")):
            raise RuntimeError("KIE_BASE_URL must include http/https scheme")
        self._base_url = raw_base.rstrip("/")
        self._submitter = JobSubmitter(credentials, transport=transport or ProviderTransport())

    async def submit_veo(self, request: VeoRequest) -> SubmitResult:
        logger.info("Submitting Veo task (%s, %d reference images)", request.model, len(request.image_urls))
        return await self._submitter.submit(
            KIE,
            f"{self._base_url}/api/v1/veo/generate",
            veo_payload(request),
            auth=bearer_auth,
            model=request.model,
            prompt=request.prompt,
        )
