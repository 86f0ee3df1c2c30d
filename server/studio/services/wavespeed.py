"""WaveSpeed client: Kling image-to-video, motion control, prediction history and balance."""
from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ..config import settings
from ..models.schemas import ImageToVideoRequest, JobStatus, MotionControlRequest
from .credentials import WAVESPEED, CredentialProvider, require_credential
from .errors import PollError, SubmissionError
from .poller import StatusSnapshot
from .submitter import JobSubmitter, SubmitResult, bearer_auth
from .transport import ProviderTransport, response_error_message

logger = logging.getLogger(__name__)

IMAGE_TO_VIDEO_MODEL = "kwaivgi/kling-video-o1-std/image-to-video"
MOTION_CONTROL_MODEL = "kwaivgi/kling-v2.6-std/motion-control"
HISTORY_MODEL_FILTER = "kling-video"

_STATUS_MAP = {
    "created": JobStatus.PROCESSING,
    "pending": JobStatus.PROCESSING,
    "processing": JobStatus.PROCESSING,
    "completed": JobStatus.COMPLETED,
    "succeeded": JobStatus.COMPLETED,
    "failed": JobStatus.FAILED,
}


def _coerce_snapshot(data: Any) -> StatusSnapshot:
    body = data.get("data") if isinstance(data, dict) and isinstance(data.get("data"), dict) else data
    if not isinstance(body, dict):
        return StatusSnapshot(status=JobStatus.PROCESSING)
    raw_status = str(body.get("status") or "processing").lower()
    status = _STATUS_MAP.get(raw_status, JobStatus.PROCESSING)
    outputs = [str(url) for url in body.get("outputs") or [] if url]
    error = body.get("error") if isinstance(body.get("error"), str) and body.get("error") else None
    return StatusSnapshot(status=status, outputs=outputs, error=error)


class WaveSpeedClient:
    """Encapsulates HTTP calls to the WaveSpeed v3 API."""

    def __init__(
        self,
        credentials: CredentialProvider,
        *,
        base_url: Optional[str] = None,
        transport: Optional[ProviderTransport] = None,
    ) -> None:
        raw_base = (base_url or settings.wavespeed_base_url or "").strip()
        if not raw_base.startswith(("http://", "https://")):
            raise RuntimeError("WAVESPEED_BASE_URL must include http/https scheme")
        self._base_url = raw_base.rstrip("/")
        self._credentials = credentials
        self._transport = transport or ProviderTransport()
        self._submitter = JobSubmitter(credentials, transport=self._transport)

    def _url(self, path: str) -> str:
        return f"{self._base_url}/api/v3/{path.lstrip('/')}"

    async def submit_image_to_video(self, request: ImageToVideoRequest) -> SubmitResult:
        """Submit an image-to-video job and return the submitted ``Job``."""

        payload = {"duration": request.duration, "image": request.image, "prompt": request.prompt}
        return await self._submitter.submit(
            WAVESPEED,
            self._url(IMAGE_TO_VIDEO_MODEL),
            payload,
            auth=bearer_auth,
            model=IMAGE_TO_VIDEO_MODEL,
            prompt=request.prompt,
        )

    async def submit_motion_control(self, request: MotionControlRequest) -> SubmitResult:
        payload = {
            "character_orientation": request.character_orientation,
            "image": request.image,
            "keep_original_sound": request.keep_original_sound,
            "video": request.video,
        }
        return await self._submitter.submit(
            WAVESPEED,
            self._url(MOTION_CONTROL_MODEL),
            payload,
            auth=bearer_auth,
            model=MOTION_CONTROL_MODEL,
        )

    async def fetch_status(self, job_id: str) -> StatusSnapshot:
        """Poll WaveSpeed once for job completion details.

        HTTP 202 carries no body and means the prediction is still running.
        """

        token = require_credential(self._credentials, WAVESPEED)
        try:
            response = await self._transport.request(
                "GET", self._url(f"predictions/{job_id}/result"), headers=bearer_auth(token)
            )
        except httpx.RequestError as exc:
            raise PollError(f"Failed to fetch video result: {exc}") from exc

        if response.status_code == 202:
            return StatusSnapshot(status=JobStatus.PROCESSING)
        if not response.is_success:
            raise PollError(
                f"Failed to fetch video result: {response_error_message(response)}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise PollError("Failed to fetch video result: response was not JSON") from exc
        return _coerce_snapshot(data)

    async def list_predictions(self, *, page: int = 1, page_size: int = 100) -> list[dict[str, Any]]:
        """Remote generation history, restricted to Kling video models."""

        token = require_credential(self._credentials, WAVESPEED)
        try:
            response = await self._transport.request(
                "POST",
                self._url("predictions"),
                json={"page": page, "page_size": page_size},
                headers={"Content-Type": "application/json", **bearer_auth(token)},
            )
        except httpx.RequestError as exc:
            raise SubmissionError(f"Failed to fetch history: {exc}") from exc
        if not response.is_success:
            raise SubmissionError(
                f"Failed to fetch history: {response_error_message(response)}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise SubmissionError("Failed to fetch history: response was not JSON") from exc
        page_data = data.get("data") if isinstance(data, dict) else None
        items = page_data.get("items") if isinstance(page_data, dict) else None
        if not isinstance(items, list):
            return []
        return [
            item
            for item in items
            if isinstance(item, dict) and HISTORY_MODEL_FILTER in str(item.get("model") or "")
        ]

    async def fetch_balance(self) -> float:
        """Account credit left on WaveSpeed."""

        token = require_credential(self._credentials, WAVESPEED)
        try:
            response = await self._transport.request("GET", self._url("balance"), headers=bearer_auth(token))
        except httpx.RequestError as exc:
            raise SubmissionError(f"Failed to fetch balance: {exc}") from exc
        if not response.is_success:
            raise SubmissionError(response_error_message(response), status_code=response.status_code)
        try:
            data = response.json()
        except ValueError as exc:
            raise SubmissionError("Invalid balance data received from API.") from exc
        body = data.get("data") if isinstance(data, dict) and isinstance(data.get("data"), dict) else data
        balance = body.get("balance") if isinstance(body, dict) else None
        if isinstance(balance, bool) or not isinstance(balance, (int, float)):
            raise SubmissionError("Invalid balance data received from API.")
        return float(balance)
