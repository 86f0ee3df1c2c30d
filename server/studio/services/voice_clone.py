"""ElevenLabs professional voice clone (PVC) phases.

Order: create voice, upload samples, separate speakers, retrieve speakers,
update samples, request captcha, verify captcha, train. Each phase is one
``Phase`` for ``PipelineRunner``; starting training is irreversible on the
provider side, so nothing here chains phases automatically.
"""
from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from typing import Any, List, Mapping, Optional, Tuple

import httpx

from ..config import settings
from ..models.schemas import SampleFile, VoiceCloneRequest
from .credentials import ELEVENLABS, CredentialProvider, require_credential
from .errors import InvalidInputError, JobFailedError, PollError, SubmissionError
from .pipeline import Phase, PipelineRunner, poll_all
from .poller import CancellationToken, Sleep, poll_until
from .transport import ProviderTransport, response_error_message

logger = logging.getLogger(__name__)

TRAINING_MODEL_ID = "eleven_multilingual_v2"

CREATE_VOICE = "create_voice"
UPLOAD_SAMPLES = "upload_samples"
SEPARATE_SPEAKERS = "separate_speakers"
RETRIEVE_SPEAKERS = "retrieve_speakers"
UPDATE_SAMPLES = "update_samples"
REQUEST_CAPTCHA = "request_captcha"
VERIFY_CAPTCHA = "verify_captcha"
TRAIN = "train"

FilePart = Tuple[str, bytes, str]


def decode_file_content(content: str) -> bytes:
    """Decode base64 text, tolerating a ``data:...;base64,`` prefix."""

    if content.startswith("data:") and "," in content:
        content = content.split(",", 1)[1]
    try:
        return base64.b64decode(content, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidInputError("File content is not valid base64.") from exc


def xi_api_key_auth(token: str) -> dict[str, str]:
    return {"xi-api-key": token}


def _as_sample(value: Any) -> SampleFile:
    return value if isinstance(value, SampleFile) else SampleFile.model_validate(value)


def _file_part(sample: SampleFile) -> FilePart:
    return (sample.filename, decode_file_content(sample.content), sample.mime_type)


# Input validators run before a phase starts; a rejection leaves the run retryable.


def validate_voice_request(artifacts: Mapping[str, Any], value: Any) -> VoiceCloneRequest:
    if isinstance(value, VoiceCloneRequest):
        return value
    return VoiceCloneRequest.model_validate(value or {})


def validate_samples(artifacts: Mapping[str, Any], value: Any) -> List[Tuple[str, FilePart]]:
    if value is not None and not isinstance(value, (list, tuple)):
        raise InvalidInputError("Samples must be a list of audio files.")
    samples = [_as_sample(item) for item in value or []]
    if not samples:
        raise InvalidInputError("Please upload at least one audio file.")
    return [("files", _file_part(sample)) for sample in samples]


def validate_speaker_selection(artifacts: Mapping[str, Any], value: Any) -> List[str]:
    if not value:
        return []
    if not isinstance(value, (list, tuple)) or not all(isinstance(item, (str, int)) for item in value):
        raise InvalidInputError("Speaker selection must be a list of speaker ids.")
    return [str(item) for item in value]


def validate_recording(artifacts: Mapping[str, Any], value: Any) -> dict[str, FilePart]:
    if not value:
        raise InvalidInputError("Please record the CAPTCHA text first.")
    return {"recording": _file_part(_as_sample(value))}


def validate_model_id(artifacts: Mapping[str, Any], value: Any) -> str:
    if value is None or value == "":
        return TRAINING_MODEL_ID
    if not isinstance(value, str):
        raise InvalidInputError("Training model id must be a string.")
    return value


def _sample_ids(data: Any) -> List[str]:
    samples = data.get("samples") if isinstance(data, dict) else data
    if not isinstance(samples, list):
        return []
    return [str(item["sample_id"]) for item in samples if isinstance(item, dict) and item.get("sample_id")]


def _speaker_ids(data: Any) -> List[str]:
    speakers = data.get("speakers") if isinstance(data, dict) else None
    if isinstance(speakers, dict):
        speakers = list(speakers.values())
    if not isinstance(speakers, list):
        return []
    return [str(item["speaker_id"]) for item in speakers if isinstance(item, dict) and item.get("speaker_id")]


class VoiceCloneService:
    """HTTP calls behind each PVC phase."""

    def __init__(
        self,
        credentials: CredentialProvider,
        *,
        base_url: Optional[str] = None,
        transport: Optional[ProviderTransport] = None,
        poll_interval: Optional[float] = None,
        poll_max_attempts: Optional[int] = None,
        training_poll_interval: Optional[float] = None,
        training_poll_max_attempts: Optional[int] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        raw_base = (base_url or settings.elevenlabs_base_url or "").strip()
        if not raw_base.startswith(("http://", "https://")):
            raise RuntimeError("ELEVENLABS_BASE_URL must include http/https scheme")
        self._base_url = raw_base.rstrip("/")
        self._credentials = credentials
        self._transport = transport or ProviderTransport()
        self._poll_interval = settings.poll_interval_seconds if poll_interval is None else poll_interval
        self._poll_max_attempts = poll_max_attempts or settings.poll_max_attempts
        self._training_interval = (
            settings.training_poll_interval_seconds if training_poll_interval is None else training_poll_interval
        )
        self._training_max_attempts = training_poll_max_attempts or settings.training_poll_max_attempts
        self._sleep = sleep

    def _pvc(self, voice_id: str, path: str = "") -> str:
        return f"{self._base_url}/v1/voices/pvc/{voice_id}{path}"

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        token = require_credential(self._credentials, ELEVENLABS)
        headers = {**kwargs.pop("headers", {}), **xi_api_key_auth(token)}
        try:
            response = await self._transport.request(method, url, headers=headers, **kwargs)
        except httpx.RequestError as exc:
            raise SubmissionError(f"Could not reach ElevenLabs: {exc}") from exc
        if not response.is_success:
            raise SubmissionError(response_error_message(response), status_code=response.status_code)
        return response

    async def _status(self, url: str) -> dict[str, Any]:
        token = require_credential(self._credentials, ELEVENLABS)
        try:
            response = await self._transport.request("GET", url, headers=xi_api_key_auth(token))
        except httpx.RequestError as exc:
            raise PollError(f"Status check failed: {exc}") from exc
        if not response.is_success:
            raise PollError(
                f"Status check failed: {response_error_message(response)}",
                status_code=response.status_code,
            )
        data = response.json()
        return data if isinstance(data, dict) else {}

    async def create_voice(self, artifacts: Mapping[str, Any], phase_input: Any, token: CancellationToken) -> dict:
        request: VoiceCloneRequest = phase_input
        body: dict[str, Any] = {"name": request.name, "language": request.language}
        if request.description and request.description.strip():
            body["description"] = request.description.strip()
        token.raise_if_cancelled()
        response = await self._send("POST", f"{self._base_url}/v1/voices/pvc", json=body)
        voice = response.json()
        if not isinstance(voice, dict) or not voice.get("voice_id"):
            raise SubmissionError("ElevenLabs did not return a voice id.")
        logger.info("Created PVC voice %s", voice["voice_id"])
        return voice

    async def upload_samples(self, artifacts: Mapping[str, Any], phase_input: Any, token: CancellationToken) -> List[str]:
        voice_id = artifacts[CREATE_VOICE]["voice_id"]
        token.raise_if_cancelled()
        response = await self._send("POST", self._pvc(voice_id, "/samples"), files=phase_input)
        sample_ids = _sample_ids(response.json())
        if not sample_ids:
            raise SubmissionError("ElevenLabs did not return any sample ids.")
        logger.info("Uploaded %d samples to voice %s", len(sample_ids), voice_id)
        return sample_ids

    async def separate_speakers(self, artifacts: Mapping[str, Any], phase_input: Any, token: CancellationToken) -> dict:
        voice_id = artifacts[CREATE_VOICE]["voice_id"]
        sample_ids: List[str] = artifacts[UPLOAD_SAMPLES]

        for sample_id in sample_ids:
            token.raise_if_cancelled()
            await self._send("POST", self._pvc(voice_id, f"/samples/{sample_id}/speakers/separate"))

        async def _check(sample_id: str) -> str:
            data = await self._status(self._pvc(voice_id, f"/samples/{sample_id}/speakers"))
            return str(data.get("status") or "processing")

        return await poll_all(
            sample_ids,
            _check,
            is_done=lambda status: status == "completed",
            is_failed=lambda status: status == "failed",
            interval=self._poll_interval,
            max_attempts=self._poll_max_attempts,
            token=token,
            sleep=self._sleep,
            label="Speaker separation",
        )

    async def retrieve_speakers(self, artifacts: Mapping[str, Any], phase_input: Any, token: CancellationToken) -> List[str]:
        """Pick speakers: the ids given as input, else the first speaker of each sample."""

        voice_id = artifacts[CREATE_VOICE]["voice_id"]
        found: List[List[str]] = []
        for sample_id in artifacts[UPLOAD_SAMPLES]:
            token.raise_if_cancelled()
            response = await self._send("GET", self._pvc(voice_id, f"/samples/{sample_id}/speakers"))
            data = response.json()
            if isinstance(data, dict) and data.get("status") == "completed":
                found.append(_speaker_ids(data))

        available = {speaker for speakers in found for speaker in speakers}
        if phase_input:
            unknown = [speaker for speaker in phase_input if speaker not in available]
            if unknown:
                raise InvalidInputError(f"Unknown speaker ids: {', '.join(unknown)}")
            selected = list(phase_input)
        else:
            selected = [speakers[0] for speakers in found if speakers]
        if not selected:
            raise SubmissionError("No speakers were found in the uploaded samples.")
        return selected

    async def update_samples(self, artifacts: Mapping[str, Any], phase_input: Any, token: CancellationToken) -> List[str]:
        voice_id = artifacts[CREATE_VOICE]["voice_id"]
        selected: List[str] = artifacts[RETRIEVE_SPEAKERS]
        updated: List[str] = []
        for sample_id in artifacts[UPLOAD_SAMPLES]:
            token.raise_if_cancelled()
            await self._send(
                "PATCH",
                self._pvc(voice_id, f"/samples/{sample_id}"),
                json={"selected_speaker_ids": selected},
            )
            updated.append(sample_id)
        return updated

    async def request_captcha(self, artifacts: Mapping[str, Any], phase_input: Any, token: CancellationToken) -> str:
        voice_id = artifacts[CREATE_VOICE]["voice_id"]
        token.raise_if_cancelled()
        response = await self._send("GET", self._pvc(voice_id, "/verification/captcha"))
        return base64.b64encode(response.content).decode("ascii")

    async def verify_captcha(self, artifacts: Mapping[str, Any], phase_input: Any, token: CancellationToken) -> bool:
        voice_id = artifacts[CREATE_VOICE]["voice_id"]
        token.raise_if_cancelled()
        await self._send("POST", self._pvc(voice_id, "/verification/captcha/verify"), files=phase_input)
        return True

    async def train(self, artifacts: Mapping[str, Any], phase_input: Any, token: CancellationToken) -> dict:
        voice_id = artifacts[CREATE_VOICE]["voice_id"]
        model_id: str = phase_input
        token.raise_if_cancelled()
        await self._send("POST", self._pvc(voice_id, "/train"), json={"model_id": model_id})
        logger.info("Training started for voice %s (%s)", voice_id, model_id)

        async def _state() -> Optional[str]:
            data = await self._status(f"{self._base_url}/v1/voices/{voice_id}")
            states = (data.get("fine_tuning") or {}).get("state") or {}
            return states.get(model_id) if isinstance(states, dict) else None

        state = await poll_until(
            _state,
            lambda value: value in ("fine_tuned", "failed"),
            interval=self._training_interval,
            max_attempts=self._training_max_attempts,
            token=token,
            sleep=self._sleep,
            label=f"training of voice {voice_id}",
        )
        if state == "failed":
            raise JobFailedError("Voice training failed.")
        return {"voice_id": voice_id, "model_id": model_id, "state": state}

    def phases(self) -> List[Phase]:
        return [
            Phase(CREATE_VOICE, self.create_voice, validate_voice_request),
            Phase(UPLOAD_SAMPLES, self.upload_samples, validate_samples),
            Phase(SEPARATE_SPEAKERS, self.separate_speakers),
            Phase(RETRIEVE_SPEAKERS, self.retrieve_speakers, validate_speaker_selection),
            Phase(UPDATE_SAMPLES, self.update_samples),
            Phase(REQUEST_CAPTCHA, self.request_captcha),
            Phase(VERIFY_CAPTCHA, self.verify_captcha, validate_recording),
            Phase(TRAIN, self.train, validate_model_id),
        ]


def build_voice_clone_runner(service: VoiceCloneService) -> PipelineRunner:
    return PipelineRunner(service.phases())
