"""Job Submitter: one creation call per request, no retries."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

import httpx

from ..models.schemas import Job
from .credentials import CredentialProvider, require_credential
from .errors import SubmissionError
from .transport import ProviderTransport, response_error_message

logger = logging.getLogger(__name__)

ACCEPTED_WITHOUT_ID_MESSAGE = "Your video is now processing and placed in the Generation History Section"

AuthHeaders = Callable[[str], dict[str, str]]


def bearer_auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@dataclass
class AcceptedWithoutId:
    """The provider accepted the request but returned no job identifier.

    The work is most likely running in the background and will show up in the
    provider's history listing; there is nothing to poll.
    """

    provider: str
    payload: dict[str, Any] = field(default_factory=dict)
    model: Optional[str] = None
    prompt: Optional[str] = None
    message: str = ACCEPTED_WITHOUT_ID_MESSAGE


SubmitResult = Union[Job, AcceptedWithoutId]


def extract_job_id(data: Any) -> Optional[str]:
    """Find the job id in ``id``, ``requestId`` or a nested ``data.id``."""

    if not isinstance(data, dict):
        return None
    for key in ("id", "requestId", "request_id", "taskId"):
        value = data.get(key)
        if isinstance(value, (str, int)) and str(value).strip():
            return str(value).strip()
    nested = data.get("data")
    if isinstance(nested, dict):
        return extract_job_id(nested)
    return None


class JobSubmitter:
    """Issues the creation call for one provider job."""

    def __init__(
        self,
        credentials: CredentialProvider,
        *,
        transport: Optional[ProviderTransport] = None,
    ) -> None:
        self._credentials = credentials
        self._transport = transport or ProviderTransport()

    async def submit(
        self,
        provider: str,
        endpoint: str,
        payload: dict[str, Any],
        *,
        auth: AuthHeaders = bearer_auth,
        model: Optional[str] = None,
        prompt: Optional[str] = None,
    ) -> SubmitResult:
        token = require_credential(self._credentials, provider)
        headers = {"Content-Type": "application/json", **auth(token)}

        logger.info("Submitting %s job to %s", provider, endpoint)
        try:
            response = await self._transport.request("POST", endpoint, json=payload, headers=headers)
        except httpx.RequestError as exc:
            raise SubmissionError(f"Could not reach {provider}: {exc}") from exc

        if not response.is_success:
            message = response_error_message(response)
            logger.warning("%s rejected job (%s): %s", provider, response.status_code, message)
            raise SubmissionError(message, status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as exc:
            raise SubmissionError(f"{provider} returned a non-JSON response") from exc

        job_id = extract_job_id(data)
        if job_id is None:
            logger.info("%s accepted the request without a job id", provider)
            return AcceptedWithoutId(
                provider=provider,
                payload=data if isinstance(data, dict) else {},
                model=model,
                prompt=prompt,
            )

        logger.info("%s job %s submitted", provider, job_id)
        return Job(id=job_id, model=model, prompt=prompt)
