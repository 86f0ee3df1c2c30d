"""Thin httpx wrapper shared by the submitter, pollers and pipeline phases."""
from __future__ import annotations

import json
from typing import Any, Optional

import httpx

from ..config import settings


class ProviderTransport:
    """Sends requests through an injected client or a short-lived one per call."""

    def __init__(
        self,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._client = client
        self._timeout = timeout or settings.http_timeout_seconds

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        if self._client is not None:
            return await self._client.request(method, url, **kwargs)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.request(method, url, **kwargs)


def _first_text(*candidates: Any) -> Optional[str]:
    for value in candidates:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def message_from_body(body: Any) -> Optional[str]:
    """Pull a human-readable message out of a provider error body.

    Providers disagree on shape: WaveSpeed sends ``{"message": ...}``,
    ElevenLabs nests ``{"detail": {"message": ...}}`` or
    ``{"message": {"detail": ...}}``, kie.ai uses ``{"msg": ...}``
    and others use ``{"error": ...}``.
    """

    if not isinstance(body, dict):
        return _first_text(body)
    message = body.get("message")
    detail = body.get("detail")
    error = body.get("error")
    return _first_text(
        message,
        detail,
        message.get("detail") if isinstance(message, dict) else None,
        detail.get("message") if isinstance(detail, dict) else None,
        error,
        error.get("message") if isinstance(error, dict) else None,
        body.get("msg"),
    )


def response_error_message(response: httpx.Response) -> str:
    """Provider message from a failed response, else the HTTP status line."""

    try:
        body = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        body = None
    message = message_from_body(body) if body is not None else None
    if message:
        return message
    return f"{response.status_code} {response.reason_phrase}".strip()
