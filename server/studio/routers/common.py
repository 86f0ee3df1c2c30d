"""Shared dependencies and error mapping for the HTTP routers."""
from __future__ import annotations

from fastapi import HTTPException, Request

from ..services.credentials import StoreCredentialProvider
from ..services.errors import (
    ConfigurationError,
    JobCancelledError,
    JobTimeoutError,
    PhaseError,
    StudioError,
)
from ..services.history import HistoryLog
from ..services.orchestration import GenerationOrchestrator
from ..services.reporter import error_message


def get_orchestrator(request: Request) -> GenerationOrchestrator:
    return request.app.state.orchestrator


def get_credentials(request: Request) -> StoreCredentialProvider:
    return request.app.state.credentials


def get_history(request: Request) -> HistoryLog:
    return request.app.state.history


def http_error(exc: StudioError) -> HTTPException:
    """Translate a core error into the HTTP status the UI expects."""

    if isinstance(exc, ConfigurationError):
        status = 400
    elif isinstance(exc, JobCancelledError):
        status = 409
    elif isinstance(exc, JobTimeoutError):
        status = 504
    elif isinstance(exc, PhaseError) and exc.__cause__ is None:
        # Precondition violations never reached the provider.
        status = 409
    else:
        status = 502
    return HTTPException(status_code=status, detail=error_message(exc))
