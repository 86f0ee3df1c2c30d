"""FastAPI application entrypoint for the studio job service."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .config import settings
from .routers import history, jobs, settings as settings_router, voice_clone
from .services.credentials import StoreCredentialProvider
from .services.history import HistoryLog
from .services.orchestration import GenerationOrchestrator
from .services.storage import KeyValueStore, build_store

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)


def create_app(
    *,
    store: Optional[KeyValueStore] = None,
    orchestrator: Optional[GenerationOrchestrator] = None,
) -> FastAPI:
    """Instantiate and configure the FastAPI application.

    ``store`` and ``orchestrator`` are injectable so tests can run against
    in-memory state and fake provider transports.
    """

    backing_store = store if store is not None else build_store()
    credentials = StoreCredentialProvider(backing_store)
    history_log = HistoryLog(backing_store)
    service = orchestrator or GenerationOrchestrator(credentials, history_log)

    @asynccontextmanager
    async def lifespan(application: FastAPI):
        logger.info("Studio job service starting")
        yield
        await service.shutdown()
        logger.info("Studio job service stopped")

    application = FastAPI(
        title="Studio Job Orchestrator",
        description="Submits and tracks long-running generative media jobs.",
        version="0.1.0",
        lifespan=lifespan,
    )
    application.state.store = backing_store
    application.state.credentials = credentials
    application.state.history = history_log
    application.state.orchestrator = service

    application.include_router(jobs.router)
    application.include_router(voice_clone.router)
    application.include_router(history.router)
    application.include_router(settings_router.router)

    @application.get("/")
    async def root() -> dict[str, str]:
        """Lightweight health endpoint for service discovery."""
        return {"service": "studio-jobs", "status": "ok"}

    return application


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
