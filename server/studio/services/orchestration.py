"""High-level orchestration facade: submit, poll, run phases, cancel."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, TypeVar, Union

from ..config import settings
from ..models.schemas import ImageToVideoRequest, Job, MotionControlRequest, VeoRequest
from .credentials import CredentialProvider
from .errors import JobCancelledError, StudioError
from .history import HistoryLog
from .kie import VEO_FAILURE_MESSAGE, KieClient
from .pipeline import PipelineRun, PipelineRunner
from .poller import CancellationToken, JobPoller, Sleep
from .reporter import Outcome, ResultReporter
from .submitter import AcceptedWithoutId, SubmitResult
from .transport import ProviderTransport
from .voice_clone import VoiceCloneService, build_voice_clone_runner
from .wavespeed import WaveSpeedClient

logger = logging.getLogger(__name__)

GenerationRequest = Union[ImageToVideoRequest, MotionControlRequest, VeoRequest]
ProgressCallback = Callable[[str], None]

V = TypeVar("V")


@dataclass
class JobHandle:
    """What the HTTP layer knows about one job it is driving in the background."""

    job: Job
    progress: Optional[str] = None
    outcome: Optional[Outcome] = None
    task: Optional["asyncio.Task[None]"] = None

    @property
    def live(self) -> bool:
        return self.task is not None and not self.task.done()

    @property
    def finished(self) -> bool:
        return self.job.is_terminal or (self.task is not None and self.task.done())


def _evict_finished(entries: Dict[str, V], finished: Callable[[V], bool], limit: int) -> None:
    """Drop the oldest finished entries until at most ``limit`` remain. Live entries stay."""

    excess = len(entries) - limit
    if excess <= 0:
        return
    for key in [key for key, value in entries.items() if finished(value)][:excess]:
        del entries[key]


class GenerationOrchestrator:
    """Facade that routes requests to the right provider and drives jobs to completion."""

    def __init__(
        self,
        credentials: CredentialProvider,
        history: HistoryLog,
        *,
        transport: Optional[ProviderTransport] = None,
        wavespeed: Optional[WaveSpeedClient] = None,
        kie: Optional[KieClient] = None,
        voice_clone: Optional[VoiceCloneService] = None,
        poll_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
        tracked_limit: Optional[int] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        transport = transport or ProviderTransport()
        self._wavespeed = wavespeed or WaveSpeedClient(credentials, transport=transport)
        self._kie = kie or KieClient(credentials, transport=transport)
        self._voice_clone_runner: PipelineRunner = build_voice_clone_runner(
            voice_clone or VoiceCloneService(credentials, transport=transport, sleep=sleep)
        )
        self._poller = JobPoller(
            self._wavespeed.fetch_status,
            interval=settings.poll_interval_seconds if poll_interval is None else poll_interval,
            max_attempts=max_attempts or settings.poll_max_attempts,
            sleep=sleep,
        )
        self._reporter = ResultReporter(history)
        self._tracked_limit = tracked_limit or settings.tracked_limit
        # Tokens exist only while a job is being polled (or is about to be).
        self._tokens: Dict[str, CancellationToken] = {}
        self._handles: Dict[str, JobHandle] = {}
        self._runs: Dict[str, PipelineRun] = {}

    @property
    def reporter(self) -> ResultReporter:
        return self._reporter

    @property
    def wavespeed(self) -> WaveSpeedClient:
        return self._wavespeed

    @property
    def polling(self) -> frozenset:
        """Ids of jobs with a poll loop in progress or scheduled."""

        return frozenset(self._tokens)

    def _token(self, job_id: str) -> CancellationToken:
        return self._tokens.setdefault(job_id, CancellationToken())

    def _release(self, job_id: str, token: CancellationToken) -> None:
        if self._tokens.get(job_id) is token:
            del self._tokens[job_id]

    async def submit(self, inputs: GenerationRequest) -> SubmitResult:
        """Issue the creation call for ``inputs``; returns a submitted ``Job``."""

        if isinstance(inputs, ImageToVideoRequest):
            return await self._wavespeed.submit_image_to_video(inputs)
        if isinstance(inputs, MotionControlRequest):
            return await self._wavespeed.submit_motion_control(inputs)
        if isinstance(inputs, VeoRequest):
            return await self._kie.submit_veo(inputs)
        raise TypeError(f"Unsupported request type: {type(inputs).__name__}")

    async def poll(
        self,
        job: Job,
        *,
        on_progress: Optional[ProgressCallback] = None,
        on_update: Optional[Callable[[Job], None]] = None,
    ) -> Job:
        token = self._token(job.id)
        try:
            return await self._poller.poll(job, token=token, on_progress=on_progress, on_update=on_update)
        finally:
            self._release(job.id, token)

    async def finish(
        self,
        job: Job,
        *,
        on_progress: Optional[ProgressCallback] = None,
        on_update: Optional[Callable[[Job], None]] = None,
    ) -> Outcome:
        """Poll ``job`` to a terminal state and report it.

        Typed failures become a failed ``Outcome``. Cancellation propagates as
        ``JobCancelledError`` and leaves history and callbacks untouched.
        """

        token = self._token(job.id)
        try:
            finished = await self.poll(job, on_progress=on_progress, on_update=on_update)
        except JobCancelledError:
            raise
        except StudioError as exc:
            token.raise_if_cancelled()
            failed_job = getattr(exc, "job", None)
            if failed_job is not None and on_update is not None:
                on_update(failed_job)
            return self._reporter.failed(exc)

        token.raise_if_cancelled()
        if on_update is not None:
            on_update(finished)
        return self._reporter.job_succeeded(finished)

    async def generate(self, inputs: GenerationRequest, *, on_progress: Optional[ProgressCallback] = None) -> Outcome:
        """Submit, poll and report in one call."""

        default = VEO_FAILURE_MESSAGE if isinstance(inputs, VeoRequest) else None
        try:
            result = await self.submit(inputs)
        except StudioError as exc:
            return self._reporter.failed(exc) if default is None else self._reporter.failed(exc, default=default)
        if isinstance(result, AcceptedWithoutId):
            return self._reporter.accepted(result)
        if isinstance(inputs, VeoRequest):
            return self._reporter.submitted(result)
        return await self.finish(result, on_progress=on_progress)

    def cancel(self, target: Union[Job, PipelineRun]) -> None:
        """Stop polling a job or a pipeline run. Terminal or unknown targets are left alone."""

        if isinstance(target, PipelineRun):
            if not target.terminal:
                logger.info("Cancelling pipeline run %s", target.id)
            target.cancel()
            return
        if target.is_terminal:
            return
        handle = self._handles.get(target.id)
        if handle is not None and handle.job.is_terminal:
            return
        token = self._tokens.get(target.id)
        if token is None:
            return
        logger.info("Cancelling job %s", target.id)
        token.cancel()

    # Background jobs driven on behalf of the HTTP layer.

    def handle(self, job_id: str) -> Optional[JobHandle]:
        return self._handles.get(job_id)

    def launch(self, job: Job) -> JobHandle:
        """Start polling ``job`` in a background task unless a loop is already live."""

        handle = self._handles.get(job.id)
        if handle is None:
            handle = self._handles[job.id] = JobHandle(job=job)
            _evict_finished(self._handles, lambda entry: entry.finished, self._tracked_limit)
        if handle.live or handle.job.is_terminal:
            return handle
        # Registered before the task starts so an immediate cancel is not lost.
        self._token(job.id)
        handle.task = asyncio.create_task(self._drive(handle))
        return handle

    async def _drive(self, handle: JobHandle) -> None:
        def _progress(text: str) -> None:
            handle.progress = text

        def _update(job: Job) -> None:
            handle.job = job

        try:
            handle.outcome = await self.finish(handle.job, on_progress=_progress, on_update=_update)
        except JobCancelledError:
            logger.info("Job %s cancelled; leaving it unreported", handle.job.id)
        except Exception:
            logger.exception("Unexpected failure while driving job %s", handle.job.id)
            handle.outcome = self._reporter.failed(None)
        else:
            handle.progress = None

    def discard(self, job_id: str) -> None:
        """Forget a job (UI reset). A live loop is cancelled first."""

        self._handles.pop(job_id, None)
        token = self._tokens.get(job_id)
        if token is not None:
            token.cancel()

    async def shutdown(self) -> None:
        tasks = [handle.task for handle in self._handles.values() if handle.live]
        for token in self._tokens.values():
            token.cancel()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # Voice clone pipeline.

    @property
    def voice_clone_phases(self) -> tuple:
        return self._voice_clone_runner.phase_names

    def run(self, run_id: str) -> Optional[PipelineRun]:
        return self._runs.get(run_id)

    def new_voice_clone_run(self) -> PipelineRun:
        run = self._voice_clone_runner.new_run()
        self._runs[run.id] = run
        _evict_finished(self._runs, lambda entry: entry.terminal, self._tracked_limit)
        return run

    async def run_phase(self, run: PipelineRun, phase_input: Any = None, *, phase: Optional[str] = None) -> PipelineRun:
        return await self._voice_clone_runner.run_phase(run, phase_input, phase=phase)

    def run_outcome(self, run: PipelineRun) -> Optional[Outcome]:
        """Reporter outcome for a terminal run; ``None`` while it can still advance."""

        return self._reporter.run_finished(run) if run.terminal else None

    def discard_run(self, run_id: str) -> None:
        run = self._runs.pop(run_id, None)
        if run is not None:
            run.cancel()
