"""Bounded, sequential polling of provider job status.

``poll_until`` is the reusable wait-then-check loop. Provider integrations
supply only the status check and the terminal predicate; ``JobPoller`` is the
job-level wrapper that turns a provider status snapshot into ``Job``
transitions and typed errors.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, TypeVar

from ..models.schemas import Job, JobStatus
from .errors import JobCancelledError, JobFailedError, JobTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]
AttemptCallback = Callable[[int, int], None]

UNKNOWN_PROVIDER_ERROR = "Unknown error from API."


class CancellationToken:
    """Cooperative cancel flag checked by the poll loop between steps."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise JobCancelledError("Cancelled by the user.")


async def poll_until(
    check: Callable[[], Awaitable[T]],
    is_terminal: Callable[[T], bool],
    *,
    interval: float,
    max_attempts: int,
    token: Optional[CancellationToken] = None,
    sleep: Sleep = asyncio.sleep,
    on_attempt: Optional[AttemptCallback] = None,
    label: str = "job",
) -> T:
    """Wait ``interval`` then call ``check`` until ``is_terminal`` holds.

    Makes at most ``max_attempts`` calls to ``check`` and never overlaps
    them. Errors raised by ``check`` propagate unchanged.
    """

    token = token or CancellationToken()
    for attempt in range(1, max_attempts + 1):
        token.raise_if_cancelled()
        if on_attempt is not None:
            on_attempt(attempt, max_attempts)
        await sleep(interval)
        token.raise_if_cancelled()

        result = await check()
        if is_terminal(result):
            logger.info("%s reached a terminal state on attempt %d", label, attempt)
            return result
        logger.debug("%s still running (attempt %d of %d)", label, attempt, max_attempts)

    raise JobTimeoutError(
        f"Stopped waiting for {label} after {max_attempts} attempts. "
        "It may still finish; check the history later.",
        attempts=max_attempts,
    )


@dataclass
class StatusSnapshot:
    """Provider-neutral view of one status response."""

    status: JobStatus
    outputs: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        if self.status is JobStatus.FAILED:
            return True
        # Some providers flip to "completed" a beat before the URLs are attached.
        return self.status is JobStatus.COMPLETED and bool(self.outputs)


StatusCheck = Callable[[str], Awaitable[StatusSnapshot]]


class JobPoller:
    """Drives a submitted ``Job`` to ``completed`` or raises."""

    def __init__(
        self,
        fetch_status: StatusCheck,
        *,
        interval: float,
        max_attempts: int,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._fetch_status = fetch_status
        self._interval = interval
        self._max_attempts = max_attempts
        self._sleep = sleep

    async def poll(
        self,
        job: Job,
        *,
        token: Optional[CancellationToken] = None,
        on_progress: Optional[Callable[[str], None]] = None,
        on_update: Optional[Callable[[Job], None]] = None,
    ) -> Job:
        if job.is_terminal:
            return job
        token = token or CancellationToken()
        current = job

        async def _check() -> StatusSnapshot:
            nonlocal current
            snapshot = await self._fetch_status(job.id)
            # A cancel that lands while the request is in flight discards its answer.
            token.raise_if_cancelled()
            if not snapshot.is_terminal and current.status is JobStatus.SUBMITTED:
                current = current.mark_processing()
                if on_update is not None:
                    on_update(current)
            return snapshot

        def _report(attempt: int, total: int) -> None:
            if on_progress is not None:
                on_progress(f"Generating video... Please wait. (Attempt {attempt} of {total})")

        try:
            snapshot = await poll_until(
                _check,
                lambda snap: snap.is_terminal,
                interval=self._interval,
                max_attempts=self._max_attempts,
                token=token,
                sleep=self._sleep,
                on_attempt=_report,
                label=f"job {job.id}",
            )
        except JobTimeoutError as exc:
            exc.job_id = job.id
            raise

        if snapshot.status is JobStatus.FAILED:
            detail = snapshot.error or UNKNOWN_PROVIDER_ERROR
            logger.warning("Job %s failed: %s", job.id, detail)
            raise JobFailedError(detail, job=current.fail(detail))
        return current.complete(snapshot.outputs)
