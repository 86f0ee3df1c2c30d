"""Multi-stage pipeline runner for dependent provider phases.

Phases run one at a time and only when explicitly requested; the artifact a
phase produces is the input the next phase is built from. A phase whose
provider call fails ends the run: there is no partial resume, the caller
starts a new run. Rejected caller input does not end the run.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError

from .errors import InvalidInputError, JobCancelledError, JobFailedError, PhaseError, StudioError
from .poller import CancellationToken, Sleep, poll_until

logger = logging.getLogger(__name__)

PhaseFn = Callable[[Mapping[str, Any], Any, CancellationToken], Awaitable[Any]]
# Normalizes caller input before the phase starts; raises InvalidInputError or ValueError.
ValidateFn = Callable[[Mapping[str, Any], Any], Any]


class RunState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    PHASE_DONE = "phase_done"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Phase:
    name: str
    execute: PhaseFn
    validate: Optional[ValidateFn] = None


@dataclass
class PipelineRun:
    """State of one run through an ordered list of phases."""

    phases: Tuple[str, ...]
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    current_phase: int = 0
    phase_artifacts: Dict[str, Any] = field(default_factory=dict)
    state: RunState = RunState.NOT_STARTED
    terminal: bool = False
    failed_phase: Optional[str] = None
    error: Optional[str] = None
    cancellation: CancellationToken = field(default_factory=CancellationToken, repr=False)

    @property
    def next_phase(self) -> Optional[str]:
        if self.terminal or self.current_phase >= len(self.phases):
            return None
        return self.phases[self.current_phase]

    def cancel(self) -> None:
        if self.terminal:
            return
        self.cancellation.cancel()
        self.state = RunState.CANCELLED
        self.terminal = True


def _input_message(exc: Exception) -> str:
    if isinstance(exc, StudioError):
        return exc.message
    if isinstance(exc, ValidationError):
        return "; ".join(error["msg"] for error in exc.errors()) or "Invalid input."
    return str(exc) or "Invalid input."


class PipelineRunner:
    """Executes the phases of a fixed pipeline, one call per phase."""

    def __init__(self, phases: Sequence[Phase]) -> None:
        if not phases:
            raise ValueError("a pipeline needs at least one phase")
        names = [phase.name for phase in phases]
        if len(set(names)) != len(names):
            raise ValueError("phase names must be unique")
        self._phases = list(phases)
        self._names = tuple(names)

    @property
    def phase_names(self) -> Tuple[str, ...]:
        return self._names

    def new_run(self) -> PipelineRun:
        return PipelineRun(phases=self._names)

    def _resolve_target(self, run: PipelineRun, phase: Optional[str]) -> int:
        if phase is None:
            return run.current_phase
        if phase not in self._names:
            raise PhaseError(f"Unknown phase '{phase}'.", phase=phase)
        index = self._names.index(phase)
        if index < run.current_phase:
            raise PhaseError(f"Phase '{phase}' has already completed.", phase=phase)
        return index

    async def run_phase(
        self,
        run: PipelineRun,
        phase_input: Any = None,
        *,
        phase: Optional[str] = None,
    ) -> PipelineRun:
        """Execute exactly one phase of ``run`` and return the updated run."""

        if run.phases != self._names:
            raise PhaseError("Run belongs to a different pipeline.", phase=phase or "")
        if run.terminal:
            name = phase or self._names[min(run.current_phase, len(self._names) - 1)]
            raise PhaseError(
                f"Pipeline run is {run.state.value}; start a new run.", phase=name
            )
        if run.state is RunState.RUNNING:
            name = phase or self._names[run.current_phase]
            raise PhaseError("A phase of this run is already in progress.", phase=name)

        index = self._resolve_target(run, phase)
        step = self._phases[index]
        # Artifacts are keyed by phase name; a gap means the caller skipped ahead.
        missing = [name for name in self._names[:index] if name not in run.phase_artifacts]
        if missing:
            raise PhaseError(
                f"Phase '{step.name}' requires '{missing[-1]}' to complete first.", phase=step.name
            )
        if step.validate is not None:
            try:
                phase_input = step.validate(dict(run.phase_artifacts), phase_input)
            except (InvalidInputError, ValueError) as exc:
                raise PhaseError(_input_message(exc), phase=step.name) from None

        previous_state = run.state
        run.state = RunState.RUNNING
        logger.info("Run %s: phase %d/%d '%s' running", run.id, index + 1, len(self._names), step.name)
        try:
            artifact = await step.execute(dict(run.phase_artifacts), phase_input, run.cancellation)
        except JobCancelledError:
            run.state = RunState.CANCELLED
            run.terminal = True
            logger.info("Run %s cancelled during '%s'", run.id, step.name)
            raise
        except InvalidInputError as exc:
            # Rejected input leaves the run where it was so the caller can retry the phase.
            if not run.terminal:
                run.state = previous_state
            self._raise_if_cancelled(run, exc)
            raise PhaseError(exc.message, phase=step.name) from None
        except StudioError as exc:
            self._raise_if_cancelled(run, exc)
            self._mark_failed(run, step.name, exc.message)
            raise PhaseError(exc.message, phase=step.name) from exc
        except Exception as exc:
            self._raise_if_cancelled(run, exc)
            self._mark_failed(run, step.name, str(exc) or type(exc).__name__)
            raise PhaseError(str(exc) or type(exc).__name__, phase=step.name) from exc

        if run.cancellation.cancelled:
            run.state = RunState.CANCELLED
            run.terminal = True
            raise JobCancelledError("Cancelled by the user.")

        run.phase_artifacts[step.name] = artifact
        run.current_phase = index + 1
        if run.current_phase >= len(self._names):
            run.state = RunState.COMPLETED
            run.terminal = True
            logger.info("Run %s completed all phases", run.id)
        else:
            run.state = RunState.PHASE_DONE
            logger.info("Run %s: phase '%s' done, next '%s'", run.id, step.name, run.next_phase)
        return run

    @staticmethod
    def _raise_if_cancelled(run: PipelineRun, exc: Exception) -> None:
        if run.cancellation.cancelled:
            run.state = RunState.CANCELLED
            run.terminal = True
            raise JobCancelledError("Cancelled by the user.") from exc

    @staticmethod
    def _mark_failed(run: PipelineRun, phase: str, message: str) -> None:
        run.state = RunState.FAILED
        run.terminal = True
        run.failed_phase = phase
        run.error = message
        logger.warning("Run %s failed in phase '%s': %s", run.id, phase, message)


async def poll_all(
    keys: Sequence[str],
    check: Callable[[str], Awaitable[str]],
    *,
    is_done: Callable[[str], bool],
    is_failed: Callable[[str], bool],
    interval: float,
    max_attempts: int,
    token: Optional[CancellationToken] = None,
    sleep: Sleep = asyncio.sleep,
    label: str = "sub-jobs",
) -> Dict[str, str]:
    """Fan-in over several sub-jobs: each attempt checks every pending key in turn.

    Returns the final status per key once all are terminal. A key already
    terminal is not checked again. Raises ``JobFailedError`` if any sub-job failed.
    """

    statuses: Dict[str, str] = {}

    async def _round() -> Dict[str, str]:
        for key in keys:
            if key in statuses and (is_done(statuses[key]) or is_failed(statuses[key])):
                continue
            statuses[key] = await check(key)
        return statuses

    def _all_terminal(current: Dict[str, str]) -> bool:
        return all(key in current and (is_done(current[key]) or is_failed(current[key])) for key in keys)

    result = await poll_until(
        _round,
        _all_terminal,
        interval=interval,
        max_attempts=max_attempts,
        token=token,
        sleep=sleep,
        label=label,
    )
    failed = [key for key in keys if is_failed(result[key])]
    if failed:
        raise JobFailedError(f"{label} failed for: {', '.join(failed)}")
    return dict(result)
