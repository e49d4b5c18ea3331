"""RunHandle - one in-flight pipeline execution.

Owns the generation it was started for, the live process of the step
that is currently executing, and the cancellation flag. The
RunCoordinator creates handles and decides when to cancel them; the
PipelineExecutor attaches and releases processes and honours the flag.
"""

from __future__ import annotations

import asyncio
import logging

from .run_result import RunResult, RunState
from .types import Trigger

logger = logging.getLogger(__name__)


class RunHandle:
    """
    Public facade for interacting with one generation's run.

    RunHandle is responsible for:
    - Providing read-only access to run state via properties
    - Holding the idempotent cancellation flag
    - Tracking the live child process (at most one at a time)
    - Enabling async waiting for completion via wait()
    """

    def __init__(self, trigger: Trigger) -> None:
        self._trigger = trigger
        self._result = RunResult(generation=trigger.generation, changed_paths=trigger.paths)
        self._cancel_requested = asyncio.Event()
        self._cancel_reason: str | None = None
        self._process: asyncio.subprocess.Process | None = None
        self._task: asyncio.Task[RunResult] | None = None

    # ========================================================================
    # Cancellation
    # ========================================================================

    def cancel(self, reason: str | None = None) -> bool:
        """
        Request cancellation of this run.

        Idempotent: calling it on a finished run, or a second time, is a no-op.
        Once this returns, the executor forwards no further output for the run.

        Returns:
            True if this call requested cancellation, False if it was a no-op
        """
        if self.is_finalized or self._cancel_requested.is_set():
            logger.debug(f"Run {self.generation} already finished or cancelling, nothing to cancel")
            return False

        self._cancel_reason = reason
        self._cancel_requested.set()
        logger.info(f"Cancelling run {self.generation}" + (f": {reason}" if reason else ""))
        return True

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested.is_set()

    @property
    def cancel_reason(self) -> str | None:
        return self._cancel_reason

    async def wait_cancel_requested(self) -> None:
        """Suspend until cancel() has been called."""
        await self._cancel_requested.wait()

    # ========================================================================
    # Process ownership (used by the executor)
    # ========================================================================

    def attach_process(self, process: asyncio.subprocess.Process) -> None:
        if self.has_live_process:
            raise RuntimeError(f"Run {self.generation} already owns a live process")
        self._process = process

    def release_process(self) -> None:
        self._process = None

    @property
    def has_live_process(self) -> bool:
        """Whether this run currently holds an unterminated child process."""
        return self._process is not None and self._process.returncode is None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    # ========================================================================
    # Completion
    # ========================================================================

    def attach_task(self, task: asyncio.Task[RunResult]) -> None:
        self._task = task

    @property
    def task(self) -> asyncio.Task[RunResult] | None:
        return self._task

    async def wait(self, timeout: float | None = None) -> RunResult:
        """
        Wait for the run to reach a terminal state.

        Raises:
            asyncio.TimeoutError: If timeout expires before completion
            RuntimeError: If the run was never started
        """
        if self._task is None:
            raise RuntimeError(f"Run {self.generation} has not been started")
        done, _ = await asyncio.wait({self._task}, timeout=timeout)
        if not done:
            raise asyncio.TimeoutError(f"Run {self.generation} still running after {timeout}s")
        return self._result

    # ========================================================================
    # Properties - Read-Only Access to RunResult
    # ========================================================================

    @property
    def generation(self) -> int:
        return self._trigger.generation

    @property
    def trigger(self) -> Trigger:
        return self._trigger

    @property
    def result(self) -> RunResult:
        return self._result

    @property
    def state(self) -> RunState:
        return self._result.state

    @property
    def is_finalized(self) -> bool:
        """Whether the run has reached its Exit Outcome."""
        return self._result.is_finalized

    def __repr__(self) -> str:
        return (
            f"RunHandle(generation={self.generation}, state={self.state.name}, "
            f"cancel_requested={self.cancel_requested}, pid={self.pid})"
        )
