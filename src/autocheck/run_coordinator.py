# autocheck/run_coordinator.py
"""
RunCoordinator - the state machine between Triggers and pipeline runs.

    IDLE        + Trigger(g)           → start run g            → RUNNING(g)
    RUNNING(g)  + Trigger(g2 > g)      → cancel run g           → CANCELLING(g → g2)
    CANCELLING  + Trigger(g3 > g2)     → replace pending g2     → CANCELLING(g → g3)
    CANCELLING  + run g terminal       → start run g2/g3        → RUNNING(g2/g3)
    RUNNING(g)  + run g terminal       →                        → IDLE

All transitions happen in synchronous methods executed on the owning event
loop (submit() and the run task's done callback), which makes the loop the
single mutual-exclusion point for coordinator state. Nothing else mutates it.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable, Sequence

from .command_config import CommandSpec
from .exceptions import CoordinatorShutdownError
from .pipeline_executor import PipelineExecutor
from .run_handle import RunHandle
from .run_result import RunResult
from .types import CoordinatorState, CoordinatorStatus, Trigger

logger = logging.getLogger(__name__)


class RunCoordinator:
    """
    Owns the notion of the "current run".

    At most one RunHandle holds a process at any time: a newer Trigger first
    cancels the current run, and the newest pending Trigger is started only
    once the cancelled run has released its process.
    """

    def __init__(
        self,
        pipeline: Sequence[CommandSpec],
        executor: PipelineExecutor,
        *,
        keep_history: int = 10,
        on_run_finished: Callable[[RunResult], None] | None = None,
    ) -> None:
        if not pipeline:
            raise ValueError("Pipeline must contain at least one command")
        self._pipeline: tuple[CommandSpec, ...] = tuple(pipeline)
        self._executor = executor
        self._on_run_finished = on_run_finished

        self._state = CoordinatorState.IDLE
        self._current: RunHandle | None = None
        self._pending: Trigger | None = None
        self._last_generation = 0
        self._last_started = 0
        self._last_result: RunResult | None = None
        self._history: deque[RunResult] = deque(maxlen=keep_history)
        self._idle = asyncio.Event()
        self._idle.set()
        self._shutdown = False

        logger.debug(f"RunCoordinator initialized with {len(self._pipeline)} commands")

    # ========================================================================
    # Transitions
    # ========================================================================

    def submit(self, trigger: Trigger) -> None:
        """
        Deliver a Trigger. Must be called on the coordinator's event loop.

        Raises:
            CoordinatorShutdownError: If shutdown() has been called
        """
        if self._shutdown:
            raise CoordinatorShutdownError(
                f"Cannot accept trigger {trigger.generation}: coordinator is shut down"
            )

        if trigger.generation <= self._last_generation:
            logger.warning(
                f"Ignoring stale trigger {trigger.generation} "
                f"(latest accepted is {self._last_generation})"
            )
            return
        self._last_generation = trigger.generation

        if trigger.paths:
            logger.info(f"Detected change: {[str(p) for p in trigger.paths]}")

        if self._state is CoordinatorState.IDLE:
            self._start(trigger)

        elif self._state is CoordinatorState.RUNNING:
            assert self._current is not None
            logger.debug(
                f"Trigger {trigger.generation} supersedes run {self._current.generation}, cancelling"
            )
            self._pending = trigger
            self._state = CoordinatorState.CANCELLING
            self._current.cancel(f"superseded by generation {trigger.generation}")

        else:
            # CANCELLING: only the newest pending generation is ever started
            previous = self._pending.generation if self._pending else None
            logger.debug(f"Coalescing pending trigger {previous} into {trigger.generation}")
            self._pending = trigger

    def _start(self, trigger: Trigger) -> None:
        if trigger.generation <= self._last_started:
            raise RuntimeError(
                f"Refusing to start generation {trigger.generation} "
                f"after generation {self._last_started}"
            )

        handle = RunHandle(trigger)
        task = asyncio.create_task(
            self._executor.run(handle, self._pipeline), name=f"autocheck_run_{trigger.generation}"
        )
        handle.attach_task(task)
        task.add_done_callback(lambda t, h=handle: self._run_completed(h, t))

        self._current = handle
        self._last_started = trigger.generation
        self._state = CoordinatorState.RUNNING
        self._idle.clear()
        logger.debug(f"Started run {trigger.generation}")

    def _run_completed(self, handle: RunHandle, task: asyncio.Task) -> None:
        if handle is not self._current:
            logger.debug(f"Ignoring completion of non-current run {handle.generation}")
            return

        if task.cancelled():
            if not handle.result.is_finalized:
                handle.result.mark_cancelled("Run task was cancelled")
        elif task.exception() is not None:
            exc = task.exception()
            logger.error(f"Run {handle.generation} crashed: {exc!r}")
            if not handle.result.is_finalized:
                handle.result.mark_failed(None, None, None, exc)

        result = handle.result
        self._last_result = result
        self._history.append(result)
        self._current = None

        logger.debug(f"Run {handle.generation} completed with state: {result.state.value}")

        if self._on_run_finished is not None:
            try:
                self._on_run_finished(result)
            except Exception as e:
                logger.exception(f"on_run_finished callback failed for run {handle.generation}: {e}")

        pending, self._pending = self._pending, None
        if pending is not None and not self._shutdown:
            self._start(pending)
        else:
            self._state = CoordinatorState.IDLE
            self._idle.set()

    # ========================================================================
    # Queries
    # ========================================================================

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def current(self) -> RunHandle | None:
        return self._current

    def status(self) -> CoordinatorStatus:
        return CoordinatorStatus(
            state=self._state,
            current_generation=self._current.generation if self._current else None,
            pending_generation=self._pending.generation if self._pending else None,
            last_result=self._last_result,
        )

    def get_history(self) -> list[RunResult]:
        """Finished runs, oldest first."""
        return list(self._history)

    @property
    def is_shut_down(self) -> bool:
        return self._shutdown

    async def wait_idle(self, timeout: float | None = None) -> bool:
        """
        Wait until no run is active and nothing is pending.
        Returns True if reached, False on timeout.
        """
        try:
            await asyncio.wait_for(self._idle.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def shutdown(self, timeout: float | None = None) -> None:
        """
        Stop accepting triggers, cancel the current run and wait for it to
        release its process. Safe to call more than once.
        """
        if not self._shutdown:
            logger.debug("Shutting down RunCoordinator")
        self._shutdown = True
        self._pending = None

        current = self._current
        if current is None:
            return
        current.cancel("shutting down")
        try:
            await current.wait(timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Run {current.generation} did not stop in {timeout}s, cancelling its task")
            if current.task is not None:
                current.task.cancel()
                await asyncio.wait({current.task})

    async def __aenter__(self) -> RunCoordinator:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    def __repr__(self) -> str:
        return (
            f"RunCoordinator(state={self._state.value}, "
            f"current={self._current.generation if self._current else None}, "
            f"pending={self._pending.generation if self._pending else None})"
        )
