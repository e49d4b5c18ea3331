# autocheck/pipeline_executor.py
"""
PipelineExecutor - runs one generation's commands using asyncio subprocesses.

Executes the pipeline strictly in order with:
- Live streaming of stdout/stderr to the OutputSink
- Stop on first non-zero exit (later steps are never started)
- Cooperative cancellation between and during steps
- Graceful termination of the step's process group (SIGTERM → SIGKILL)
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from pathlib import Path

from .command_config import CommandSpec
from .exceptions import SpawnError
from .output_sink import OutputSink
from .run_handle import RunHandle
from .run_result import RunResult
from .types import OutputChunk, Stream

logger = logging.getLogger(__name__)


class PipelineExecutor:
    """
    Executes pipeline definitions for RunHandles.

    Features:
    - Non-blocking execution, one child process at a time per handle
    - Output forwarded chunk by chunk, never after cancel() was requested
    - Graceful cancellation (SIGTERM, then SIGKILL after grace period)
    - Every spawned process is reaped before run() returns, and processes
      left behind in its group are stopped before the next step starts
    """

    def __init__(
        self,
        sink: OutputSink,
        *,
        cancel_grace_period: float = 3.0,
        default_cwd: str | Path | None = None,
        read_size: int = 64 * 1024,
        drain_timeout: float = 1.0,
    ) -> None:
        """
        Initialize the executor.

        Args:
            sink: Receiver for output chunks and outcomes
            cancel_grace_period: Seconds to wait for SIGTERM before SIGKILL
            default_cwd: Working directory for steps that don't set one
            read_size: Maximum bytes forwarded per chunk
            drain_timeout: Seconds to keep reading a step's output after it
                exited, for pipes inherited by its background children
        """
        self._sink = sink
        self._cancel_grace_period = cancel_grace_period
        self._default_cwd = default_cwd
        self._read_size = read_size
        self._drain_timeout = drain_timeout

        logger.debug(
            f"Initialized PipelineExecutor (cancel_grace_period={cancel_grace_period}s, "
            f"default_cwd={default_cwd})"
        )

    async def run(self, handle: RunHandle, pipeline: Sequence[CommandSpec]) -> RunResult:
        """
        Execute `pipeline` for `handle` and return its finalized RunResult.

        Pipeline-step problems never raise: they end up in the result as
        FAILED, SPAWN_ERROR or CANCELLED. Only cancellation of the task
        itself propagates (after the result has been finalized).
        """
        result = handle.result
        result.mark_running()
        index: int | None = None
        spec: CommandSpec | None = None

        try:
            for index, spec in enumerate(pipeline):
                if handle.cancel_requested:
                    break

                result.commands_started += 1
                self._sink.command_started(handle.generation, index, spec)
                logger.info(f"Run {handle.generation}: running command {spec.argv}")

                try:
                    exit_code = await self._run_step(handle, spec)
                except SpawnError as e:
                    logger.error(f"Failed to execute {spec.argv}: {e}")
                    result.mark_spawn_error(index, spec.label, e)
                    break

                if exit_code is None:
                    break
                if exit_code != 0:
                    logger.error(f"Failed to execute {spec.argv}: Returned status {exit_code}")
                    result.mark_failed(index, spec.label, exit_code)
                    break

                logger.debug(f"Successfully executed {spec.argv}")
                result.history.append(spec.label)

            if not result.is_finalized:
                if handle.cancel_requested:
                    result.mark_cancelled(handle.cancel_reason)
                else:
                    result.mark_success()

        except asyncio.CancelledError:
            # Task was cancelled (shutdown); _spawn() already reaped the process
            logger.debug(f"Run task for generation {handle.generation} was cancelled")
            if not result.is_finalized:
                result.mark_cancelled(handle.cancel_reason or "Run task was cancelled")
            self._report(result)
            raise

        except Exception as e:
            # Unexpected error during execution (e.g. the sink raised)
            logger.exception(f"Unexpected error in run {handle.generation}: {e}")
            result.mark_failed(index, spec.label if spec else None, None, e)

        self._report(result)
        return result

    # ------------------------------------------------------------------ #
    # Single step
    # ------------------------------------------------------------------ #
    async def _run_step(self, handle: RunHandle, spec: CommandSpec) -> int | None:
        """
        Run one command to completion.

        The step ends when the command exits. Its pipes are then drained for
        at most `drain_timeout`, since a background child may still hold them.

        Returns:
            The exit code, or None when cancellation was requested first
        """
        async with self._spawn(handle, spec) as process:
            readers = [
                asyncio.create_task(self._forward(handle, spec, process.stdout, Stream.STDOUT)),
                asyncio.create_task(self._forward(handle, spec, process.stderr, Stream.STDERR)),
            ]
            exited = asyncio.create_task(_wait_exited(process))
            cancelled = asyncio.create_task(handle.wait_cancel_requested())

            try:
                pending = {exited, cancelled, *readers}
                while exited in pending and cancelled in pending:
                    _, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                    _check_readers(handle, readers)

                loop = asyncio.get_running_loop()
                deadline = loop.time() + self._drain_timeout
                while cancelled in pending and any(r in pending for r in readers):
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        logger.debug(
                            f"Run {handle.generation}: step '{spec.label}' exited "
                            f"but its output is still open, not waiting for it"
                        )
                        break
                    _, pending = await asyncio.wait(
                        pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                    )
                    _check_readers(handle, readers)
            finally:
                for task in (cancelled, exited, *readers):
                    if not task.done():
                        task.cancel()
                for reader in readers:
                    if reader.done() and not reader.cancelled():
                        reader.exception()  # mark retrieved

            if handle.cancel_requested:
                logger.debug(f"Run {handle.generation}: step '{spec.label}' interrupted")
                return None

            return exited.result()

    async def _forward(
        self,
        handle: RunHandle,
        spec: CommandSpec,
        reader: asyncio.StreamReader | None,
        stream: Stream,
    ) -> None:
        if reader is None:
            return
        while True:
            data = await reader.read(self._read_size)
            if not data:
                return
            # Keep draining so the child never blocks on a full pipe, but forward nothing
            if handle.cancel_requested:
                continue
            self._sink.write(OutputChunk(handle.generation, spec.label, stream, data))

    # ------------------------------------------------------------------ #
    # Process lifetime
    # ------------------------------------------------------------------ #
    @asynccontextmanager
    async def _spawn(
        self, handle: RunHandle, spec: CommandSpec
    ) -> AsyncIterator[asyncio.subprocess.Process]:
        """
        Launch the step's process and guarantee it is gone when the block exits.

        Raises:
            SpawnError: If the executable cannot be launched
        """
        cwd = spec.cwd if spec.cwd is not None else self._default_cwd
        env = {**os.environ, **spec.env} if spec.env else None

        logger.debug(f"Launching {spec.argv} for run {handle.generation} (cwd={cwd})")
        try:
            process = await asyncio.create_subprocess_exec(
                *spec.argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=env,
                # Own process group, so termination reaches the step's children too
                start_new_session=True,
            )
        except OSError as e:
            raise SpawnError(spec.executable, e) from e

        handle.attach_process(process)
        try:
            yield process
        finally:
            try:
                if process.returncode is None:
                    await self._terminate(process, handle.generation)
                await self._stop_leftovers(process.pid, handle.generation)
            finally:
                handle.release_process()
                logger.debug(f"Released process {process.pid} of run {handle.generation}")

    async def _terminate(self, process: asyncio.subprocess.Process, generation: int) -> None:
        """
        Stop a process: SIGTERM, wait for the grace period, then SIGKILL.
        Always waits for the process to be reaped.
        """
        try:
            logger.debug(f"Sending SIGTERM to process {process.pid} of run {generation}")
            _send_signal(process, force=False)
            try:
                await asyncio.wait_for(_wait_exited(process), timeout=self._cancel_grace_period)
                logger.debug(f"Process {process.pid} of run {generation} terminated gracefully")
                return
            except asyncio.TimeoutError:
                logger.warning(f"Run {generation} didn't terminate, sending SIGKILL")
            _send_signal(process, force=True)
        except ProcessLookupError:
            logger.debug(f"Process {process.pid} of run {generation} already dead")

        await _wait_exited(process)

    async def _stop_leftovers(self, pgid: int, generation: int) -> None:
        """
        Stop processes still in the step's group once its leader is gone,
        e.g. a server started with "&". SIGTERM, then SIGKILL after the grace
        period.
        """
        if os.name == "nt" or not _group_alive(pgid):
            return

        logger.debug(f"Stopping leftover processes in group {pgid} of run {generation}")
        for sig in (signal.SIGTERM, signal.SIGKILL):
            try:
                os.killpg(pgid, sig)
            except ProcessLookupError:
                return
            if await _wait_group_exit(pgid, self._cancel_grace_period):
                return
            if sig is signal.SIGTERM:
                logger.warning(f"Leftover processes of run {generation} didn't terminate, sending SIGKILL")

        logger.warning(f"Leftover processes in group {pgid} of run {generation} survived SIGKILL")

    def _report(self, result: RunResult) -> None:
        try:
            self._sink.run_finished(result)
        except Exception as e:
            logger.exception(f"Output sink failed to record outcome of run {result.generation}: {e}")

    def __repr__(self) -> str:
        return f"PipelineExecutor(cancel_grace_period={self._cancel_grace_period}s)"


def _send_signal(process: asyncio.subprocess.Process, *, force: bool) -> None:
    if os.name == "nt":
        if force:
            process.kill()
        else:
            process.terminate()
        return
    os.killpg(process.pid, signal.SIGKILL if force else signal.SIGTERM)


async def _wait_exited(process: asyncio.subprocess.Process) -> int:
    # process.wait() also waits for the pipes to close, which a background
    # child can hold open indefinitely
    while process.returncode is None:
        await asyncio.sleep(0.01)
    return process.returncode


def _check_readers(handle: RunHandle, readers: list[asyncio.Task]) -> None:
    """Re-raise the first error of a finished output reader (e.g. the sink raised)."""
    if handle.cancel_requested:
        return
    for reader in readers:
        if reader.done() and not reader.cancelled() and reader.exception() is not None:
            raise reader.exception()


def _group_alive(pgid: int) -> bool:
    """Whether process group `pgid` still has a member that isn't a zombie."""
    try:
        os.killpg(pgid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True

    # Zombies count for killpg(); where /proc exists, look past them
    proc = Path("/proc")
    if not proc.is_dir():
        return True
    for stat in proc.glob("[0-9]*/stat"):
        try:
            fields = stat.read_text().rpartition(")")[2].split()
        except OSError:
            continue
        # state, ppid, pgrp
        if len(fields) > 2 and fields[2] == str(pgid) and fields[0] != "Z":
            return True
    return False


async def _wait_group_exit(pgid: int, timeout: float) -> bool:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while _group_alive(pgid):
        if loop.time() >= deadline:
            return False
        await asyncio.sleep(0.02)
    return True
