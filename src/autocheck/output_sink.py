# autocheck/output_sink.py
"""
Terminal Output Sink interface and the default terminal implementation.

The engine only forwards bytes and outcomes. Everything about how they
look on screen belongs to the sink.
"""

from __future__ import annotations

import logging
import sys
from typing import BinaryIO, Protocol

from .command_config import CommandSpec
from .run_result import RunResult, RunState
from .types import OutputChunk, Stream

logger = logging.getLogger(__name__)


class OutputSink(Protocol):
    """Receiver for everything a pipeline run produces."""

    def command_started(self, generation: int, index: int, spec: CommandSpec) -> None:
        """A pipeline step for `generation` is about to be launched."""
        ...

    def write(self, chunk: OutputChunk) -> None:
        """Output produced by the running step, in arrival order."""
        ...

    def run_finished(self, result: RunResult) -> None:
        """Final Exit Outcome of a generation."""
        ...


class TerminalSink:
    """
    Streams child output straight to this process's stdout/stderr.

    Keeps its own generation fence: chunks tagged with a generation older
    than the newest started one are dropped.
    """

    def __init__(self, stdout: BinaryIO | None = None, stderr: BinaryIO | None = None) -> None:
        self._stdout = stdout if stdout is not None else sys.stdout.buffer
        self._stderr = stderr if stderr is not None else sys.stderr.buffer
        self._latest_generation = 0

    def command_started(self, generation: int, index: int, spec: CommandSpec) -> None:
        self._latest_generation = max(self._latest_generation, generation)
        logger.info(f"Running command {spec.argv}")
        self._stdout.write(b"\n")
        self._stdout.flush()

    def write(self, chunk: OutputChunk) -> None:
        if chunk.generation < self._latest_generation:
            logger.debug(f"Dropping {len(chunk.data)} stale bytes from run {chunk.generation}")
            return
        stream = self._stderr if chunk.stream is Stream.STDERR else self._stdout
        stream.write(chunk.data)
        stream.flush()

    def run_finished(self, result: RunResult) -> None:
        if result.state is RunState.SUCCESS:
            logger.debug(f"Run {result.generation} succeeded")
        elif result.state is RunState.CANCELLED:
            logger.info(f"Run {result.generation} cancelled")
        else:
            logger.error(f"Run {result.generation} stopped: {result.error}")

        self._stdout.write(f"\n{result.describe()}\n".encode())
        self._stdout.flush()
