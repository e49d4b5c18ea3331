# autocheck/run_result.py
from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePath
from typing import Any

logger = logging.getLogger(__name__)


class RunState(Enum):
    """Lifecycle of one pipeline run. The last four are its Exit Outcome."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"
    SPAWN_ERROR = "spawn_error"


@dataclass
class RunResult:
    """
    Represents one pipeline execution for a single generation.

    Internal mutable object written by the PipelineExecutor.
    Users interact with it via the RunHandle façade or the OutputSink.
    """

    # ------------------------------------------------------------------ #
    # Identification
    # ------------------------------------------------------------------ #
    generation: int
    """Trigger generation this run was started for."""

    changed_paths: tuple[PurePath, ...] = ()
    """Root-relative paths reported by the Trigger that caused this run."""

    state: RunState = RunState.PENDING

    # ------------------------------------------------------------------ #
    # Outcome details
    # ------------------------------------------------------------------ #
    commands_started: int = 0
    """How many pipeline steps were launched (or attempted)."""

    failed_index: int | None = None
    """Index of the step that failed or could not be spawned."""

    failed_label: str | None = None

    exit_code: int | None = None
    """Exit code of the failed step (FAILED only)."""

    error: str | Exception | None = None
    """Error message, exception, or cancellation reason."""

    # ------------------------------------------------------------------ #
    # Timing
    # ------------------------------------------------------------------ #
    start_time: datetime.datetime | None = None
    end_time: datetime.datetime | None = None
    duration: datetime.timedelta | None = None

    history: list[str] = field(default_factory=list)
    """Labels of the steps that completed successfully, in order."""

    # ------------------------------------------------------------------ #
    # State transitions
    # ------------------------------------------------------------------ #
    def mark_running(self) -> None:
        """Transition to RUNNING and record start time."""
        if self.state is not RunState.PENDING:
            logger.warning(f"Run {self.generation} marked running from invalid state {self.state}")
        self.state = RunState.RUNNING
        self.start_time = datetime.datetime.now()
        logger.debug(f"Run {self.generation} started")

    def mark_success(self) -> None:
        """Mark as successfully completed (every step exited 0)."""
        self.state = RunState.SUCCESS
        self._finalize()
        logger.debug(f"Run {self.generation} succeeded in {self.duration_str}")

    def mark_failed(
        self,
        index: int | None,
        label: str | None,
        exit_code: int | None,
        error: str | Exception | None = None,
    ) -> None:
        """Mark as failed: a step ran and returned non-zero, or the run crashed."""
        self.state = RunState.FAILED
        self.failed_index = index
        self.failed_label = label
        self.exit_code = exit_code
        self.error = error if error is not None else f"Command exited with code {exit_code}"
        self._finalize()
        logger.debug(f"Run {self.generation} failed at step {index}: {self.error}")

    def mark_cancelled(self, reason: str | None = None) -> None:
        """Mark as cancelled (superseded or shut down)."""
        self.state = RunState.CANCELLED
        self.error = reason or "Run was cancelled"
        self._finalize()
        logger.debug(f"Run {self.generation} cancelled: {self.error}")

    def mark_spawn_error(self, index: int, label: str, error: str | Exception) -> None:
        """Mark as unable to launch step `index`."""
        self.state = RunState.SPAWN_ERROR
        self.failed_index = index
        self.failed_label = label
        self.error = error
        self._finalize()
        logger.debug(f"Run {self.generation} could not launch step {index}: {error}")

    # ------------------------------------------------------------------ #
    # Finalization
    # ------------------------------------------------------------------ #
    def _finalize(self) -> None:
        """Record end time and compute duration."""
        self.end_time = datetime.datetime.now()
        if self.start_time:
            self.duration = self.end_time - self.start_time
        else:
            self.duration = datetime.timedelta(0)

    # ------------------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------------------ #
    @property
    def is_finalized(self) -> bool:
        return self.state not in {RunState.PENDING, RunState.RUNNING}

    @property
    def success(self) -> bool | None:
        """True = success, False = failed/spawn error, None = cancelled or unfinished."""
        if self.state is RunState.SUCCESS:
            return True
        if self.state in (RunState.FAILED, RunState.SPAWN_ERROR):
            return False
        return None

    @property
    def duration_secs(self) -> float | None:
        return self.duration.total_seconds() if self.duration is not None else None

    @property
    def duration_str(self) -> str:
        """Human-readable duration (e.g. '452ms', '2.4s', '1m 23s', '2h 5m')."""
        return format_duration(self.duration_secs)

    def describe(self) -> str:
        """One-line summary suitable for a terminal."""
        if self.state is RunState.SUCCESS:
            return f"[{self.generation}] all {self.commands_started} commands passed ({self.duration_str})"
        if self.state is RunState.FAILED and self.exit_code is not None:
            return (
                f"[{self.generation}] '{self.failed_label}' failed with exit code "
                f"{self.exit_code} (step {self.failed_index + 1})"
            )
        if self.state is RunState.CANCELLED:
            return f"[{self.generation}] cancelled: {self.error}"
        if self.state in (RunState.FAILED, RunState.SPAWN_ERROR):
            return f"[{self.generation}] {self.state.value}: {self.error}"
        return f"[{self.generation}] {self.state.value}"

    # ------------------------------------------------------------------ #
    # Representation & serialization
    # ------------------------------------------------------------------ #
    def __repr__(self) -> str:
        return (
            f"RunResult(gen={self.generation}, state={self.state.value}, "
            f"dur={self.duration_str}, failed_index={self.failed_index}, exit_code={self.exit_code})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "generation": self.generation,
            "changed_paths": [str(p) for p in self.changed_paths],
            "state": self.state.value,
            "success": self.success,
            "commands_started": self.commands_started,
            "failed_index": self.failed_index,
            "failed_label": self.failed_label,
            "exit_code": self.exit_code,
            "error": str(self.error) if self.error else None,
            "history": self.history.copy(),
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_str": self.duration_str,
        }


def format_duration(secs: float | None) -> str:
    """Human-readable duration (e.g. '452ms', '2.4s', '1m 23s', '2h 5m')."""
    if secs is None:
        return "—"
    if secs < 1:
        return f"{secs * 1000:.0f}ms"
    if secs < 60:
        return f"{secs:.1f}s"
    mins, secs = divmod(secs, 60)
    if mins < 60:
        return f"{int(mins)}m {secs:.0f}s"
    hrs, mins = divmod(mins, 60)
    return f"{int(hrs)}h {int(mins)}m"
