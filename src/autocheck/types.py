# autocheck/types.py
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePath
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .run_result import RunResult


class EventKind(Enum):
    """Kind of a raw filesystem change."""

    CREATED = "created"
    MODIFIED = "modified"
    REMOVED = "removed"
    RENAMED = "renamed"


@dataclass(frozen=True)
class RawEvent:
    """
    A single filesystem notification, as produced by the watch adapter.

    Consumed once by the PathFilter. `timestamp` is a monotonic instant
    (time.monotonic()), never wall-clock time.
    """

    path: Path
    kind: EventKind
    timestamp: float = field(default_factory=time.monotonic)
    is_directory: bool = False


@dataclass(frozen=True)
class Trigger:
    """
    A coalesced "something changed" pulse emitted by the Debouncer.

    `generation` is the only ordering key used by the RunCoordinator.
    """

    generation: int
    settled_at: float
    """Monotonic instant at which the quiet period elapsed."""

    paths: tuple[PurePath, ...] = ()
    """Root-relative paths that changed during the window, sorted and de-duplicated."""


class Stream(Enum):
    STDOUT = "stdout"
    STDERR = "stderr"


@dataclass(frozen=True)
class OutputChunk:
    """A piece of child-process output forwarded to the OutputSink."""

    generation: int
    label: str
    stream: Stream
    data: bytes


class CoordinatorState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    CANCELLING = "cancelling"


@dataclass(frozen=True)
class CoordinatorStatus:
    """
    Snapshot returned by RunCoordinator.status().

    state values:
      - IDLE       → no run active
      - RUNNING    → current_generation is executing
      - CANCELLING → current_generation was asked to stop, pending_generation is next
    """

    state: CoordinatorState

    current_generation: int | None = None
    """Generation of the in-flight run, if any."""

    pending_generation: int | None = None
    """Generation waiting for the current run to release its process."""

    last_result: RunResult | None = None
    """Most recent finished RunResult."""
