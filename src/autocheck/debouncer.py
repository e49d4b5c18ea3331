# autocheck/debouncer.py
"""
Debouncer - coalesces bursts of relevant events into single Triggers.

The quiet-period timer is an asyncio TimerHandle owned by one event loop.
push(), the timer callback and cancel() all run on that loop, so a reset
can never race with a firing timer: whichever runs first wins, and only one
handle is ever pending.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from pathlib import PurePath

from .types import RawEvent, Trigger

logger = logging.getLogger(__name__)


class Debouncer:
    """
    Turns a stream of relevant RawEvents into a minimal stream of Triggers.

    Every push() (re)starts a quiet-period timer of `quiet_period` seconds.
    When the timer elapses with no further events, exactly one Trigger is
    emitted to `on_trigger`, carrying the next generation number (1, 2, 3, ...).
    """

    def __init__(
        self,
        quiet_period: float,
        on_trigger: Callable[[Trigger], None],
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """
        Args:
            quiet_period: Debounce window in seconds (0 fires on the next loop iteration)
            on_trigger: Called on the loop with each emitted Trigger
            loop: Owning event loop (defaults to the running loop)
        """
        if quiet_period < 0:
            raise ValueError("quiet_period cannot be negative")
        self._quiet_period = quiet_period
        self._on_trigger = on_trigger
        self._loop = loop or asyncio.get_running_loop()

        self._handle: asyncio.TimerHandle | None = None
        self._generation = 0
        self._changed: set[PurePath] = set()

    @property
    def quiet_period(self) -> float:
        return self._quiet_period

    @property
    def generation(self) -> int:
        """Generation of the last emitted Trigger (0 before the first)."""
        return self._generation

    @property
    def pending(self) -> bool:
        """Whether a quiet-period timer is currently armed."""
        return self._handle is not None

    def push(self, event: RawEvent, path: PurePath | None = None) -> None:
        """
        Record a relevant event and restart the quiet period. Loop thread only.

        `path` is what the Trigger reports for this event (the engine passes
        the root-relative path); defaults to `event.path`.
        """
        changed = event.path if path is None else path
        self._changed.add(changed)
        if self._handle is not None:
            self._handle.cancel()
        self._handle = self._loop.call_later(self._quiet_period, self._fire)
        logger.debug(f"Detected change: {changed} ({event.kind.value}), quiet period restarted")

    def cancel(self) -> None:
        """Drop the pending timer and accumulated changes without emitting."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
            logger.debug(f"Dropped pending trigger ({len(self._changed)} changed paths)")
        self._changed.clear()

    def _fire(self) -> None:
        self._handle = None
        self._generation += 1
        paths = tuple(sorted(self._changed))
        self._changed.clear()

        trigger = Trigger(generation=self._generation, settled_at=time.monotonic(), paths=paths)
        logger.debug(f"Quiet period elapsed, emitting trigger {trigger.generation}")
        self._on_trigger(trigger)

    def __repr__(self) -> str:
        return (
            f"Debouncer(quiet_period={self._quiet_period}s, "
            f"generation={self._generation}, pending={self.pending})"
        )
