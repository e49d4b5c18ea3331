# autocheck/engine.py
"""
WatchEngine - wires the watch adapter, PathFilter, Debouncer and
RunCoordinator together on one asyncio event loop.

    observer thread ──call_soon_threadsafe──▶ handle_event()
        → PathFilter.is_relevant() → Debouncer.push()
        → Trigger → RunCoordinator.submit() → PipelineExecutor → OutputSink
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from watchdog.observers import Observer

from .command_config import WatchConfig
from .debouncer import Debouncer
from .exceptions import WatchError
from .output_sink import OutputSink, TerminalSink
from .path_filter import PathFilter
from .pipeline_executor import PipelineExecutor
from .run_coordinator import RunCoordinator
from .run_result import RunResult
from .types import RawEvent
from .watcher import ProjectWatcher

logger = logging.getLogger(__name__)


class WatchEngine:
    """
    Watches `config.root` and re-runs `config.pipeline` whenever it changes.

    Use as an async context manager, or call start() / shutdown() yourself:

        async with WatchEngine(config) as engine:
            await engine.run_forever()

    Building the engine compiles the ignore rules, so a malformed pattern
    raises FilterError here, before anything is watched.
    """

    def __init__(
        self,
        config: WatchConfig,
        sink: OutputSink | None = None,
        *,
        observer_factory: Callable[[], Observer] = Observer,
        on_run_finished: Callable[[RunResult], None] | None = None,
        health_check_interval: float = 1.0,
    ) -> None:
        self.config = config
        self.sink: OutputSink = sink if sink is not None else TerminalSink()
        self.path_filter = PathFilter(
            config.root, config.ignore, use_defaults=config.default_ignores
        )
        self.executor = PipelineExecutor(
            self.sink,
            cancel_grace_period=config.cancel_grace_period,
            default_cwd=config.root,
        )
        self.coordinator = RunCoordinator(
            config.pipeline,
            self.executor,
            keep_history=config.keep_history,
            on_run_finished=on_run_finished,
        )
        self._observer_factory = observer_factory
        self._health_check_interval = health_check_interval

        self.debouncer: Debouncer | None = None
        self.watcher: ProjectWatcher | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stopped: asyncio.Future[None] | None = None
        self._health_task: asyncio.Task[None] | None = None
        self._stopping = False

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def start(self) -> None:
        """
        Subscribe to filesystem events and begin debouncing.

        Raises:
            WatchError: If the notification facility cannot be set up
        """
        if self._loop is not None:
            raise RuntimeError("WatchEngine already started")

        self._loop = asyncio.get_running_loop()
        self._stopped = self._loop.create_future()
        self.debouncer = Debouncer(self.config.quiet_period, self.coordinator.submit, loop=self._loop)
        self.watcher = ProjectWatcher(
            self.config.root,
            self.path_filter,
            self._deliver_threadsafe,
            observer_factory=self._observer_factory,
        )
        self.watcher.start()
        self._health_task = asyncio.create_task(self._watch_health(), name="autocheck_health")
        logger.debug(f"WatchEngine started for {self.config.root}")

    async def run_forever(self) -> None:
        """
        Run until stop() is called.

        Raises:
            WatchError: If filesystem event intake fails
        """
        if self._loop is None:
            await self.start()
        assert self._stopped is not None
        await self._stopped

    def stop(self) -> None:
        """Make run_forever() return. Loop thread only."""
        if self._stopped is not None and not self._stopped.done():
            self._stopped.set_result(None)

    def fail(self, error: BaseException) -> None:
        """Record a fatal intake error; run_forever() re-raises it."""
        logger.error(f"Fatal watch error: {error}")
        if self._stopped is not None and not self._stopped.done():
            self._stopped.set_exception(error)

    async def shutdown(self) -> None:
        """Stop watching, drop any pending trigger and stop the current run."""
        # Before the first await: events still queued by the observer thread
        # must not re-arm the debouncer once it has been cancelled
        self._stopping = True
        if self.debouncer is not None:
            self.debouncer.cancel()

        if self._health_task is not None:
            self._health_task.cancel()
            await asyncio.gather(self._health_task, return_exceptions=True)
            self._health_task = None
        if self.watcher is not None:
            await asyncio.to_thread(self.watcher.stop)
        await self.coordinator.shutdown()
        self.stop()
        logger.debug("WatchEngine shut down")

    async def __aenter__(self) -> WatchEngine:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    # ========================================================================
    # Event intake
    # ========================================================================

    def _deliver_threadsafe(self, event: RawEvent) -> None:
        """Called on the observer thread."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self.handle_event, event)
        except RuntimeError:
            # Loop closed between the check and the call; we are shutting down
            logger.debug(f"Dropping event for {event.path}: event loop closed")

    def handle_event(self, event: RawEvent) -> None:
        """Process one RawEvent. Loop thread only."""
        if self.debouncer is None or self._stopping:
            return

        if self.watcher is not None:
            try:
                self.watcher.update_for(event)
            except WatchError as e:
                self.fail(e)
                return

        if self.path_filter.is_relevant(event):
            self.debouncer.push(event, self.path_filter.relative(event.path))

    async def _watch_health(self) -> None:
        while True:
            await asyncio.sleep(self._health_check_interval)
            if self.watcher is not None and not self.watcher.is_alive:
                self.fail(WatchError("Filesystem observer stopped unexpectedly"))
                return

    def __repr__(self) -> str:
        return f"WatchEngine(root={str(self.config.root)!r}, coordinator={self.coordinator!r})"
