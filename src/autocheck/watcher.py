# autocheck/watcher.py
"""
Watch Subscription Adapter built on watchdog.

Translates watchdog events into RawEvents and hands them to a delivery
callback from the observer thread. Ignored subtrees are kept out of the
OS-level subscription where that is cheap: the tree is planned once so
that directories like /target/ or .git/ never get inotify watches.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import ObservedWatch

from .exceptions import WatchError
from .path_filter import PathFilter
from .types import EventKind, RawEvent

logger = logging.getLogger(__name__)

_KINDS = {
    EVENT_TYPE_CREATED: EventKind.CREATED,
    EVENT_TYPE_MODIFIED: EventKind.MODIFIED,
    EVENT_TYPE_DELETED: EventKind.REMOVED,
}


def translate_event(event: FileSystemEvent, *, timestamp: float | None = None) -> list[RawEvent]:
    """
    Convert a watchdog event into RawEvents.

    A move yields a RENAMED event for both the source and the destination.
    Open/close notifications yield nothing.
    """
    ts = time.monotonic() if timestamp is None else timestamp
    is_dir = event.is_directory

    if event.event_type == EVENT_TYPE_MOVED:
        return [
            RawEvent(Path(os.fsdecode(event.src_path)), EventKind.RENAMED, ts, is_dir),
            RawEvent(Path(os.fsdecode(event.dest_path)), EventKind.RENAMED, ts, is_dir),
        ]

    kind = _KINDS.get(event.event_type)
    if kind is None:
        return []
    return [RawEvent(Path(os.fsdecode(event.src_path)), kind, ts, is_dir)]


# ─────────────────────────────────────────────────────────────────────────────
# Watch planning
# ─────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class PlannedWatch:
    path: Path
    recursive: bool


def plan_watches(directory: str | Path, path_filter: PathFilter) -> list[PlannedWatch]:
    """
    Smallest set of watches covering every non-ignored directory under `directory`.

    A directory whose subtree holds no ignored directory gets one recursive
    watch. Otherwise it gets a non-recursive watch and each non-ignored child
    is planned on its own, so ignored subtrees are never subscribed to.
    """
    plan, _ = _plan(Path(directory), path_filter)
    return plan


def _plan(directory: Path, path_filter: PathFilter) -> tuple[list[PlannedWatch], bool]:
    try:
        with os.scandir(directory) as entries:
            subdirs = sorted(Path(e.path) for e in entries if e.is_dir(follow_symlinks=False))
    except OSError as e:
        logger.warning(f"Not watching unreadable directory {directory}: {e}")
        return [], False

    child_plans: list[list[PlannedWatch]] = []
    clean = True
    for sub in subdirs:
        if path_filter.is_ignored(sub):
            logger.debug(f"Not watching ignored directory {sub}")
            clean = False
            continue
        sub_plan, sub_clean = _plan(sub, path_filter)
        clean = clean and sub_clean
        child_plans.append(sub_plan)

    if clean:
        return [PlannedWatch(directory, recursive=True)], True

    plan = [PlannedWatch(directory, recursive=False)]
    for sub_plan in child_plans:
        plan.extend(sub_plan)
    return plan, False


def shallow_plan(directory: str | Path, path_filter: PathFilter) -> list[PlannedWatch]:
    """
    Coarser plan for when plan_watches() needs too many watches.

    Watches `directory` non-recursively and each non-ignored child
    directory recursively, so ignored directories at the top level (.git,
    /target) stay out of the subscription. Ignored directories deeper down
    are covered by the recursive watches and only filtered after the fact.
    """
    directory = Path(directory)
    try:
        with os.scandir(directory) as entries:
            subdirs = sorted(Path(e.path) for e in entries if e.is_dir(follow_symlinks=False))
    except OSError as e:
        logger.warning(f"Not watching unreadable directory {directory}: {e}")
        return []

    children = [PlannedWatch(sub, recursive=True) for sub in subdirs if not path_filter.is_ignored(sub)]
    if len(children) == len(subdirs):
        return [PlannedWatch(directory, recursive=True)]
    return [PlannedWatch(directory, recursive=False), *children]


# ─────────────────────────────────────────────────────────────────────────────
# Adapter
# ─────────────────────────────────────────────────────────────────────────────
class _EventHandler(FileSystemEventHandler):
    """Runs on the observer thread; only translates and delivers."""

    def __init__(self, deliver: Callable[[RawEvent], None]) -> None:
        self._deliver = deliver

    def on_any_event(self, event: FileSystemEvent) -> None:
        for raw in translate_event(event):
            self._deliver(raw)


class ProjectWatcher:
    """
    Subscribes to filesystem notifications for a project tree.

    `deliver` is called on the observer thread. start(), stop() and
    update_for() are meant to be called from a single owner thread.
    """

    def __init__(
        self,
        root: str | Path,
        path_filter: PathFilter,
        deliver: Callable[[RawEvent], None],
        *,
        observer_factory: Callable[[], Observer] = Observer,
        max_watches: int = 32,
    ) -> None:
        """
        Args:
            root: Absolute project directory
            path_filter: Used to keep ignored directories out of the subscription
            deliver: Receives every translated RawEvent
            observer_factory: Builds the watchdog observer
            max_watches: Above this many planned watches, only top-level ignored
                directories are kept out, and failing that the root is watched
                recursively (each watch can cost an inotify instance and a thread)
        """
        self._root = Path(root)
        self._filter = path_filter
        self._handler = _EventHandler(deliver)
        self._observer_factory = observer_factory
        self._max_watches = max_watches

        self._observer: Observer | None = None
        self._watches: dict[Path, ObservedWatch] = {}
        self._recursive: set[Path] = set()

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    def start(self) -> None:
        """
        Schedule the planned watches and start the observer thread.

        Raises:
            WatchError: If the root is missing or a watch cannot be added
        """
        if not self._root.is_dir():
            raise WatchError(f"Watch root {self._root} is not a directory")

        self._observer = self._observer_factory()
        plan = self._limit(self._root, plan_watches(self._root, self._filter), self._max_watches)

        for planned in plan:
            self._schedule(planned)

        try:
            self._observer.start()
        except OSError as e:
            raise WatchError(f"Failed to start filesystem observer: {e}") from e

        logger.info(
            f"Watching {self._root} ({len(self._watches)} watches, "
            f"{len(self._recursive)} recursive)"
        )

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop the observer thread. Blocks until it exits (or timeout)."""
        if self._observer is None:
            return
        self._observer.stop()
        if self._observer.is_alive():
            self._observer.join(timeout)
        self._watches.clear()
        self._recursive.clear()
        logger.debug("Filesystem observer stopped")

    @property
    def is_alive(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    @property
    def watched_paths(self) -> dict[Path, bool]:
        """Currently scheduled directories, mapped to whether they are recursive."""
        return {path: path in self._recursive for path in self._watches}

    # ------------------------------------------------------------------ #
    # Subscription maintenance
    # ------------------------------------------------------------------ #
    def update_for(self, event: RawEvent) -> None:
        """
        Keep the subscription in step with directory creation and removal.

        Raises:
            WatchError: If a new directory cannot be watched
        """
        if not event.is_directory or self._observer is None:
            return

        if event.kind is EventKind.REMOVED or (
            event.kind is EventKind.RENAMED and not event.path.exists()
        ):
            self._forget(event.path)
        elif event.kind in (EventKind.CREATED, EventKind.RENAMED) and event.path.is_dir():
            self._adopt(event.path)

    def is_covered(self, path: Path) -> bool:
        """Whether `path` is already inside a recursive watch (or watched itself)."""
        return path in self._watches or any(p in self._recursive for p in path.parents)

    def _adopt(self, directory: Path) -> None:
        if self.is_covered(directory) or self._filter.is_ignored(directory):
            return

        budget = max(self._max_watches - len(self._watches), 1)
        plan = self._limit(directory, plan_watches(directory, self._filter), budget)
        for planned in plan:
            self._schedule(planned)
        logger.debug(f"Watching new directory {directory} ({len(plan)} watches)")

    def _limit(self, directory: Path, plan: list[PlannedWatch], budget: int) -> list[PlannedWatch]:
        """Coarsen `plan` until it fits in `budget` watches."""
        if len(plan) <= budget:
            return plan

        coarse = shallow_plan(directory, self._filter)
        if len(coarse) <= budget:
            logger.warning(
                f"{len(plan)} watches needed to exclude ignored directories "
                f"(limit {self._max_watches}), excluding only those directly under {directory}"
            )
            return coarse

        logger.warning(
            f"{len(plan)} watches needed to exclude ignored directories "
            f"(limit {self._max_watches}), watching {directory} recursively instead"
        )
        return [PlannedWatch(directory, recursive=True)]

    def _forget(self, directory: Path) -> None:
        for path in [p for p in self._watches if p == directory or directory in p.parents]:
            watch = self._watches.pop(path)
            self._recursive.discard(path)
            try:
                self._observer.unschedule(watch)
            except KeyError:
                logger.debug(f"Watch for {path} was already gone")
            logger.debug(f"Stopped watching removed directory {path}")

    def _schedule(self, planned: PlannedWatch) -> None:
        try:
            watch = self._observer.schedule(
                self._handler, str(planned.path), recursive=planned.recursive
            )
        except OSError as e:
            raise WatchError(f"Failed to add watch for {planned.path}: {e}") from e

        self._watches[planned.path] = watch
        if planned.recursive:
            self._recursive.add(planned.path)

    def __repr__(self) -> str:
        return f"ProjectWatcher(root={str(self._root)!r}, watches={len(self._watches)})"
