# tests/conftest.py
import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

import asyncio
import logging
import time

import pytest

from autocheck import logging_config
from autocheck.command_config import CommandSpec, WatchConfig
from autocheck.types import Trigger


class RecordingSink:
    """OutputSink that keeps everything it receives, in order."""

    def __init__(self):
        self.events = []
        self.chunks = []
        self.results = []
        self.output_seen = asyncio.Event()

    def command_started(self, generation, index, spec):
        self.events.append(("start", generation, index, spec.label))

    def write(self, chunk):
        self.chunks.append(chunk)
        self.events.append(("chunk", chunk.generation, chunk.label))
        self.output_seen.set()

    def run_finished(self, result):
        self.results.append(result)
        self.events.append(("finished", result.generation, result.state))

    def output(self, generation=None, stream=None) -> bytes:
        return b"".join(
            c.data
            for c in self.chunks
            if (generation is None or c.generation == generation)
            and (stream is None or c.stream is stream)
        )

    def started_labels(self, generation):
        return [e[3] for e in self.events if e[0] == "start" and e[1] == generation]

    def index_of(self, event):
        return self.events.index(event)


class FakeObserver:
    """Stands in for watchdog's Observer; records the subscription."""

    def __init__(self):
        self.scheduled = {}
        self.handler = None
        self.alive = False
        self.fail_on = set()

    def schedule(self, handler, path, recursive=False):
        if path in self.fail_on:
            raise OSError(28, "inotify watch limit reached")
        self.handler = handler
        self.scheduled[path] = recursive
        return (path, recursive)

    def unschedule(self, watch):
        if watch[0] not in self.scheduled:
            raise KeyError(watch)
        del self.scheduled[watch[0]]

    def start(self):
        self.alive = True

    def stop(self):
        self.alive = False

    def join(self, timeout=None):
        pass

    def is_alive(self):
        return self.alive


def py(code: str, label: str | None = None, **kwargs) -> CommandSpec:
    """A pipeline step running a snippet with the current interpreter."""
    return CommandSpec(sys.executable, ["-c", code], label=label or "", **kwargs)


def make_trigger(generation: int, *paths) -> Trigger:
    return Trigger(generation=generation, settled_at=time.monotonic(), paths=tuple(paths))


LONG_RUNNING = "import time; print('working', flush=True); time.sleep(30)"


async def wait_until(predicate, timeout=2.0) -> bool:
    """Poll `predicate` on the running loop until it holds or `timeout` passes."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            return False
        await asyncio.sleep(0.005)
    return True


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def fake_observer():
    return FakeObserver()


@pytest.fixture
def project(tmp_path):
    """A small Rust-like project tree."""
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "main.rs").write_text("fn main() {}\n")
    (tmp_path / "target" / "debug").mkdir(parents=True)
    (tmp_path / ".git" / "objects").mkdir(parents=True)
    (tmp_path / "Cargo.toml").write_text("[package]\nname = 'demo'\n")
    return tmp_path


@pytest.fixture
def watch_config(project):
    return WatchConfig(
        root=project,
        pipeline=[py("print('ok')", label="ok")],
        debounce_ms=50,
        cancel_grace_period=1.0,
    )


@pytest.fixture
def restore_logging():
    """Undo setup_logging()/disable_logging() so later tests see default propagation."""
    logger = logging.getLogger(logging_config.PACKAGE_LOGGER)
    saved = (logger.level, logger.propagate, logger.disabled)
    yield logger
    logging_config._remove_installed_handlers(logger)
    level, logger.propagate, logger.disabled = saved
    logger.setLevel(level)
