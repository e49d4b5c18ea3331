# tests/test_engine.py
import asyncio
import dataclasses
import threading
import time
from pathlib import PurePosixPath

import pytest
from watchdog.events import FileModifiedEvent

from autocheck.engine import WatchEngine
from autocheck.exceptions import FilterError, WatchError
from autocheck.run_result import RunState
from autocheck.types import EventKind, RawEvent

from conftest import LONG_RUNNING, FakeObserver, py, wait_until


def modified(path):
    return RawEvent(path, EventKind.MODIFIED)


@pytest.fixture
def engine_factory(watch_config, sink, fake_observer):
    def build(**overrides):
        config = dataclasses.replace(watch_config, **overrides) if overrides else watch_config
        return WatchEngine(config, sink, observer_factory=lambda: fake_observer)

    return build


@pytest.mark.asyncio
async def test_burst_of_changes_runs_pipeline_once(engine_factory, sink, project):
    async with engine_factory() as engine:
        for _ in range(5):
            engine.handle_event(modified(project / "src" / "main.rs"))
            await asyncio.sleep(0.01)
        engine.handle_event(modified(project / "Cargo.toml"))

        assert await wait_until(lambda: sink.results, timeout=10)
        await asyncio.sleep(0.2)

    assert len(sink.results) == 1
    result = sink.results[0]
    assert result.state == RunState.SUCCESS
    assert result.changed_paths == (PurePosixPath("Cargo.toml"), PurePosixPath("src/main.rs"))
    assert sink.output(1).strip() == b"ok"


@pytest.mark.asyncio
async def test_ignored_changes_never_trigger(engine_factory, sink, project):
    async with engine_factory() as engine:
        engine.handle_event(modified(project / "target" / "debug" / "demo"))
        engine.handle_event(modified(project / ".git" / "index"))
        engine.handle_event(modified(project / "src" / ".main.rs.swp"))
        engine.handle_event(RawEvent(project / "src", EventKind.MODIFIED, is_directory=True))
        await asyncio.sleep(0.2)

        assert engine.debouncer.generation == 0
    assert sink.results == []


@pytest.mark.asyncio
async def test_custom_ignore_patterns(engine_factory, sink, project):
    async with engine_factory(ignore=["*.md"]) as engine:
        engine.handle_event(modified(project / "README.md"))
        await asyncio.sleep(0.2)
        assert engine.debouncer.generation == 0


@pytest.mark.asyncio
async def test_change_during_run_supersedes_it(engine_factory, sink, project):
    async with engine_factory(pipeline=[py(LONG_RUNNING, "test")]) as engine:
        engine.handle_event(modified(project / "src" / "main.rs"))
        await asyncio.wait_for(sink.output_seen.wait(), timeout=10)

        engine.handle_event(modified(project / "src" / "main.rs"))
        assert await wait_until(lambda: sink.started_labels(2) == ["test"], timeout=10)

        assert sink.results[0].generation == 1
        assert sink.results[0].state == RunState.CANCELLED

    # Shutdown cancels generation 2 as well
    assert [(r.generation, r.state) for r in sink.results] == [
        (1, RunState.CANCELLED),
        (2, RunState.CANCELLED),
    ]


@pytest.mark.asyncio
async def test_events_from_observer_thread(engine_factory, sink, project, fake_observer):
    async with engine_factory():
        event = FileModifiedEvent(str(project / "src" / "main.rs"))
        thread = threading.Thread(target=fake_observer.handler.dispatch, args=(event,))
        thread.start()
        thread.join()

        assert await wait_until(lambda: sink.results, timeout=10)
    assert sink.results[0].changed_paths == (PurePosixPath("src/main.rs"),)


@pytest.mark.asyncio
async def test_new_directory_is_watched(engine_factory, project, fake_observer):
    async with engine_factory() as engine:
        (project / "examples").mkdir()
        engine.handle_event(RawEvent(project / "examples", EventKind.CREATED, is_directory=True))
        assert fake_observer.scheduled[str(project / "examples")] is True


@pytest.mark.asyncio
async def test_failed_watch_on_new_directory_stops_engine(engine_factory, project, fake_observer):
    async with engine_factory() as engine:
        (project / "docs").mkdir()
        fake_observer.fail_on.add(str(project / "docs"))
        engine.handle_event(RawEvent(project / "docs", EventKind.CREATED, is_directory=True))

        with pytest.raises(WatchError):
            await asyncio.wait_for(engine.run_forever(), timeout=5)


@pytest.mark.asyncio
async def test_dead_observer_stops_engine(watch_config, sink, fake_observer):
    engine = WatchEngine(
        watch_config, sink, observer_factory=lambda: fake_observer, health_check_interval=0.05
    )
    await engine.start()
    try:
        fake_observer.alive = False
        with pytest.raises(WatchError, match="stopped unexpectedly"):
            await asyncio.wait_for(engine.run_forever(), timeout=5)
    finally:
        await engine.shutdown()


@pytest.mark.asyncio
async def test_stop_returns_from_run_forever(engine_factory):
    async with engine_factory() as engine:
        asyncio.get_running_loop().call_later(0.05, engine.stop)
        await asyncio.wait_for(engine.run_forever(), timeout=5)


@pytest.mark.asyncio
async def test_missing_root_raises_on_start(engine_factory, project):
    engine = engine_factory(root=project / "missing")
    with pytest.raises(WatchError):
        await engine.start()


@pytest.mark.asyncio
async def test_events_after_shutdown_are_dropped(engine_factory, sink, project):
    engine = engine_factory()
    await engine.start()
    await engine.shutdown()

    engine.handle_event(modified(project / "src" / "main.rs"))
    await asyncio.sleep(0.15)
    assert sink.results == []


def test_malformed_ignore_pattern_rejected_before_watching(watch_config, fake_observer):
    config = dataclasses.replace(watch_config, ignore=["!keep.rs"])
    with pytest.raises(FilterError, match="negated"):
        WatchEngine(config, observer_factory=lambda: fake_observer)
    assert fake_observer.scheduled == {}


@pytest.mark.asyncio
async def test_real_filesystem_change_triggers_run(watch_config, sink):
    async with WatchEngine(watch_config, sink):
        await asyncio.sleep(0.1)
        (watch_config.root / "src" / "main.rs").write_text("fn main() { println!(); }\n")

        assert await wait_until(lambda: sink.results, timeout=10)
    assert sink.results[0].state == RunState.SUCCESS
    assert PurePosixPath("src/main.rs") in sink.results[0].changed_paths


class LateEventObserver(FakeObserver):
    """Delivers one more event from the observer thread while being stopped."""

    def __init__(self, late_path):
        super().__init__()
        self.late_path = late_path

    def stop(self):
        self.handler.dispatch(FileModifiedEvent(str(self.late_path)))
        time.sleep(0.005)
        super().stop()


@pytest.mark.asyncio
async def test_event_arriving_during_shutdown_is_dropped(watch_config, sink, project):
    observer = LateEventObserver(project / "src" / "main.rs")
    loop_errors = []
    loop = asyncio.get_running_loop()
    loop.set_exception_handler(lambda _loop, context: loop_errors.append(context))
    try:
        engine = WatchEngine(watch_config, sink, observer_factory=lambda: observer)
        await engine.start()
        await engine.shutdown()

        # Longer than the quiet period, so a re-armed timer would have fired
        await asyncio.sleep(watch_config.quiet_period * 4)
    finally:
        loop.set_exception_handler(None)

    assert loop_errors == []
    assert not engine.debouncer.pending
    assert engine.debouncer.generation == 0
    assert sink.results == []
