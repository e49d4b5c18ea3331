# tests/test_debouncer.py
import asyncio
from pathlib import Path, PurePosixPath

import pytest

from autocheck.debouncer import Debouncer
from autocheck.types import EventKind, RawEvent

QUIET = 0.1


def modified(name):
    return RawEvent(Path("/project") / name, EventKind.MODIFIED)


@pytest.fixture
def triggers():
    return []


@pytest.mark.asyncio
async def test_burst_within_window_emits_exactly_one_trigger(triggers):
    debouncer = Debouncer(QUIET, triggers.append)

    # Editor save: truncate, write, rename-swap, ~10ms apart
    for name in ["main.rs", "main.rs", ".main.rs.tmp", "main.rs"]:
        debouncer.push(modified(name))
        await asyncio.sleep(0.01)

    await asyncio.sleep(QUIET * 3)

    assert len(triggers) == 1
    assert triggers[0].generation == 1
    assert triggers[0].paths == (Path("/project/.main.rs.tmp"), Path("/project/main.rs"))
    assert not debouncer.pending


@pytest.mark.asyncio
async def test_separated_clusters_emit_one_trigger_each(triggers):
    debouncer = Debouncer(QUIET, triggers.append)

    for cluster in range(3):
        for _ in range(3):
            debouncer.push(modified(f"file{cluster}.rs"))
            await asyncio.sleep(0.01)
        await asyncio.sleep(QUIET * 3)

    assert [t.generation for t in triggers] == [1, 2, 3]
    assert [t.paths for t in triggers] == [
        (Path("/project/file0.rs"),),
        (Path("/project/file1.rs"),),
        (Path("/project/file2.rs"),),
    ]
    assert debouncer.generation == 3


@pytest.mark.asyncio
async def test_new_event_restarts_quiet_period(triggers):
    debouncer = Debouncer(QUIET, triggers.append)

    debouncer.push(modified("a.rs"))
    await asyncio.sleep(QUIET * 0.7)
    debouncer.push(modified("b.rs"))
    await asyncio.sleep(QUIET * 0.7)

    # 1.4 quiet periods since the first event, but only 0.7 since the last
    assert triggers == []
    assert debouncer.pending

    await asyncio.sleep(QUIET * 2)
    assert len(triggers) == 1
    assert triggers[0].paths == (Path("/project/a.rs"), Path("/project/b.rs"))


@pytest.mark.asyncio
async def test_trigger_timestamp_is_monotonic_and_after_events(triggers):
    debouncer = Debouncer(QUIET, triggers.append)
    event = modified("x.rs")
    debouncer.push(event)
    await asyncio.sleep(QUIET * 3)

    assert triggers[0].settled_at >= event.timestamp + QUIET * 0.9


@pytest.mark.asyncio
async def test_cancel_drops_pending_trigger(triggers):
    debouncer = Debouncer(QUIET, triggers.append)
    debouncer.push(modified("a.rs"))
    debouncer.cancel()
    await asyncio.sleep(QUIET * 3)

    assert triggers == []
    assert debouncer.generation == 0

    # Accumulated paths were dropped too
    debouncer.push(modified("b.rs"))
    await asyncio.sleep(QUIET * 3)
    assert triggers[0].paths == (Path("/project/b.rs"),)
    assert triggers[0].generation == 1


@pytest.mark.asyncio
async def test_zero_quiet_period_fires_on_next_iteration(triggers):
    debouncer = Debouncer(0, triggers.append)
    debouncer.push(modified("a.rs"))
    debouncer.push(modified("b.rs"))
    assert triggers == []
    await asyncio.sleep(0.01)
    assert len(triggers) == 1


@pytest.mark.asyncio
async def test_negative_quiet_period_rejected():
    with pytest.raises(ValueError):
        Debouncer(-1, lambda t: None)


@pytest.mark.asyncio
async def test_trigger_reports_given_relative_paths(triggers):
    debouncer = Debouncer(QUIET, triggers.append)
    debouncer.push(modified("src/lib.rs"), PurePosixPath("src/lib.rs"))
    debouncer.push(modified("src/lib.rs"), PurePosixPath("src/lib.rs"))
    debouncer.push(modified("Cargo.toml"), PurePosixPath("Cargo.toml"))

    await asyncio.sleep(QUIET * 3)

    assert triggers[0].paths == (PurePosixPath("Cargo.toml"), PurePosixPath("src/lib.rs"))
