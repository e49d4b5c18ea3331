# tests/test_run_result.py

import datetime
import time
from pathlib import Path

import pytest

from autocheck import RunResult, RunState
from autocheck.run_result import format_duration


def test_initial_state():
    r = RunResult(generation=1)
    assert r.state == RunState.PENDING
    assert r.success is None
    assert r.error is None
    assert r.start_time is None
    assert r.end_time is None
    assert r.history == []
    assert not r.is_finalized


def test_mark_running_sets_start_time_and_state():
    r = RunResult(generation=1)
    r.mark_running()
    assert r.state == RunState.RUNNING
    assert r.start_time is not None
    assert not r.is_finalized


def test_mark_success_transitions_state():
    r = RunResult(generation=2)
    r.mark_running()
    r.commands_started = 3
    r.mark_success()

    assert r.state == RunState.SUCCESS
    assert r.success is True
    assert r.is_finalized
    assert r.duration is not None
    assert r.describe().startswith("[2] all 3 commands passed")


def test_mark_failed_records_step():
    r = RunResult(generation=3)
    r.mark_running()
    r.mark_failed(1, "clippy", 101)

    assert r.state == RunState.FAILED
    assert r.success is False
    assert (r.failed_index, r.failed_label, r.exit_code) == (1, "clippy", 101)
    assert r.error == "Command exited with code 101"
    assert r.describe() == "[3] 'clippy' failed with exit code 101 (step 2)"


def test_mark_failed_with_exception():
    r = RunResult(generation=4)
    r.mark_failed(None, None, None, RuntimeError("sink broke"))
    assert r.describe() == "[4] failed: sink broke"
    assert r.to_dict()["error"] == "sink broke"


def test_mark_cancelled_sets_reason():
    r = RunResult(generation=5)
    r.mark_running()
    r.mark_cancelled("superseded by generation 6")

    assert r.state == RunState.CANCELLED
    assert r.success is None
    assert r.is_finalized
    assert r.describe() == "[5] cancelled: superseded by generation 6"


def test_mark_cancelled_default_reason():
    r = RunResult(generation=5)
    r.mark_cancelled()
    assert r.error == "Run was cancelled"
    assert r.duration == datetime.timedelta(0)


def test_mark_spawn_error():
    r = RunResult(generation=6)
    r.mark_running()
    r.mark_spawn_error(0, "cargo check", "Failed to launch 'cargo'")

    assert r.state == RunState.SPAWN_ERROR
    assert r.success is False
    assert r.failed_index == 0
    assert r.exit_code is None
    assert "spawn_error" in r.describe()


def test_duration_secs():
    r = RunResult(generation=1)
    r.mark_running()
    time.sleep(0.01)
    r.mark_success()

    assert r.duration_secs > 0
    assert r.duration_str.endswith("ms") or r.duration_str.endswith("s")


def test_repr_contains_key_fields():
    rep = repr(RunResult(generation=9))
    assert "RunResult" in rep
    assert "gen=9" in rep
    assert "state=pending" in rep


def test_to_dict():
    r = RunResult(generation=7, changed_paths=(Path("/p/src/main.rs"),))
    r.mark_running()
    r.commands_started = 1
    r.history.append("build")
    r.mark_success()

    d = r.to_dict()
    assert d["generation"] == 7
    assert d["changed_paths"] == [str(Path("/p/src/main.rs"))]
    assert d["state"] == "success"
    assert d["success"] is True
    assert d["history"] == ["build"]
    assert d["start_time"] is not None
    assert d["error"] is None


@pytest.mark.parametrize(
    "secs, expected",
    [
        (None, "—"),
        (0.452, "452ms"),
        (2.44, "2.4s"),
        (83, "1m 23s"),
        (7500, "2h 5m"),
    ],
)
def test_format_duration(secs, expected):
    assert format_duration(secs) == expected
