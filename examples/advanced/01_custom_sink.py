"""
01_custom_sink.py - Writing your own OutputSink

This example demonstrates:
- Implementing the OutputSink protocol
- Prefixing each output line with the step label
- Watching a slow run get superseded by a newer change

Try it:
    python examples/advanced/01_custom_sink.py
"""
# ruff: noqa: T201

import asyncio
import sys
import tempfile
from pathlib import Path

from autocheck import CommandSpec, RunState, WatchConfig, WatchEngine


class PrefixSink:
    """Prints '[generation:label] line' for every line of output."""

    def __init__(self):
        self.finished = []
        self.done = asyncio.Event()

    def command_started(self, generation, index, spec):
        print(f"[{generation}] → step {index + 1}: {spec.label}")

    def write(self, chunk):
        for line in chunk.data.decode(errors="replace").splitlines():
            print(f"[{chunk.generation}:{chunk.label}] {line}")

    def run_finished(self, result):
        print(result.describe())
        self.finished.append(result)
        if result.state is not RunState.CANCELLED:
            self.done.set()


SLOW_TEST = "import time\nfor i in range(5):\n    print(f'test {i}', flush=True)\n    time.sleep(0.5)\n"


async def main():
    with tempfile.TemporaryDirectory() as tmp:
        project = Path(tmp).resolve()
        config = WatchConfig(
            root=project,
            pipeline=[
                CommandSpec(sys.executable, ["-c", "print('built')"], label="build"),
                CommandSpec(sys.executable, ["-c", SLOW_TEST], label="test"),
            ],
            debounce_ms=100,
            cancel_grace_period=1.0,
        )
        sink = PrefixSink()

        async with WatchEngine(config, sink):
            # First change starts generation 1
            (project / "lib.py").write_text("x = 1\n")
            await asyncio.sleep(1.0)

            # Second change arrives mid-test: generation 1 is cancelled, 2 runs
            (project / "lib.py").write_text("x = 2\n")
            await asyncio.wait_for(sink.done.wait(), timeout=20)

        print("\nOutcomes:", [(r.generation, r.state.value) for r in sink.finished])


if __name__ == "__main__":
    asyncio.run(main())
