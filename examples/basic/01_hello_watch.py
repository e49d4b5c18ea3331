"""
01_hello_watch.py - Minimal autocheck example

This is the simplest possible autocheck example. It demonstrates:
- Building a WatchConfig with a one-step pipeline
- Starting a WatchEngine on a scratch directory
- Seeing a single run for a burst of file writes

Try it:
    python examples/basic/01_hello_watch.py
"""
# ruff: noqa: T201

import asyncio
import sys
import tempfile
from pathlib import Path

from autocheck import CommandSpec, WatchConfig, WatchEngine


async def main():
    """Watch a temp directory and run a 'hello' step when it changes."""

    with tempfile.TemporaryDirectory() as tmp:
        project = Path(tmp).resolve()

        # Step 1: One pipeline step, run with this interpreter so it works anywhere
        config = WatchConfig(
            root=project,
            pipeline=[CommandSpec(sys.executable, ["-c", "print('Hello from autocheck!')"], label="hello")],
            debounce_ms=200,
        )

        # Step 2: Print every finished run
        finished = asyncio.Event()

        def on_run_finished(result):
            print(f"Run finished: {result.describe()}")
            finished.set()

        # Step 3: Start watching, then write three files in quick succession
        async with WatchEngine(config, on_run_finished=on_run_finished):
            for name in ("a.txt", "b.txt", "c.txt"):
                (project / name).write_text("change\n")
                await asyncio.sleep(0.02)

            # The three writes settle into one trigger
            await asyncio.wait_for(finished.wait(), timeout=10)


if __name__ == "__main__":
    asyncio.run(main())
