"""
02_logging_setup.py - Configuring autocheck's logging

autocheck logs under the "autocheck" logger and never configures logging
on import. This example demonstrates:
- setup_logging() with console and file handlers
- The TRACE level, which reports every ignored path
- disable_logging() for silent embedding

Try it:
    python examples/advanced/02_logging_setup.py
"""
# ruff: noqa: T201

import tempfile
from pathlib import Path

from autocheck import TRACE, PathFilter, RawEvent, disable_logging, get_log_file_path, setup_logging
from autocheck.types import EventKind


def main():
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        path_filter = PathFilter(root, ["*.log"])

        # Step 1: Verbose console plus a log file
        setup_logging(TRACE, file=root / "autocheck.log", format="detailed")
        print(f"Logging to {get_log_file_path()}")

        for name in ("src/main.rs", "target/debug/build.log", ".git/index", "notes.log"):
            event = RawEvent(root / name, EventKind.MODIFIED)
            print(f"{name:28} relevant={path_filter.is_relevant(event)}")

        # Step 2: Silence everything
        disable_logging()
        path_filter.is_relevant(RawEvent(root / ".git" / "HEAD", EventKind.MODIFIED))
        print("(nothing logged for .git/HEAD)")


if __name__ == "__main__":
    main()
