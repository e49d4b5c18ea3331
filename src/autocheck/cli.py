# autocheck/cli.py
"""
Command line entry point.

    autocheck [options] [-vvvv] [PROJECT_DIR]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from dataclasses import replace
from pathlib import Path

from . import __version__
from .command_config import WatchConfig
from .engine import WatchEngine
from .exceptions import ConfigValidationError, WatchError
from .load_config import CONFIG_FILENAME, find_config, load_config
from .logging_config import setup_logging, verbosity_to_level

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_WATCH_ERROR = 1
EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autocheck",
        description="Re-run build/check/test commands whenever project files change.",
    )
    parser.add_argument(
        "project_dir",
        nargs="?",
        help="Directory to watch (default: current directory)",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        help=f"Pipeline config file (default: PROJECT_DIR/{CONFIG_FILENAME} when present)",
    )
    parser.add_argument(
        "--delay",
        type=int,
        metavar="MS",
        help="Quiet period in milliseconds before triggering (default: 300)",
    )
    parser.add_argument(
        "--ignore",
        action="append",
        default=[],
        metavar="PATTERN",
        help="Extra gitignore-style pattern to ignore (repeatable)",
    )
    parser.add_argument(
        "--no-default-ignores",
        action="store_true",
        help="Do not ignore VCS directories, editor swap files and /target/",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        help="Also write log output to this file",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase the verbosity level, default is only errors",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def resolve_config(args: argparse.Namespace) -> WatchConfig:
    """
    Build the WatchConfig from the config file (if any) and CLI overrides.

    Raises:
        ConfigValidationError: On a bad config file or option
    """
    project_dir = Path(args.project_dir or ".")
    if not project_dir.is_absolute():
        project_dir = Path.cwd() / project_dir
    project_dir = project_dir.resolve()

    config_path = args.config or find_config(project_dir)
    if config_path is not None:
        logger.debug(f"Using config file {config_path}")
        # An explicit --config may pick its own root unless a directory was named too
        keep_file_root = args.config is not None and args.project_dir is None
        config = load_config(config_path, root=None if keep_file_root else project_dir)
    else:
        config = WatchConfig(root=project_dir)

    overrides: dict = {}
    if args.delay is not None:
        overrides["debounce_ms"] = args.delay
    if args.ignore:
        overrides["ignore"] = [*config.ignore, *args.ignore]
    if args.no_default_ignores:
        overrides["default_ignores"] = False
    return replace(config, **overrides) if overrides else config


async def _run(config: WatchConfig) -> None:
    async with WatchEngine(config) as engine:
        await engine.run_forever()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    setup_logging(
        verbosity_to_level(args.verbose),
        file=args.log_file if args.log_file else False,
    )

    try:
        config = resolve_config(args)
        asyncio.run(_run(config))
    except ConfigValidationError as e:
        logger.error(f"Configuration error: {e}")
        print(f"autocheck: {e}", file=sys.stderr)  # noqa: T201
        return EXIT_CONFIG_ERROR
    except WatchError as e:
        print(f"autocheck: {e}", file=sys.stderr)  # noqa: T201
        return EXIT_WATCH_ERROR
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping")
    return EXIT_OK
