# autocheck/logging_config.py
"""
Logging helpers for autocheck.

autocheck never configures logging on import. Applications (and the CLI)
opt in with setup_logging(); libraries embedding the engine can rely on
normal propagation to the root logger instead.
"""

from __future__ import annotations

import logging
from pathlib import Path

TRACE = 5
"""Level below DEBUG, used for per-event filter decisions."""

logging.addLevelName(TRACE, "TRACE")

PACKAGE_LOGGER = "autocheck"

_FORMATS = {
    "simple": "%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    "detailed": "%(asctime)s %(levelname)-7s %(name)s [%(filename)s:%(lineno)d]: %(message)s",
}

_DEFAULT_LOG_FILE = Path(".autocheck") / "autocheck.log"

# Handlers installed by setup_logging(), so repeated calls replace rather than stack
_installed_handlers: list[logging.Handler] = []
_log_file_path: Path | None = None


def verbosity_to_level(count: int) -> int:
    """
    Map a -v count to a logging level.

    0 → ERROR, 1 → WARNING, 2 → INFO, 3 → DEBUG, 4+ → TRACE
    """
    levels = [logging.ERROR, logging.WARNING, logging.INFO, logging.DEBUG]
    if count < len(levels):
        return levels[max(count, 0)]
    return TRACE


def setup_logging(
    level: int | str = "INFO",
    *,
    console: bool = True,
    file: bool | str | Path = False,
    format: str = "simple",
    format_string: str | None = None,
    propagate: bool = True,
) -> logging.Logger:
    """
    Configure the "autocheck" package logger.

    Args:
        level: Level name ("DEBUG", "TRACE", ...) or number
        console: Attach a StreamHandler writing to stderr
        file: True for the default log file, or an explicit path
        format: "simple" or "detailed" (ignored when format_string is given)
        format_string: Custom logging format string
        propagate: Whether records also reach the root logger

    Returns:
        The configured package logger
    """
    global _log_file_path

    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level!r}")
        level = resolved

    if format_string is None:
        if format not in _FORMATS:
            raise ValueError(f"Unknown log format {format!r}, expected one of {sorted(_FORMATS)}")
        format_string = _FORMATS[format]
    formatter = logging.Formatter(format_string)

    logger = logging.getLogger(PACKAGE_LOGGER)
    _remove_installed_handlers(logger)
    logger.setLevel(level)
    logger.propagate = propagate
    logger.disabled = False

    if console:
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
        _install(logger, handler)

    if file:
        path = _DEFAULT_LOG_FILE if file is True else Path(file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
        handler.setFormatter(formatter)
        _install(logger, handler)
        _log_file_path = path.resolve()
    else:
        _log_file_path = None

    return logger


def disable_logging() -> None:
    """Silence all autocheck logging (useful in tests and embedding)."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    _remove_installed_handlers(logger)
    _install(logger, logging.NullHandler())
    logger.propagate = False
    logger.disabled = True


def get_log_file_path() -> Path | None:
    """Path of the active log file, or None when file logging is off."""
    return _log_file_path


def _install(logger: logging.Logger, handler: logging.Handler) -> None:
    logger.addHandler(handler)
    _installed_handlers.append(handler)


def _remove_installed_handlers(logger: logging.Logger) -> None:
    for handler in _installed_handlers:
        logger.removeHandler(handler)
        handler.close()
    _installed_handlers.clear()
