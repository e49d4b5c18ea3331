# autocheck/exceptions.py
"""
Custom exception hierarchy for autocheck.

All autocheck-specific exceptions inherit from AutocheckError to enable
catch-all error handling while still providing specific exception types
for different error conditions.
"""

from __future__ import annotations


class AutocheckError(Exception):
    """
    Base exception for all autocheck errors.

    Catch this to handle any autocheck-specific error.
    """

    pass


class ConfigValidationError(AutocheckError):
    """
    Raised when configuration validation fails.

    This is raised during CommandSpec/WatchConfig.__post_init__ and by
    load_config() when the TOML document is malformed.

    Example:
        >>> CommandSpec(executable="")
        ConfigValidationError: Command executable cannot be empty
    """

    pass


class FilterError(ConfigValidationError):
    """
    Raised when an ignore pattern cannot be compiled.

    Surfaced once when the PathFilter is built and fatal to startup.

    Attributes:
        pattern: The offending pattern
        reason: Why it was rejected
    """

    def __init__(self, pattern: str, reason: str):
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"Invalid ignore pattern {pattern!r}: {reason}")


class SpawnError(AutocheckError):
    """
    Raised by the PipelineExecutor when a command's executable cannot be launched.

    This never escapes a run: it is converted into the SPAWN_ERROR outcome
    for that generation and the watcher keeps going.

    Attributes:
        executable: The executable that failed to start
        cause: The underlying OSError
    """

    def __init__(self, executable: str, cause: OSError):
        self.executable = executable
        self.cause = cause
        super().__init__(f"Failed to launch '{executable}': {cause.strerror or cause}")


class WatchError(AutocheckError):
    """
    Raised when the filesystem notification facility fails.

    There is no polling fallback, so this is fatal to the whole process.
    """

    pass


class CoordinatorShutdownError(AutocheckError):
    """Raised when a Trigger is submitted to a RunCoordinator that has shut down."""

    pass
