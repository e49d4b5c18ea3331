from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from .exceptions import ConfigValidationError

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Command specification
# ─────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class CommandSpec:
    """
    Immutable description of one pipeline step.
    Used both when loading from TOML and when passed programmatically.
    """

    executable: str
    """Program to launch (looked up on PATH when not a path)."""

    args: list[str] = field(default_factory=list)
    """Arguments passed to the executable, in order."""

    label: str = ""
    """Short name shown in output. Defaults to the joined argv."""

    cwd: str | Path | None = None
    """Optional working directory. None → the watch root."""

    env: dict[str, str] = field(default_factory=dict)
    """Environment variables to set for the command (merged with os.environ)."""

    def __post_init__(self) -> None:
        if not self.executable or not self.executable.strip():
            logger.warning("Invalid config: Command executable cannot be empty")
            raise ConfigValidationError("Command executable cannot be empty")
        if isinstance(self.args, str) or not all(isinstance(a, str) for a in self.args):
            logger.warning(f"Invalid config for '{self.executable}': args must be a list of strings")
            raise ConfigValidationError(
                f"Arguments for '{self.executable}' must be a list of strings"
            )
        if not all(isinstance(k, str) and isinstance(v, str) for k, v in self.env.items()):
            raise ConfigValidationError(f"Environment for '{self.executable}' must map str to str")
        if self.cwd is not None:
            try:
                Path(self.cwd).resolve()
            except OSError as e:
                logger.warning(f"Invalid config for '{self.executable}': Invalid cwd: {e}")
                raise ConfigValidationError(f"Invalid cwd for '{self.executable}': {e}") from None

        # Frozen dataclass, so the derived default has to go through object.__setattr__
        object.__setattr__(self, "args", list(self.args))
        if not self.label:
            object.__setattr__(self, "label", " ".join(self.argv))

    @property
    def argv(self) -> list[str]:
        return [self.executable, *self.args]


DEFAULT_PIPELINE: tuple[CommandSpec, ...] = (
    CommandSpec("cargo", ["check"]),
    CommandSpec("cargo", ["clippy"]),
    CommandSpec("cargo", ["test"]),
)
"""Pipeline used when no configuration file is given."""


# ─────────────────────────────────────────────────────────────────────────────
# Watch configuration
# ─────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class WatchConfig:
    """
    Top-level configuration object returned by load_config().
    Contains everything needed to instantiate a WatchEngine.
    """

    root: Path
    """Absolute path of the project directory to watch."""

    pipeline: list[CommandSpec] = field(default_factory=lambda: list(DEFAULT_PIPELINE))
    """Ordered pipeline definition. Immutable after load."""

    ignore: list[str] = field(default_factory=list)
    """Extra gitignore-style ignore patterns, relative to root."""

    default_ignores: bool = True
    """Whether the built-in noise rules (VCS dirs, swap files, /target/) apply."""

    debounce_ms: int = 300
    """Quiet period: a run starts once this long passes with no relevant change."""

    cancel_grace_period: float = 3.0
    """Seconds between the termination request and the forceful kill."""

    keep_history: int = 10
    """
    How many finished RunResults the coordinator keeps.
    0 = none (the latest result is still reported by status())
    """

    def __post_init__(self) -> None:
        root = Path(self.root)
        if not root.is_absolute():
            logger.warning(f"Invalid config: root must be absolute, got {root}")
            raise ConfigValidationError(f"Watch root must be an absolute path, got '{root}'")
        object.__setattr__(self, "root", root)
        object.__setattr__(self, "pipeline", list(self.pipeline))
        object.__setattr__(self, "ignore", list(self.ignore))

        if not self.pipeline:
            raise ConfigValidationError("At least one command is required")
        if self.debounce_ms < 0:
            logger.warning("Invalid config: debounce_ms cannot be negative")
            raise ConfigValidationError("debounce_ms cannot be negative")
        if self.cancel_grace_period <= 0:
            logger.warning("Invalid config: cancel_grace_period must be positive")
            raise ConfigValidationError("cancel_grace_period must be positive")
        if self.keep_history < 0:
            raise ConfigValidationError("keep_history cannot be negative")

    @property
    def quiet_period(self) -> float:
        """Debounce window in seconds."""
        return self.debounce_ms / 1000
