from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, BinaryIO

try:
    import tomllib as tomli  # Python 3.11+
except ImportError:
    import tomli  # <3.11

from .command_config import CommandSpec, WatchConfig
from .exceptions import ConfigValidationError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "autocheck.toml"

_WATCH_KEYS = {"root", "debounce_ms", "ignore", "default_ignores", "cancel_grace_period", "keep_history"}
_COMMAND_KEYS = {"executable", "args", "label", "cwd", "env"}


# =====================================================================
#   Main loader
# =====================================================================
def load_config(path: str | Path | BinaryIO, *, root: str | Path | None = None) -> WatchConfig:
    """
    Load and validate a TOML config file into a WatchConfig.

    Relative `root` and `cwd` paths are resolved relative to the config file
    location (or the current directory when reading from a file object).
    An explicit `root` argument wins over `[watch].root`.
    """
    config_path: Path | None = None
    try:
        if not hasattr(path, "read"):
            config_path = Path(path).resolve()
            with open(config_path, "rb") as f:
                data = tomli.load(f)
        else:
            data = tomli.load(path)  # type: ignore
    except OSError as e:
        raise ConfigValidationError(f"Cannot read config file {path}: {e}") from None
    except tomli.TOMLDecodeError as e:
        raise ConfigValidationError(f"Invalid TOML in {config_path or '<stream>'}: {e}") from None

    # Resolve base directory for relative paths
    base_dir = config_path.parent if config_path else Path.cwd()

    # ────── Parse [watch] section ──────
    watch = data.get("watch", {})
    if not isinstance(watch, dict):
        raise ConfigValidationError("[watch] must be a table")
    watch = watch.copy()
    _reject_unknown_keys("[watch]", watch, _WATCH_KEYS)

    if root is not None:
        watch["root"] = Path(root)
    watch["root"] = _resolve(base_dir, watch.get("root", "."))

    ignore = watch.get("ignore", [])
    if not isinstance(ignore, list) or not all(isinstance(p, str) for p in ignore):
        raise ConfigValidationError("[watch].ignore must be an array of strings")

    # ────── Parse [[command]] tables ──────
    command_data = data.get("command", [])
    if not isinstance(command_data, list):
        raise ConfigValidationError("[[command]] must be an array of tables")

    pipeline = [_parse_command(cmd_dict, base_dir) for cmd_dict in command_data]
    if not pipeline:
        raise ConfigValidationError("At least one [[command]] is required")

    try:
        config = WatchConfig(pipeline=pipeline, **watch)
    except TypeError as e:
        raise ConfigValidationError(f"Invalid config in [watch]: {e}") from None

    logger.debug(
        f"Loaded config: root={config.root}, {len(config.pipeline)} commands, "
        f"{len(config.ignore)} ignore patterns, debounce={config.debounce_ms}ms"
    )
    return config


def find_config(project_dir: str | Path) -> Path | None:
    """Return the project's autocheck.toml if it exists."""
    candidate = Path(project_dir) / CONFIG_FILENAME
    return candidate if candidate.is_file() else None


# =====================================================================
#   Helpers
# =====================================================================
def _parse_command(cmd_dict: Any, base_dir: Path) -> CommandSpec:
    if not isinstance(cmd_dict, dict):
        raise ConfigValidationError("Each [[command]] entry must be a table")
    cmd_dict = cmd_dict.copy()
    _reject_unknown_keys("[[command]]", cmd_dict, _COMMAND_KEYS)

    if "executable" not in cmd_dict:
        raise ConfigValidationError(
            f"Command '{cmd_dict.get('label', '<unknown>')}' is missing 'executable'"
        )

    # Resolve relative cwd
    if cmd_dict.get("cwd") is not None:
        cmd_dict["cwd"] = str(_resolve(base_dir, cmd_dict["cwd"]))

    try:
        return CommandSpec(**cmd_dict)
    except (TypeError, AttributeError) as e:
        raise ConfigValidationError(f"Invalid config in [[command]]: {e}") from None


def _resolve(base_dir: Path, value: str | Path) -> Path:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return path.resolve()


def _reject_unknown_keys(section: str, table: dict, allowed: set[str]) -> None:
    unknown = set(table) - allowed
    if unknown:
        raise ConfigValidationError(
            f"Unknown keys in {section}: {sorted(unknown)}. Allowed: {sorted(allowed)}"
        )
