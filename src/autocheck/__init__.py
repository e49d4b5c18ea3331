__version__ = "0.1.0"

from .command_config import DEFAULT_PIPELINE, CommandSpec, WatchConfig
from .debouncer import Debouncer
from .engine import WatchEngine
from .exceptions import (
    AutocheckError,
    ConfigValidationError,
    CoordinatorShutdownError,
    FilterError,
    SpawnError,
    WatchError,
)
from .load_config import find_config, load_config
from .logging_config import TRACE, disable_logging, get_log_file_path, setup_logging
from .output_sink import OutputSink, TerminalSink
from .path_filter import DEFAULT_IGNORE_PATTERNS, IgnoreRule, PathFilter
from .pipeline_executor import PipelineExecutor
from .run_coordinator import RunCoordinator
from .run_handle import RunHandle
from .run_result import RunResult, RunState, format_duration
from .types import (
    CoordinatorState,
    CoordinatorStatus,
    EventKind,
    OutputChunk,
    RawEvent,
    Stream,
    Trigger,
)
from .watcher import PlannedWatch, ProjectWatcher, plan_watches, shallow_plan, translate_event

__all__ = [
    # Version
    "__version__",
    # Core Components
    "CommandSpec",
    "Debouncer",
    "PathFilter",
    "PipelineExecutor",
    "RunCoordinator",
    "RunHandle",
    "WatchConfig",
    "WatchEngine",
    "load_config",
    "find_config",
    "DEFAULT_PIPELINE",
    "DEFAULT_IGNORE_PATTERNS",
    "IgnoreRule",
    # Data types
    "CoordinatorState",
    "CoordinatorStatus",
    "EventKind",
    "OutputChunk",
    "RawEvent",
    "RunResult",
    "RunState",
    "Stream",
    "Trigger",
    # Output
    "OutputSink",
    "TerminalSink",
    # Watching
    "PlannedWatch",
    "ProjectWatcher",
    "plan_watches",
    "shallow_plan",
    "translate_event",
    # Utilities
    "format_duration",
    "setup_logging",
    "disable_logging",
    "get_log_file_path",
    "TRACE",
    # Exceptions
    "AutocheckError",
    "ConfigValidationError",
    "CoordinatorShutdownError",
    "FilterError",
    "SpawnError",
    "WatchError",
]
