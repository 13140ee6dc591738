"""spawnkit - child processes with async communicate, execute and pipelines.

Environment variables:
    SPAWNKIT_CHECK_EXIT_CODE: Fail on non-zero exit codes (default true)
    SPAWNKIT_CHECK_SIGNAL_CODE: Fail on termination by signal (default true)
    SPAWNKIT_ENCODING: Output codec, "raw" for bytes (default utf-8)
    SPAWNKIT_TRIM_OUTPUT: Strip decoded output (default true)

Usage:
    result = await execute(["ls", "-l"])
    print(result.stdout)
"""

__version__ = "0.1.0"

from .bridge import ProcessBridge, make_pipe, pipeline
from .communicate import CommunicateResult, byte_source, communicate
from .errors import (
    BridgeConfigurationError,
    ProcessStatusError,
    SpawnKitError,
    StreamError,
)
from .execute import execute
from .options import SpawnOptions, resolve_options
from .process import ChildProcess, ExitStatus, spawn
from .status import check_status, wait

__all__ = [
    "__version__",
    "BridgeConfigurationError",
    "ChildProcess",
    "CommunicateResult",
    "ExitStatus",
    "ProcessBridge",
    "ProcessStatusError",
    "SpawnKitError",
    "SpawnOptions",
    "StreamError",
    "byte_source",
    "check_status",
    "communicate",
    "execute",
    "make_pipe",
    "pipeline",
    "resolve_options",
    "spawn",
    "wait",
]
