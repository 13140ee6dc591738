"""Spawn option resolution.

Options are resolved once per spawn: the defaults from ``Config`` are
overlaid by the caller's keyword arguments and validated into a frozen
``SpawnOptions`` snapshot. Nothing mutates the snapshot afterwards.
"""

from __future__ import annotations

import codecs
import os
import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import get_config

__all__ = [
    "SpawnOptions",
    "StdioSlot",
    "resolve_options",
    "stdio_target",
    "to_argv",
]

StdioSlot = Literal["pipe", "ignore", "inherit"]

# Named stdio slots and what the spawn primitive expects for them
_STDIO_NAMES: dict[str, int | None] = {
    "pipe": subprocess.PIPE,
    "ignore": subprocess.DEVNULL,
    "inherit": None,
}

# subprocess.PIPE / STDOUT / DEVNULL
_STDIO_CONSTANTS = frozenset({subprocess.PIPE, subprocess.STDOUT, subprocess.DEVNULL})


class SpawnOptions(BaseModel):
    """Resolved options of one spawned child.

    Attributes:
        check_exit_code: Raise ProcessStatusError on a non-zero exit code
        check_signal_code: Raise ProcessStatusError when a signal killed the child
        encoding: Codec for stdout/stderr, None returns raw bytes
        trim_output: Strip whitespace around decoded stdout/stderr
        stdin: Slot for the child's stdin ("pipe", "ignore", "inherit",
            a file descriptor or a file object)
        stdout: Slot for the child's stdout
        stderr: Slot for the child's stderr
        cwd: Working directory of the child (None = inherit)
        env: Environment of the child (None = inherit)
        start_new_session: Run the child in a new session
        pass_fds: File descriptors kept open in the child
    """

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        arbitrary_types_allowed=True,
    )

    check_exit_code: bool = True
    check_signal_code: bool = True
    encoding: str | None = "utf-8"
    trim_output: bool = True
    stdin: Any = "pipe"
    stdout: Any = "pipe"
    stderr: Any = "pipe"
    cwd: str | Path | None = None
    env: dict[str, str] | None = None
    start_new_session: bool = False
    pass_fds: tuple[int, ...] = Field(default_factory=tuple)

    @field_validator("encoding")
    @classmethod
    def _known_encoding(cls, value: str | None) -> str | None:
        if value is None:
            return None
        try:
            codecs.lookup(value)
        except LookupError as e:
            raise ValueError(f"unknown encoding: {value!r}") from e
        return value

    @field_validator("stdin", "stdout", "stderr")
    @classmethod
    def _valid_stdio(cls, value: Any) -> Any:
        if isinstance(value, str):
            if value not in _STDIO_NAMES:
                raise ValueError(
                    f"stdio slot must be one of {sorted(_STDIO_NAMES)}, got {value!r}"
                )
            return value
        if isinstance(value, bool):
            raise ValueError("stdio slot cannot be a boolean")
        if isinstance(value, int):
            if value < 0 and value not in _STDIO_CONSTANTS:
                raise ValueError(f"invalid file descriptor: {value}")
            return value
        if callable(getattr(value, "fileno", None)):
            return value
        raise ValueError(f"unsupported stdio slot: {value!r}")


def _default_fields() -> dict[str, Any]:
    config = get_config()
    return {
        "check_exit_code": config.check_exit_code,
        "check_signal_code": config.check_signal_code,
        "encoding": config.encoding,
        "trim_output": config.trim_output,
    }


def resolve_options(**overrides: Any) -> SpawnOptions:
    """Overlay caller options on the configured defaults.

    Args:
        **overrides: Any SpawnOptions field

    Returns:
        Frozen SpawnOptions snapshot

    Raises:
        pydantic.ValidationError: Unknown option or invalid value
    """
    return SpawnOptions.model_validate({**_default_fields(), **overrides})


def stdio_target(slot: Any) -> Any:
    """Translate a stdio slot to what ``anyio.open_process`` accepts."""
    if isinstance(slot, str):
        return _STDIO_NAMES[slot]
    return slot


def to_argv(command: str | Sequence[str], shell: str | None = None) -> list[str]:
    """Build the argument vector for a command.

    A sequence is used verbatim, no shell ever sees it. A single string is a
    shell command line run as ``<shell> -c <command>``.

    Args:
        command: Argument vector or shell command line
        shell: Shell for string commands (default from config)

    Returns:
        Argument vector, the executable first

    Raises:
        ValueError: The command is empty
    """
    if isinstance(command, str):
        if not command.strip():
            raise ValueError("Cannot spawn process: command is empty.")
        return [shell or get_config().shell, "-c", command]

    argv = [os.fspath(arg) for arg in command]
    if not argv:
        raise ValueError("Cannot spawn process: command is empty.")
    return argv
