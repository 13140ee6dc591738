"""One-call spawn + communicate."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from .communicate import CommunicateResult, StdinSource, communicate
from .process import spawn

__all__ = ["execute"]

logger = logging.getLogger(__name__)


async def execute(
    command: str | Sequence[str],
    *,
    stdin: StdinSource | None = None,
    stdout: Any = "pipe",
    stderr: Any = "pipe",
    **options: Any,
) -> CommunicateResult:
    """Shorthand for ``communicate(spawn(command, ...), stdin)``.

    The child's stdin is piped only when ``stdin`` is given; otherwise it is
    connected to the null device, so the child sees end-of-file at once
    instead of waiting on an inherited terminal.

    Example:
        result = await execute("echo Hello")
        assert result.stdout == "Hello"

    Args:
        command: Argument vector or shell command line
        stdin: Input for the child (bytes, str, stream, iterable or file)
        stdout: stdout slot, "pipe" to capture (None also means "pipe")
        stderr: stderr slot, "pipe" to capture (None also means "pipe")
        **options: Further SpawnOptions fields

    Returns:
        CommunicateResult

    Raises:
        ProcessStatusError: The exit/signal policy failed
        StreamError: I/O on the child's streams failed
        OSError: The executable could not be started
    """
    stdin_slot = "pipe" if stdin is not None else "ignore"
    logger.debug(f"execute: command={command!r} stdin={stdin_slot}")
    async with spawn(
        command,
        stdin=stdin_slot,
        stdout="pipe" if stdout is None else stdout,
        stderr="pipe" if stderr is None else stderr,
        **options,
    ) as child:
        return await communicate(child, stdin)
