"""spawnkit exception classes.

spawnkit errors v0.1.0
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

import anyio

if TYPE_CHECKING:
    from .process import ChildProcess

__all__ = [
    "SpawnKitError",
    "ProcessStatusError",
    "BridgeConfigurationError",
    "StreamError",
    "unwrap_task_errors",
    "BROKEN_PIPE_ERRORS",
    "STREAM_ERRORS",
]

# Raised when the child closed its end of a pipe we write to
BROKEN_PIPE_ERRORS = (
    anyio.BrokenResourceError,
    BrokenPipeError,
    ConnectionResetError,
)

# Any I/O failure on a child stream
STREAM_ERRORS = (
    OSError,
    anyio.BrokenResourceError,
    anyio.ClosedResourceError,
)


class SpawnKitError(Exception):
    """Base exception for spawnkit."""
    pass


class ProcessStatusError(SpawnKitError):
    """A terminated child violated the exit code / signal code policy.

    Raised by ``wait()``, ``communicate()`` and ``execute()`` when:
    - the exit code is not zero and ``check_exit_code`` is set, or
    - a signal terminated the child and ``check_signal_code`` is set

    Attributes:
        child: The terminated ChildProcess
        exit_code: Exit code of the child (None if signaled)
        signal_code: Signal name of the child (None if exited normally)
        stdout: Output collected before the failure was reported, if any
        stderr: Error output collected before the failure was reported, if any
    """

    def __init__(
        self,
        child: ChildProcess,
        stdout: str | bytes | None = None,
        stderr: str | bytes | None = None,
    ) -> None:
        self.child = child
        self.exit_code = child.exit_code
        self.signal_code = child.signal_code
        self.stdout = stdout
        self.stderr = stderr
        name = child.command[0]
        if self.exit_code:
            message = f"Command {name} failed with exit code {self.exit_code}"
        elif self.signal_code:
            message = f"Command {name} failed with signal {self.signal_code}"
        else:
            message = f"Command {name} failed"
        super().__init__(message)


class BridgeConfigurationError(SpawnKitError):
    """A child cannot be bridged because a required stdio slot is not piped."""
    pass


class StreamError(SpawnKitError):
    """I/O failure while writing to or reading from a child's standard streams.

    The underlying OSError or anyio resource error is kept as ``__cause__``.
    """
    pass


@contextmanager
def unwrap_task_errors() -> Iterator[None]:
    """Re-raise the sole error of a task group as itself.

    anyio task groups always raise an ExceptionGroup. When exactly one task
    failed, callers expect that task's exception (ProcessStatusError,
    StreamError, ...) rather than a group wrapping it. A bridge error seen by
    both of its sides counts once.
    """
    try:
        yield
    except BaseExceptionGroup as group:
        unique = list({id(e): e for e in group.exceptions}.values())
        if len(unique) == 1:
            raise unique[0] from None
        raise
