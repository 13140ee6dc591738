"""Child process handle.

``spawn()`` starts one OS process and keeps exactly one watcher task on it.
The watcher records the termination status once, in a single assignment,
and then sets the exit event. Everything that reads the status afterwards
(``wait()``, ``communicate()``, bridges, callers) sees the same frozen
``ExitStatus`` no matter when it looks.
"""

from __future__ import annotations

import logging
import signal
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import anyio
from anyio.abc import ByteReceiveStream, ByteSendStream, Process

from .config import get_config
from .errors import unwrap_task_errors
from .options import SpawnOptions, resolve_options, stdio_target, to_argv

__all__ = [
    "ChildProcess",
    "ExitStatus",
    "signal_name",
    "spawn",
]

logger = logging.getLogger(__name__)


def signal_name(signum: int) -> str:
    """Return the symbolic name of a signal number ("SIGTERM")."""
    try:
        return signal.Signals(signum).name
    except ValueError:
        return f"SIG{signum}"


@dataclass(frozen=True, slots=True)
class ExitStatus:
    """Termination status of a child.

    Exactly one of the two fields is set.

    Attributes:
        exit_code: Exit code if the child exited normally
        signal_code: Signal name if a signal terminated the child
    """

    exit_code: int | None
    signal_code: str | None

    @classmethod
    def from_returncode(cls, returncode: int) -> ExitStatus:
        """Build the status from a return code (negative = killed by signal)."""
        if returncode < 0:
            return cls(exit_code=None, signal_code=signal_name(-returncode))
        return cls(exit_code=returncode, signal_code=None)


class ChildProcess:
    """One spawned child process.

    Created by ``spawn()``. The status fields (``exit_code``, ``signal_code``,
    ``is_alive``) are derived from a single private slot written only by the
    exit watcher, so they always change together.

    Attributes:
        command: Argument vector used to spawn the child
        options: Resolved spawn options
        pid: Process ID (kept after termination)
        stdin: Byte stream to the child's stdin, None if not piped
        stdout: Byte stream from the child's stdout, None if not piped
        stderr: Byte stream from the child's stderr, None if not piped
    """

    def __init__(
        self,
        command: Sequence[str],
        options: SpawnOptions,
        process: Process,
    ) -> None:
        self.command: tuple[str, ...] = tuple(command)
        self.options = options
        self.pid: int = process.pid
        self.stdin: ByteSendStream | None = process.stdin
        self.stdout: ByteReceiveStream | None = process.stdout
        self.stderr: ByteReceiveStream | None = process.stderr
        self._process = process
        self._status: ExitStatus | None = None
        self._exited = anyio.Event()

    @property
    def status(self) -> ExitStatus | None:
        """Frozen termination status, None while the child is alive."""
        return self._status

    @property
    def exit_code(self) -> int | None:
        return None if self._status is None else self._status.exit_code

    @property
    def signal_code(self) -> str | None:
        return None if self._status is None else self._status.signal_code

    @property
    def is_alive(self) -> bool:
        """True until the termination status has been recorded."""
        return self._status is None

    async def exited(self) -> ExitStatus:
        """Wait for the exit event and return the status, without policy checks."""
        if self._status is None:
            await self._exited.wait()
        assert self._status is not None
        return self._status

    def send_signal(self, sig: int) -> None:
        """Send a signal to the child. Does nothing once it has terminated."""
        if self._status is None:
            self._process.send_signal(sig)

    def terminate(self) -> None:
        self.send_signal(signal.SIGTERM)

    def kill(self) -> None:
        self.send_signal(signal.SIGKILL)

    async def _watch_exit(self) -> None:
        returncode = await self._process.wait()
        self._record_exit(ExitStatus.from_returncode(returncode))

    def _record_exit(self, status: ExitStatus) -> None:
        if self._status is not None:
            raise RuntimeError(f"Exit status of pid={self.pid} already recorded")
        self._status = status
        self._exited.set()
        logger.debug(
            f"Subprocess exited pid={self.pid} argv={self.command[0]} "
            f"exit_code={status.exit_code} signal_code={status.signal_code}"
        )

    async def _close_pipes(self) -> None:
        # stdin first, so a child blocked on input can finish
        for stream in (self.stdin, self.stdout, self.stderr):
            if stream is not None:
                try:
                    await stream.aclose()
                except (OSError, anyio.BrokenResourceError) as e:
                    logger.debug(f"Error closing pipe of pid={self.pid}: {e}")

    def __repr__(self) -> str:
        if self._status is None:
            state = "alive"
        elif self._status.signal_code is not None:
            state = f"signal={self._status.signal_code}"
        else:
            state = f"exit_code={self._status.exit_code}"
        return f"ChildProcess(pid={self.pid}, argv={self.command[0]}, {state})"


@asynccontextmanager
async def spawn(command: str | Sequence[str], **options: Any) -> AsyncIterator[ChildProcess]:
    """Spawn a child process.

    The executable is ``command[0]``, the rest of the sequence are its
    arguments, passed verbatim. A single string is run by the configured
    shell (``/bin/sh -c <command>``).

    Leaving the context closes the parent's ends of the pipes and waits for
    the child to terminate. This layer never kills the child itself; a caller
    that needs a deadline wraps the block in ``anyio.fail_after()`` (on
    cancellation the spawn primitive kills the child before re-raising).

    Example:
        async with spawn(["cat", "/etc/fstab"]) as child:
            result = await communicate(child)

    Args:
        command: Argument vector or shell command line
        **options: SpawnOptions fields overriding the configured defaults

    Yields:
        The running ChildProcess

    Raises:
        ValueError: Empty command
        pydantic.ValidationError: Invalid options
        OSError: The OS failed to start the executable
    """
    resolved = resolve_options(**options)
    argv = to_argv(command, get_config().shell)

    process = await anyio.open_process(
        argv,
        stdin=stdio_target(resolved.stdin),
        stdout=stdio_target(resolved.stdout),
        stderr=stdio_target(resolved.stderr),
        cwd=resolved.cwd,
        env=resolved.env,
        start_new_session=resolved.start_new_session,
        pass_fds=resolved.pass_fds,
    )
    child = ChildProcess(argv, resolved, process)
    logger.debug(f"Started subprocess pid={child.pid} argv={argv[0]}")

    async with process:
        with unwrap_task_errors():
            async with anyio.create_task_group() as tg:
                tg.start_soon(child._watch_exit, name=f"exit-watcher-{child.pid}")
                try:
                    yield child
                finally:
                    with anyio.CancelScope(shield=True):
                        await child._close_pipes()
