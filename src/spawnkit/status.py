"""Termination status waiting and policy checks."""

from __future__ import annotations

import logging

from .errors import ProcessStatusError
from .process import ChildProcess, ExitStatus

__all__ = ["check_status", "violates_policy", "wait"]

logger = logging.getLogger(__name__)


def violates_policy(child: ChildProcess) -> bool:
    """Whether the recorded status fails the child's exit/signal policy."""
    options = child.options
    return bool(
        (child.exit_code and options.check_exit_code)
        or (child.signal_code and options.check_signal_code)
    )


def check_status(
    child: ChildProcess,
    *,
    stdout: str | bytes | None = None,
    stderr: str | bytes | None = None,
) -> None:
    """Raise ProcessStatusError if the terminated child violates its policy.

    A child that is still alive never fails the check.
    """
    if violates_policy(child):
        raise ProcessStatusError(child, stdout=stdout, stderr=stderr)


async def wait(child: ChildProcess, check: bool = True) -> ExitStatus:
    """Wait for the child to terminate and return its status.

    Safe to call any number of times, concurrently or sequentially, before or
    after the child exited: a terminated child answers immediately from its
    frozen status, a running one suspends until the exit event.

    Args:
        child: The child to wait for
        check: Apply the exit/signal policy of the child

    Returns:
        ExitStatus with exactly one of exit_code/signal_code set

    Raises:
        ProcessStatusError: The status violates the policy (check=True only)
    """
    if child.is_alive:
        logger.debug(f"Waiting for pid={child.pid} to exit")
    status = await child.exited()
    if check:
        check_status(child)
    return status
