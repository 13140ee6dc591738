"""spawnkit command line entry point.

Subcommands:
    run:  execute one command, forward its output, exit with its status
    pipe: pipe this process's stdin through shell commands to stdout

Usage:
    spawnkit run -- ls -l /tmp
    spawnkit run --shell "echo hello | tr a-z A-Z"
    spawnkit pipe "gzip -c" "gzip -dc" < input > output
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from contextlib import AsyncExitStack
from typing import BinaryIO

import anyio

from .bridge import pipeline
from .communicate import CommunicateResult
from .config import Config, get_config
from .errors import ProcessStatusError, SpawnKitError
from .execute import execute
from .process import ChildProcess, spawn

__all__ = ["build_parser", "configure_logging", "main"]

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(config: Config) -> None:
    """Install log handlers for the command line entry point.

    Debug mode (SPAWNKIT_LOG_DEBUG) logs everything to a temporary file,
    otherwise INFO and above go to stderr. Other libraries stay at WARNING.
    """
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    logging.getLogger("spawnkit").setLevel(log_level)


def status_exit_code(exit_code: int | None, signal_code: str | None) -> int:
    """Shell-style exit code: the child's code, or 128 + signal number."""
    if signal_code is not None:
        try:
            return 128 + signal.Signals[signal_code].value
        except KeyError:
            return 128
    return exit_code or 0


def _write_output(output: str | bytes | None, stream: BinaryIO) -> None:
    if output is None:
        return
    if isinstance(output, str):
        if not output:
            return
        output = output.encode("utf-8")
        if not output.endswith(b"\n"):
            output += b"\n"
    stream.write(output)
    stream.flush()


class _FileSink:
    """Async sink writing to a blocking binary file in a worker thread."""

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream

    def _write(self, item: bytes) -> None:
        self._stream.write(item)
        self._stream.flush()

    async def send(self, item: bytes) -> None:
        await anyio.to_thread.run_sync(self._write, item)


async def run_command(args: argparse.Namespace) -> int:
    """Handle ``spawnkit run``."""
    command: str | list[str] = list(args.command)
    if command and command[0] == "--":
        command = command[1:]
    if not command:
        raise SystemExit("spawnkit run: missing command")
    if args.shell:
        command = " ".join(command)

    stdin: BinaryIO | None = None
    if args.input == "-":
        stdin = sys.stdin.buffer

    options = {}
    if args.raw:
        options["encoding"] = None
    if args.no_trim:
        options["trim_output"] = False

    result: CommunicateResult = await execute(
        command,
        stdin=stdin,
        check_exit_code=False,
        check_signal_code=False,
        **options,
    )
    _write_output(result.stdout, sys.stdout.buffer)
    _write_output(result.stderr, sys.stderr.buffer)
    return status_exit_code(result.exit_code, result.signal_code)


async def run_pipe(args: argparse.Namespace) -> int:
    """Handle ``spawnkit pipe``."""
    children: list[ChildProcess] = []
    async with AsyncExitStack() as stack:
        for stage in args.stages:
            child = await stack.enter_async_context(spawn(stage, stderr="inherit"))
            children.append(child)
        try:
            await pipeline(sys.stdin.buffer, *children, sink=_FileSink(sys.stdout.buffer))
        except ProcessStatusError as e:
            logger.debug(f"Pipeline failed: {e}")

    # Like `set -o pipefail`: the first failing stage decides
    for child in children:
        code = status_exit_code(child.exit_code, child.signal_code)
        if code != 0:
            return code
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="spawnkit",
        description="Run child processes and pipelines",
    )
    subparsers = parser.add_subparsers(dest="subcommand", required=True)

    run_parser = subparsers.add_parser("run", help="Run one command")
    run_parser.add_argument("--raw", action="store_true", help="Do not decode output")
    run_parser.add_argument("--no-trim", action="store_true", help="Keep surrounding whitespace")
    run_parser.add_argument("--shell", action="store_true", help="Run the command through the shell")
    run_parser.add_argument("--input", choices=["-"], default=None, help="'-' forwards stdin")
    run_parser.add_argument("command", nargs=argparse.REMAINDER, help="Command and arguments")
    run_parser.set_defaults(handler=run_command)

    pipe_parser = subparsers.add_parser("pipe", help="Pipe stdin through shell commands")
    pipe_parser.add_argument("stages", nargs="+", help="Shell command line of each stage")
    pipe_parser.set_defaults(handler=run_pipe)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    config = get_config()
    configure_logging(config)

    args = build_parser().parse_args(argv)
    logger.debug(f"Starting spawnkit {args.subcommand}: {config}")

    try:
        code = anyio.run(args.handler, args)
    except FileNotFoundError as e:
        logger.error(f"Command not found: {e.filename}")
        code = 127
    except SpawnKitError as e:
        logger.error(f"{type(e).__name__}: {e}")
        code = 1
    except ExceptionGroup as group:
        # Several stages failing at once
        matched, rest = group.split(SpawnKitError)
        if rest is not None:
            raise
        for error in matched.exceptions:
            logger.error(f"{type(error).__name__}: {error}")
        code = 1

    sys.exit(code)


if __name__ == "__main__":
    main()
