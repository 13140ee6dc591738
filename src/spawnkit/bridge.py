"""Child processes as flow-controlled pipeline stages.

A ``ProcessBridge`` puts a child's stdin and stdout behind one duplex byte
stream:

    upstream --send()--> child stdin      child stdout --run()--> buffer --receive()--> downstream

Write path: ``send()`` returns once the child's stdin pipe accepted the
bytes, so a slow child slows down whoever writes to the bridge.
``send_eof()`` closes the child's stdin only.

Read path: ``run()`` forwards stdout chunks into a bounded memory buffer.
When the consumer falls behind the buffer fills up, ``run()`` suspends and
stops reading the child's stdout until the consumer catches up. Memory in
flight per stage is therefore at most ``max_buffer_size`` chunks, whatever
the total payload size.

Example:
    async with spawn(["gzip", "-c"]) as gz, spawn(["gzip", "-dc"]) as gunzip:
        await pipeline(source, gz, gunzip, sink=sink)
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import anyio
from anyio.abc import ByteStream

from .communicate import StdinSource, byte_source
from .config import get_config
from .errors import (
    BROKEN_PIPE_ERRORS,
    STREAM_ERRORS,
    BridgeConfigurationError,
    ProcessStatusError,
    StreamError,
    unwrap_task_errors,
)
from .process import ChildProcess
from .status import check_status, wait

__all__ = [
    "ByteSink",
    "ProcessBridge",
    "make_pipe",
    "pipeline",
]

logger = logging.getLogger(__name__)


class ByteSink(Protocol):
    """Anything with an async ``send(bytes)``, e.g. an anyio ByteSendStream."""

    async def send(self, item: bytes) -> None: ...


class ProcessBridge(ByteStream):
    """Duplex byte stream over a child's stdin (write side) and stdout (read side).

    Being an anyio ByteStream, a bridge can be iterated with ``async for`` and
    used as ``async with bridge:``.

    ``run()`` must be running (usually in the same task group as the writer
    and the reader) for anything to come out of ``receive()``.

    When the child's stdout ends, ``run()`` waits for the child's exit status
    before signalling end-of-stream. A policy violation at that point is
    logged, not raised, so the stage still ends its output normally.
    ``pipeline()`` raises it as ProcessStatusError once all stages are done;
    a bridge driven by hand reports it through ``wait(bridge.child)``.

    I/O errors on either side are kept in ``error``, close the stage, and are
    raised as StreamError from ``send()`` and ``receive()``.

    Attributes:
        child: The bridged child
    """

    def __init__(self, child: ChildProcess, *, max_buffer_size: int | None = None) -> None:
        """Create a bridge.

        Args:
            child: A child spawned with piped stdin and stdout
            max_buffer_size: Chunks buffered on the read side (default from config)

        Raises:
            BridgeConfigurationError: stdout or stdin of the child is not piped
        """
        if child.stdout is None:
            raise BridgeConfigurationError(
                f"stdout of {child.command[0]} is not readable, cannot create transform stream"
            )
        if child.stdin is None:
            raise BridgeConfigurationError(
                f"stdin of {child.command[0]} is not writable, cannot create transform stream"
            )

        config = get_config()
        self.child = child
        self._stdin = child.stdin
        self._stdout = child.stdout
        self._chunk_size = config.read_chunk_size
        buffer_size = config.pipe_buffer if max_buffer_size is None else max_buffer_size
        self._outbound_send, self._outbound_receive = anyio.create_memory_object_stream(
            max_buffer_size=buffer_size
        )
        self._pending = b""
        self._input_closed = False
        self._error: StreamError | None = None

    @property
    def error(self) -> StreamError | None:
        """First I/O error seen on the child's streams."""
        return self._error

    def _fail(self, error: StreamError, cause: BaseException) -> StreamError:
        if self._error is None:
            error.__cause__ = cause
            self._error = error
            logger.debug(f"Bridge of pid={self.child.pid} failed: {error}")
        return self._error

    def _raise_error(self) -> None:
        if self._error is not None:
            raise self._error

    # =========================================================================
    # Write side (child stdin)
    # =========================================================================

    async def send(self, item: bytes) -> None:
        """Write bytes to the child's stdin, returning once the pipe accepted them.

        Raises:
            anyio.ClosedResourceError: ``send_eof()`` was already called
            StreamError: Writing to the child failed
        """
        if self._input_closed:
            raise anyio.ClosedResourceError
        self._raise_error()
        try:
            await self._stdin.send(item)
        except STREAM_ERRORS as e:
            error = self._fail(
                StreamError(f"Failed to write stdin of {self.child.command[0]}: {e}"), e
            )
            await self._outbound_send.aclose()
            raise error

    async def send_eof(self) -> None:
        """Close the child's stdin. The read side stays open."""
        if self._input_closed:
            return
        self._input_closed = True
        try:
            await self._stdin.aclose()
        except BROKEN_PIPE_ERRORS:
            logger.debug(f"stdin of pid={self.child.pid} already broken at close")

    # =========================================================================
    # Read side (child stdout)
    # =========================================================================

    async def run(self) -> None:
        """Forward the child's stdout to the read side until end of stream."""
        name = self.child.command[0]
        async with self._outbound_send:
            while True:
                try:
                    chunk = await self._stdout.receive(self._chunk_size)
                except anyio.EndOfStream:
                    break
                except STREAM_ERRORS as e:
                    self._fail(StreamError(f"Failed to read stdout of {name}: {e}"), e)
                    return

                try:
                    # Suspends while the buffer is full: backpressure to the child
                    await self._outbound_send.send(chunk)
                except (anyio.BrokenResourceError, anyio.ClosedResourceError):
                    logger.debug(f"Read side of pid={self.child.pid} closed, stop forwarding")
                    return

            try:
                await wait(self.child)
            except ProcessStatusError as e:
                logger.warning(f"Pipeline stage ended with bad status: {e}")

        logger.debug(f"Bridge of pid={self.child.pid} reached end of stream")

    async def receive(self, max_bytes: int = 65536) -> bytes:
        """Return the next chunk of the child's stdout.

        Raises:
            anyio.EndOfStream: The child's stdout ended and the child exited
            StreamError: The stage failed
        """
        if not self._pending:
            try:
                self._pending = await self._outbound_receive.receive()
            except anyio.EndOfStream:
                self._raise_error()
                raise
        chunk, self._pending = self._pending[:max_bytes], self._pending[max_bytes:]
        return chunk

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def aclose(self) -> None:
        """Close both directions; ``run()`` stops forwarding."""
        await self._outbound_receive.aclose()
        await self.send_eof()

    def __repr__(self) -> str:
        return f"ProcessBridge({self.child!r})"


def make_pipe(child: ChildProcess, *, max_buffer_size: int | None = None) -> ProcessBridge:
    """Create a duplex stage from a child's stdin and stdout.

    The child's ``check_exit_code`` / ``check_signal_code`` options decide
    whether a bad status counts as a failure when its output ends.
    """
    return ProcessBridge(child, max_buffer_size=max_buffer_size)


async def _copy(source: Any, bridge: ProcessBridge) -> None:
    """Send every chunk of source into the bridge, then half-close it."""
    try:
        async for chunk in source:
            if chunk:
                await bridge.send(chunk)
    finally:
        with anyio.CancelScope(shield=True):
            await bridge.send_eof()


async def _discard_stderr(child: ChildProcess) -> None:
    """Keep a stage's stderr pipe empty so the child never blocks on it."""
    assert child.stderr is not None
    try:
        async for chunk in child.stderr:
            logger.debug(f"stderr of pid={child.pid}: {chunk[:200]!r}")
    except STREAM_ERRORS as e:
        raise StreamError(f"Failed to read stderr of {child.command[0]}: {e}") from e


async def pipeline(
    source: StdinSource,
    *stages: ChildProcess | ProcessBridge,
    sink: ByteSink | None = None,
) -> bytes | None:
    """Pipe a source through child processes, like ``a | b | c`` in a shell.

    All copies run concurrently with bounded buffers, so memory use does not
    grow with the amount of data. A stage whose stderr is piped has it read
    and logged at debug level.

    Args:
        source: Input of the first stage (see ``byte_source``)
        *stages: Children (or bridges) in pipeline order
        sink: Receives the output of the last stage; None collects it

    Returns:
        The collected output when sink is None, otherwise None

    Raises:
        ValueError: No stages given
        BridgeConfigurationError: A stage lacks piped stdin or stdout
        StreamError: I/O on a stage failed
        ProcessStatusError: A stage violated its exit/signal policy (raised
            for the first such stage, after all output was delivered)
    """
    if not stages:
        raise ValueError("pipeline needs at least one stage")

    bridges = [
        stage if isinstance(stage, ProcessBridge) else ProcessBridge(stage)
        for stage in stages
    ]
    collected = bytearray()

    async def deliver() -> None:
        async for chunk in bridges[-1]:
            if sink is None:
                collected.extend(chunk)
            else:
                await sink.send(chunk)

    first = bridges[0]
    with unwrap_task_errors():
        async with anyio.create_task_group() as tg:
            tg.start_soon(_copy, byte_source(source, first.child.options.encoding), first)
            for upstream, downstream in zip(bridges, bridges[1:]):
                tg.start_soon(_copy, upstream, downstream)
            for bridge in bridges:
                tg.start_soon(bridge.run)
                if bridge.child.stderr is not None:
                    tg.start_soon(_discard_stderr, bridge.child)
            tg.start_soon(deliver)

    # Only after every stage drained: a failed status never cuts output short
    for bridge in bridges:
        check_status(bridge.child)

    logger.debug(f"Pipeline of {len(bridges)} stage(s) finished")
    return bytes(collected) if sink is None else None
