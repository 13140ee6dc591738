"""Feeding stdin, draining stdout/stderr and waiting, as one operation.

``communicate()`` runs four tasks in one task group:

1. feed stdin from the given source, then close it (or close it right away
   when there is no source, so the child never waits for input)
2. drain stdout
3. drain stderr
4. wait for the exit event

The exit/signal policy is only checked after the join: both output streams
are always read to the end, even for a child that is going to fail the
check, so a child never blocks on a full pipe and no output is lost.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterable
from dataclasses import dataclass
from typing import Any, BinaryIO, Union

import anyio
from anyio.abc import ByteReceiveStream

from .config import get_config
from .errors import (
    BROKEN_PIPE_ERRORS,
    STREAM_ERRORS,
    StreamError,
    unwrap_task_errors,
)
from .process import ChildProcess
from .status import check_status, wait

__all__ = [
    "CommunicateResult",
    "StdinSource",
    "byte_source",
    "communicate",
]

logger = logging.getLogger(__name__)

StdinSource = Union[
    bytes,
    bytearray,
    memoryview,
    str,
    ByteReceiveStream,
    AsyncIterable[bytes],
    Iterable[bytes],
    BinaryIO,
]


@dataclass(frozen=True, slots=True)
class CommunicateResult:
    """Aggregated result of ``communicate()`` / ``execute()``.

    Attributes:
        stdout: Decoded text, raw bytes (encoding=None) or None if not piped
        stderr: Decoded text, raw bytes (encoding=None) or None if not piped
        exit_code: Exit code if the child exited normally
        signal_code: Signal name if a signal terminated the child
    """

    stdout: str | bytes | None
    stderr: str | bytes | None
    exit_code: int | None
    signal_code: str | None


def _as_bytes(chunk: Any, encoding: str) -> bytes:
    if isinstance(chunk, str):
        return chunk.encode(encoding)
    return bytes(chunk)


async def _from_buffer(data: bytes, chunk_size: int) -> AsyncIterator[bytes]:
    for offset in range(0, len(data), chunk_size):
        yield data[offset:offset + chunk_size]


async def _from_async_iterable(
    source: AsyncIterable[Any], encoding: str
) -> AsyncIterator[bytes]:
    async for chunk in source:
        yield _as_bytes(chunk, encoding)


async def _from_file(source: BinaryIO, chunk_size: int, encoding: str) -> AsyncIterator[bytes]:
    while True:
        chunk = await anyio.to_thread.run_sync(source.read, chunk_size)
        if not chunk:
            break
        yield _as_bytes(chunk, encoding)


async def _from_iterable(source: Iterable[Any], encoding: str) -> AsyncIterator[bytes]:
    for chunk in source:
        yield _as_bytes(chunk, encoding)


def byte_source(
    source: StdinSource,
    encoding: str | None = None,
    chunk_size: int | None = None,
) -> AsyncIterator[bytes]:
    """Resolve a stdin source into an async iterator of byte chunks.

    The kind of source is decided once, here:

    - ``str``: encoded with ``encoding`` (utf-8 when None)
    - ``bytes`` / ``bytearray`` / ``memoryview``: sent in chunks
    - async iterables (anyio byte streams, bridges, async generators)
    - binary file objects (anything with ``read()``), read in a worker thread
    - other iterables of ``bytes`` (or ``str``) chunks

    Args:
        source: The input
        encoding: Codec for text input
        chunk_size: Chunk size for buffers and files (default from config)

    Returns:
        Async iterator of bytes

    Raises:
        TypeError: Unsupported source type
    """
    codec = encoding or "utf-8"
    size = chunk_size or get_config().read_chunk_size

    if isinstance(source, str):
        return _from_buffer(source.encode(codec), size)
    if isinstance(source, (bytes, bytearray, memoryview)):
        return _from_buffer(bytes(source), size)
    if isinstance(source, AsyncIterable):
        return _from_async_iterable(source, codec)
    if callable(getattr(source, "read", None)):
        return _from_file(source, size, codec)
    if isinstance(source, Iterable):
        return _from_iterable(source, codec)
    raise TypeError(f"Unsupported stdin source: {type(source).__name__}")


async def _feed_stdin(child: ChildProcess, source: StdinSource | None) -> None:
    """Send the source to the child's stdin and close it."""
    stream = child.stdin
    if stream is None:
        if source is not None:
            logger.debug(f"stdin of pid={child.pid} is not piped, input ignored")
        return

    try:
        try:
            if source is not None:
                async for chunk in byte_source(source, child.options.encoding):
                    if chunk:
                        await stream.send(chunk)
        finally:
            await stream.aclose()
    except BROKEN_PIPE_ERRORS:
        # The child stopped reading; its exit status tells the rest
        logger.debug(f"pid={child.pid} closed stdin before all input was sent")
    except STREAM_ERRORS as e:
        raise StreamError(f"Failed to write stdin of {child.command[0]}: {e}") from e


async def _drain(
    child: ChildProcess,
    stream: ByteReceiveStream | None,
    name: str,
) -> str | bytes | None:
    """Read a stream to the end and decode it with the child's codec."""
    if stream is None:
        return None

    chunk_size = get_config().read_chunk_size
    buffer = bytearray()
    try:
        while True:
            try:
                chunk = await stream.receive(chunk_size)
            except anyio.EndOfStream:
                break
            buffer.extend(chunk)
    except STREAM_ERRORS as e:
        raise StreamError(f"Failed to read {name} of {child.command[0]}: {e}") from e

    logger.debug(f"Drained {len(buffer)} bytes from {name} of pid={child.pid}")
    encoding = child.options.encoding
    if encoding is None:
        return bytes(buffer)
    return buffer.decode(encoding, errors="replace")


def _maybe_trim(output: str | bytes | None, child: ChildProcess) -> str | bytes | None:
    if isinstance(output, str) and child.options.trim_output:
        return output.strip()
    return output


async def communicate(
    child: ChildProcess,
    stdin: StdinSource | None = None,
) -> CommunicateResult:
    """Send input, collect output and wait for the child to terminate.

    The type of stdout/stderr follows the child's ``encoding`` option:
    ``str`` for a codec, ``bytes`` for None.

    Args:
        child: A child spawned with piped streams
        stdin: Input for the child (see ``byte_source``), None closes stdin

    Returns:
        CommunicateResult

    Raises:
        ProcessStatusError: The exit/signal policy failed (after all output
            was read; the output is attached to the error)
        StreamError: Writing stdin or reading stdout/stderr failed
    """
    outputs: dict[str, str | bytes | None] = {}

    async def drain_into(name: str, stream: ByteReceiveStream | None) -> None:
        outputs[name] = await _drain(child, stream, name)

    with unwrap_task_errors():
        async with anyio.create_task_group() as tg:
            tg.start_soon(_feed_stdin, child, stdin)
            tg.start_soon(drain_into, "stdout", child.stdout)
            tg.start_soon(drain_into, "stderr", child.stderr)
            tg.start_soon(wait, child, False)

    stdout = _maybe_trim(outputs["stdout"], child)
    stderr = _maybe_trim(outputs["stderr"], child)
    check_status(child, stdout=stdout, stderr=stderr)

    return CommunicateResult(
        stdout=stdout,
        stderr=stderr,
        exit_code=child.exit_code,
        signal_code=child.signal_code,
    )
