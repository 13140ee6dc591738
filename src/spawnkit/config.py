"""spawnkit environment configuration.

Environment variables:
    SPAWNKIT_CHECK_EXIT_CODE: Raise ProcessStatusError on a non-zero exit code
        - true/1/yes = on (default)
        - false/0/no = off (the exit code is returned instead)

    SPAWNKIT_CHECK_SIGNAL_CODE: Raise ProcessStatusError when a signal killed the child
        - true/1/yes = on (default)
        - false/0/no = off

    SPAWNKIT_ENCODING: Codec used to decode stdout/stderr
        - any Python codec name, default "utf-8"
        - "raw" / "none" / "bytes" = do not decode, return bytes

    SPAWNKIT_TRIM_OUTPUT: Strip leading/trailing whitespace of decoded output
        - true/1/yes = on (default)
        - false/0/no = off

    SPAWNKIT_SHELL: Shell used for commands given as a single string
        - default /bin/sh (invoked as ``<shell> -c <command>``)

    SPAWNKIT_READ_CHUNK_SIZE: Bytes requested per read from a child stream
        - default 65536, limited to 1 KiB - 4 MiB

    SPAWNKIT_PIPE_BUFFER: Chunks buffered between pipeline stages
        - default 16, limited to 1 - 1024

    SPAWNKIT_LOG_DEBUG: Debug logging for the command line entry point
        - true/1/yes = on (log to a temporary file)
        - false/0/no = off (default, log to stderr)

    Unrecognised values of the boolean variables keep their default.
"""

from __future__ import annotations

import codecs
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_ENCODING = "utf-8"
DEFAULT_SHELL = "/bin/sh"
DEFAULT_READ_CHUNK_SIZE = 65536
DEFAULT_PIPE_BUFFER = 16

# Values of SPAWNKIT_ENCODING meaning "return raw bytes"
RAW_ENCODING_MARKERS = frozenset({"raw", "none", "null", "bytes", "binary"})

_TRUE_VALUES = frozenset({"true", "1", "yes", "on"})
_FALSE_VALUES = frozenset({"false", "0", "no", "off"})


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment variable.

    Unset, empty and unrecognised values (typos) all give the default.
    """
    if value is None:
        return default
    value = value.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    return default


def _parse_encoding(value: str | None) -> str | None:
    """Parse the output codec.

    Args:
        value: Environment variable value

    Returns:
        Normalized codec name, or None for raw bytes. Unknown codecs fall
        back to the default.
    """
    if value is None or not value.strip():
        return DEFAULT_ENCODING
    value = value.strip()
    if value.lower() in RAW_ENCODING_MARKERS:
        return None
    try:
        codecs.lookup(value)
    except LookupError:
        return DEFAULT_ENCODING
    return value


def _parse_int(value: str | None, default: int, low: int, high: int) -> int:
    """Parse an integer environment variable limited to [low, high]."""
    if not value:
        return default
    try:
        number = int(value)
    except ValueError:
        return default
    return max(low, min(number, high))


@dataclass
class Config:
    """spawnkit configuration.

    These values are the defaults every spawned child starts from; options
    given to ``spawn()`` / ``execute()`` override them per call.

    Attributes:
        check_exit_code: Treat a non-zero exit code as a failure
        check_signal_code: Treat termination by a signal as a failure
        encoding: Codec for stdout/stderr, None for raw bytes
        trim_output: Strip whitespace around decoded output
        shell: Shell used for string commands
        read_chunk_size: Bytes requested per read from a child stream
        pipe_buffer: Chunks buffered between pipeline stages
        log_debug: Log debug records to a temporary file
        log_file: Log file path (set when log_debug is on)
    """

    check_exit_code: bool = True
    check_signal_code: bool = True
    encoding: str | None = DEFAULT_ENCODING
    trim_output: bool = True
    shell: str = DEFAULT_SHELL
    read_chunk_size: int = DEFAULT_READ_CHUNK_SIZE
    pipe_buffer: int = DEFAULT_PIPE_BUFFER
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Config(check_exit_code={self.check_exit_code}, "
            f"check_signal_code={self.check_signal_code}, "
            f"encoding={self.encoding or 'raw'}, "
            f"trim_output={self.trim_output}, "
            f"shell={self.shell}, "
            f"read_chunk_size={self.read_chunk_size}, "
            f"pipe_buffer={self.pipe_buffer}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def _generate_log_file_path() -> str:
    """Build a timestamped log file path in the temporary directory."""
    log_dir = Path(tempfile.gettempdir()) / "spawnkit"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"spawnkit_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """Load configuration from environment variables."""
    log_debug = _parse_bool(os.environ.get("SPAWNKIT_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None
    shell = os.environ.get("SPAWNKIT_SHELL", "").strip() or DEFAULT_SHELL

    return Config(
        check_exit_code=_parse_bool(os.environ.get("SPAWNKIT_CHECK_EXIT_CODE"), default=True),
        check_signal_code=_parse_bool(os.environ.get("SPAWNKIT_CHECK_SIGNAL_CODE"), default=True),
        encoding=_parse_encoding(os.environ.get("SPAWNKIT_ENCODING")),
        trim_output=_parse_bool(os.environ.get("SPAWNKIT_TRIM_OUTPUT"), default=True),
        shell=shell,
        read_chunk_size=_parse_int(
            os.environ.get("SPAWNKIT_READ_CHUNK_SIZE"),
            DEFAULT_READ_CHUNK_SIZE,
            1024,
            4 * 1024 * 1024,
        ),
        pipe_buffer=_parse_int(
            os.environ.get("SPAWNKIT_PIPE_BUFFER"), DEFAULT_PIPE_BUFFER, 1, 1024
        ),
        log_debug=log_debug,
        log_file=log_file,
    )


# Global configuration, loaded lazily
_config: Config | None = None


def get_config() -> Config:
    """Return the global configuration instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload configuration from the environment (used by tests)."""
    global _config
    _config = load_config()
    return _config
