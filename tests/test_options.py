"""SpawnOptions resolution and argv construction tests."""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest
from pydantic import ValidationError

from spawnkit.config import reload_config
from spawnkit.options import SpawnOptions, resolve_options, stdio_target, to_argv


# =============================================================================
# resolve_options
# =============================================================================


class TestResolveOptions:
    def test_defaults_from_config(self):
        options = resolve_options()
        assert options.check_exit_code is True
        assert options.check_signal_code is True
        assert options.encoding == "utf-8"
        assert options.trim_output is True
        assert (options.stdin, options.stdout, options.stderr) == ("pipe", "pipe", "pipe")

    def test_overrides_win(self):
        options = resolve_options(check_exit_code=False, encoding=None, stdout="ignore")
        assert options.check_exit_code is False
        assert options.encoding is None
        assert options.stdout == "ignore"

    def test_config_changes_defaults(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("SPAWNKIT_ENCODING", "raw")
        monkeypatch.setenv("SPAWNKIT_CHECK_SIGNAL_CODE", "false")
        reload_config()
        options = resolve_options()
        assert options.encoding is None
        assert options.check_signal_code is False

    def test_unknown_option_rejected(self):
        with pytest.raises(ValidationError):
            resolve_options(timeout=5)

    def test_unknown_encoding_rejected(self):
        with pytest.raises(ValidationError):
            resolve_options(encoding="no-such-codec")

    def test_snapshot_is_frozen(self):
        options = resolve_options()
        with pytest.raises(ValidationError):
            options.encoding = "latin-1"


class TestStdioSlots:
    """Validation of stdin/stdout/stderr slots."""

    @pytest.mark.parametrize("slot", ["pipe", "ignore", "inherit"])
    def test_names(self, slot: str):
        assert SpawnOptions(stdout=slot).stdout == slot

    def test_unknown_name(self):
        with pytest.raises(ValidationError):
            SpawnOptions(stdout="bogus")

    def test_boolean_rejected(self):
        with pytest.raises(ValidationError):
            SpawnOptions(stdin=True)

    def test_negative_descriptor_rejected(self):
        with pytest.raises(ValidationError):
            SpawnOptions(stdin=-5)

    def test_subprocess_constants(self):
        assert SpawnOptions(stdin=subprocess.DEVNULL).stdin == subprocess.DEVNULL
        assert SpawnOptions(stderr=subprocess.STDOUT).stderr == subprocess.STDOUT

    def test_file_object(self, tmp_path: Path):
        with open(tmp_path / "out.txt", "wb") as f:
            assert SpawnOptions(stdout=f).stdout is f

    def test_stdio_target(self):
        assert stdio_target("pipe") == subprocess.PIPE
        assert stdio_target("ignore") == subprocess.DEVNULL
        assert stdio_target("inherit") is None
        assert stdio_target(7) == 7


# =============================================================================
# to_argv
# =============================================================================


class TestToArgv:
    def test_sequence_is_verbatim(self):
        argv = ["printf", "%s", "a b", "$HOME", "*"]
        assert to_argv(argv) == argv

    def test_path_arguments(self, tmp_path: Path):
        assert to_argv(["ls", tmp_path]) == ["ls", str(tmp_path)]

    def test_string_runs_in_shell(self):
        assert to_argv("echo Hello") == ["/bin/sh", "-c", "echo Hello"]

    def test_custom_shell(self):
        assert to_argv("echo Hello", "/bin/bash") == ["/bin/bash", "-c", "echo Hello"]

    def test_shell_from_config(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("SPAWNKIT_SHELL", "/bin/dash")
        reload_config()
        assert to_argv("true")[0] == "/bin/dash"

    @pytest.mark.parametrize("command", [[], "", "   ", ()])
    def test_empty_command(self, command):
        with pytest.raises(ValueError, match="command is empty"):
            to_argv(command)
