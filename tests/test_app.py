"""Command line entry point tests."""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

import pytest

from spawnkit import app
from spawnkit.app import build_parser, main, status_exit_code
from spawnkit.errors import StreamError


def _run_main(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


def _run_module(project_root: Path, args: list[str], stdin: bytes = b"") -> subprocess.CompletedProcess:
    env = {**os.environ, "PYTHONPATH": str(project_root / "src")}
    return subprocess.run(
        [sys.executable, "-m", "spawnkit", *args],
        input=stdin,
        capture_output=True,
        env=env,
        timeout=60,
    )


class TestStatusExitCode:
    def test_exit_code(self):
        assert status_exit_code(0, None) == 0
        assert status_exit_code(3, None) == 3

    def test_signal(self):
        assert status_exit_code(None, "SIGTERM") == 143
        assert status_exit_code(None, "SIGKILL") == 137

    def test_unknown_signal(self):
        assert status_exit_code(None, "SIG200") == 128


class TestParser:
    def test_run(self):
        args = build_parser().parse_args(["run", "--raw", "--", "ls", "-l"])
        assert args.subcommand == "run"
        assert args.raw is True
        assert args.command[-2:] == ["ls", "-l"]

    def test_pipe(self):
        args = build_parser().parse_args(["pipe", "gzip -c", "gzip -dc"])
        assert args.stages == ["gzip -c", "gzip -dc"]

    def test_subcommand_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestRun:
    def test_output_and_exit_code(self, capsys: pytest.CaptureFixture):
        assert _run_main(["run", "--", "echo", "hi"]) == 0
        assert capsys.readouterr().out == "hi\n"

    def test_child_exit_code(self, capsys: pytest.CaptureFixture):
        assert _run_main(["run", "--", "sh", "-c", "echo bad >&2; exit 3"]) == 3
        assert capsys.readouterr().err.startswith("bad\n")

    def test_signal(self):
        assert _run_main(["run", "--", "sh", "-c", "kill -TERM $$"]) == 143

    def test_shell(self, capsys: pytest.CaptureFixture):
        assert _run_main(["run", "--shell", "echo abc | tr a-z A-Z"]) == 0
        assert capsys.readouterr().out == "ABC\n"

    def test_raw_keeps_whitespace(self, capsys: pytest.CaptureFixture):
        assert _run_main(["run", "--raw", "--", "printf", "  x  "]) == 0
        assert capsys.readouterr().out == "  x  "

    def test_no_trim(self, capsys: pytest.CaptureFixture):
        assert _run_main(["run", "--no-trim", "--", "printf", "x\\n\\n"]) == 0
        assert capsys.readouterr().out == "x\n\n"

    def test_missing_executable(self):
        assert _run_main(["run", "--", "spawnkit-no-such-executable"]) == 127


class TestErrors:
    def test_several_failures_exit_with_one(self, monkeypatch: pytest.MonkeyPatch):
        async def fail_twice(args):
            raise ExceptionGroup(
                "stages failed",
                [StreamError("first stage broke"), StreamError("second stage broke")],
            )

        monkeypatch.setattr(app, "run_pipe", fail_twice)
        assert _run_main(["pipe", "cat", "cat"]) == 1

    def test_foreign_errors_propagate(self, monkeypatch: pytest.MonkeyPatch):
        async def fail_mixed(args):
            raise ExceptionGroup("stages failed", [StreamError("broke"), KeyError("bug")])

        monkeypatch.setattr(app, "run_pipe", fail_mixed)
        with pytest.raises(ExceptionGroup):
            main(["pipe", "cat"])


class TestPipe:
    def test_stages(self, project_root: Path):
        proc = _run_module(project_root, ["pipe", "tr a-z A-Z", "sed s/L/_/g"], b"hello\n")
        assert proc.returncode == 0, proc.stderr
        assert proc.stdout == b"HE__O\n"

    def test_failing_stage_decides_exit_code(self, project_root: Path):
        proc = _run_module(project_root, ["pipe", "cat", "cat; exit 4"], b"data")
        assert proc.returncode == 4
        assert proc.stdout == b"data"

    def test_run_via_module(self, project_root: Path):
        proc = _run_module(project_root, ["run", "--input", "-", "--", "wc", "-c"], b"12345")
        assert proc.returncode == 0
        assert proc.stdout.strip() == b"5"
