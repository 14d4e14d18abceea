# tests/engine/test_runner.py
"""Tests for SubprocessRunner against real processes.

Covers the stage log files, exit status mapping (including signal kills),
stderr capture and the wall-clock budget shared by a stage's commands.
"""

import sys
from pathlib import Path

import pytest

from rnadeseq.contracts.commands import Command, CommandSpec
from rnadeseq.contracts.errors import StageFailure
from rnadeseq.engine.clock import MockClock
from rnadeseq.engine.retry import is_resource_kill
from rnadeseq.engine.runner import SCRIPT_LOG, STDERR_LOG, STDOUT_LOG, SubprocessRunner, read_tail

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")


def _sh(script: str) -> Command:
    return Command(("sh", "-c", script))


def _spec(tmp_path: Path, *commands: Command, timeout: float | None = None) -> CommandSpec:
    return CommandSpec(stage="deseq2", commands=commands, cwd=tmp_path / "deseq2", timeout_seconds=timeout)


def _run_failing(spec: CommandSpec, runner: SubprocessRunner | None = None) -> StageFailure:
    with pytest.raises(StageFailure) as exc_info:
        (runner or SubprocessRunner()).run(spec)
    return exc_info.value


class TestLogFiles:
    def test_successful_commands_write_logs(self, tmp_path: Path) -> None:
        spec = _spec(tmp_path, _sh("echo first"), _sh("echo second; echo note >&2"))

        SubprocessRunner().run(spec)

        assert (spec.cwd / STDOUT_LOG).read_text() == "first\nsecond\n"
        assert (spec.cwd / STDERR_LOG).read_text() == "note\n"
        assert (spec.cwd / SCRIPT_LOG).read_text() == "sh -c 'echo first'\nsh -c 'echo second; echo note >&2'\n"

    def test_commands_run_in_the_stage_namespace(self, tmp_path: Path) -> None:
        spec = _spec(tmp_path, Command(("touch", "DESeq2.zip")))

        SubprocessRunner().run(spec)

        assert (spec.cwd / "DESeq2.zip").is_file()

    def test_read_tail_keeps_last_lines(self, tmp_path: Path) -> None:
        log = tmp_path / "err.log"
        log.write_text("".join(f"line {i}\n" for i in range(30)))

        assert read_tail(log, lines=2) == "line 28\nline 29"
        assert read_tail(tmp_path / "missing.log") == ""


class TestExitStatus:
    def test_non_zero_exit_carries_status_and_stderr(self, tmp_path: Path) -> None:
        failure = _run_failing(_spec(tmp_path, _sh("echo 'Error in DESeq()' >&2; exit 3")))

        assert failure.stage == "deseq2"
        assert failure.exit_code == 3
        assert not failure.timed_out
        assert "Error in DESeq()" in failure.stderr_tail
        assert "exited with status 3" in failure.cause
        assert not is_resource_kill(failure)

    def test_signal_kill_reports_shell_status(self, tmp_path: Path) -> None:
        failure = _run_failing(_spec(tmp_path, _sh("echo boom >&2; kill -9 $$")))

        assert failure.exit_code == 137
        assert "boom" in failure.stderr_tail
        assert is_resource_kill(failure)

    def test_missing_executable_is_127(self, tmp_path: Path) -> None:
        failure = _run_failing(_spec(tmp_path, Command(("rnadeseq-no-such-tool", "--help"))))

        assert failure.exit_code == 127
        assert "command not found: rnadeseq-no-such-tool" in failure.cause

    def test_stops_at_first_failing_command(self, tmp_path: Path) -> None:
        spec = _spec(tmp_path, _sh("exit 1"), _sh("echo never"))

        _run_failing(spec)

        assert "never" not in (spec.cwd / STDOUT_LOG).read_text()


class TestTimeBudget:
    def test_command_past_budget_is_stopped(self, tmp_path: Path) -> None:
        failure = _run_failing(_spec(tmp_path, Command(("sleep", "5")), timeout=0.5))

        assert failure.timed_out
        assert failure.exit_code is None
        assert "time budget of 0.5s" in failure.cause
        assert not is_resource_kill(failure)

    def test_budget_is_shared_across_commands(self, tmp_path: Path) -> None:
        spec = _spec(tmp_path, _sh("echo first; sleep 0.4"), Command(("sleep", "0.4")), timeout=0.6)

        failure = _run_failing(spec)

        assert failure.timed_out
        assert (spec.cwd / STDOUT_LOG).read_text() == "first\n"

    def test_exhausted_budget_starts_no_further_command(self, tmp_path: Path) -> None:
        # Each clock read advances one second, so the budget is gone before the first command
        spec = _spec(tmp_path, _sh("echo ran"), timeout=0.5)

        failure = _run_failing(spec, SubprocessRunner(clock=MockClock(step=1.0)))

        assert failure.timed_out
        assert (spec.cwd / STDOUT_LOG).read_text() == ""
