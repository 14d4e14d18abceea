# src/rnadeseq/engine/runner.py
"""Command runners: how a materialized CommandSpec becomes processes.

SubprocessRunner is the production runner. Tests substitute a scripted
runner that writes each tool's expected outputs instead of invoking it.
"""

from __future__ import annotations

import subprocess
from collections import deque
from pathlib import Path
from typing import Protocol

import structlog

from rnadeseq.contracts.commands import CommandSpec
from rnadeseq.contracts.errors import StageFailure
from rnadeseq.engine.clock import DEFAULT_CLOCK, Clock

slog = structlog.get_logger(__name__)

STDOUT_LOG = ".command.out"
STDERR_LOG = ".command.err"
SCRIPT_LOG = ".command.sh"

_STDERR_TAIL_LINES = 20


class CommandRunner(Protocol):
    """Runs every command of a CommandSpec, in order, inside ``spec.cwd``.

    Raises:
        StageFailure: At the first command that exits non-zero, cannot be
            started, or runs past ``spec.timeout_seconds``
    """

    def run(self, spec: CommandSpec) -> None: ...


def read_tail(path: Path, lines: int = _STDERR_TAIL_LINES) -> str:
    """Last ``lines`` lines of a log file ("" when it does not exist)."""
    if not path.exists():
        return ""
    with path.open(encoding="utf-8", errors="replace") as handle:
        return "".join(deque(handle, maxlen=lines)).rstrip()


class SubprocessRunner:
    """Runs commands with subprocess, logging to files in the stage namespace.

    The timeout is a budget for the whole stage: each command gets what is
    left of it.
    """

    def __init__(self, *, clock: Clock | None = None) -> None:
        self._clock = clock if clock is not None else DEFAULT_CLOCK

    def run(self, spec: CommandSpec) -> None:
        spec.cwd.mkdir(parents=True, exist_ok=True)
        (spec.cwd / SCRIPT_LOG).write_text("".join(f"{command}\n" for command in spec.commands), encoding="utf-8")
        stderr_path = spec.cwd / STDERR_LOG
        started = self._clock.monotonic()

        with (spec.cwd / STDOUT_LOG).open("w", encoding="utf-8") as out, stderr_path.open("w", encoding="utf-8") as err:
            for command in spec.commands:
                timeout: float | None = None
                if spec.timeout_seconds is not None:
                    timeout = spec.timeout_seconds - (self._clock.monotonic() - started)
                    if timeout <= 0:
                        raise StageFailure(spec.stage, f"exceeded time budget of {spec.timeout_seconds:g}s", timed_out=True)

                slog.debug("command_started", stage=spec.stage, command=str(command))
                try:
                    completed = subprocess.run(
                        command.argv,
                        cwd=spec.cwd,
                        stdout=out,
                        stderr=err,
                        timeout=timeout,
                        check=False,
                    )
                except subprocess.TimeoutExpired as e:
                    err.flush()
                    raise StageFailure(
                        spec.stage,
                        f"exceeded time budget of {spec.timeout_seconds:g}s",
                        stderr_tail=read_tail(stderr_path),
                        timed_out=True,
                    ) from e
                except FileNotFoundError as e:
                    raise StageFailure(spec.stage, f"command not found: {command.argv[0]}", exit_code=127) from e

                # Killed by signal N: report the shell's 128+N status
                returncode = completed.returncode if completed.returncode >= 0 else 128 - completed.returncode
                if returncode != 0:
                    err.flush()
                    raise StageFailure(
                        spec.stage,
                        f"{command.argv[0]} exited with status {returncode}",
                        exit_code=returncode,
                        stderr_tail=read_tail(stderr_path),
                    )
