# src/rnadeseq/contracts/errors.py
"""Exception taxonomy for input resolution, stage execution and notification.

Propagation policy:
- InputError subclasses are collected by the resolver and raised together as
  one InputResolutionError before any stage starts.
- StageFailure is fatal only to the failing stage's dependent subtree.
- NotificationFailure is always caught by the completion reporter and
  downgraded to a warning.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path


class InputError(Exception):
    """Base class for problems with a single supplied input."""

    def __init__(self, parameter: str, message: str) -> None:
        self.parameter = parameter
        super().__init__(message)


class MissingRequiredInput(InputError):
    """A parameter required under the active mode was not supplied."""

    def __init__(self, parameter: str, *, flag: str | None = None, reason: str | None = None) -> None:
        self.flag = flag
        self.reason = reason
        shown = flag or parameter
        detail = f" ({reason})" if reason else ""
        super().__init__(parameter, f"Missing required input '{parameter}': please provide {shown}{detail}")


class PathNotFound(InputError):
    """A supplied path does not exist at resolution time."""

    def __init__(self, parameter: str, path: Path | str) -> None:
        self.path = Path(path)
        super().__init__(parameter, f"Input '{parameter}' does not exist: {path}")


class SampleDiscoveryError(InputError):
    """The read glob matched nothing, or paired reads are incomplete."""

    def __init__(self, pattern: str, message: str) -> None:
        self.pattern = pattern
        super().__init__("reads", f"Reads '{pattern}': {message}")


class InputResolutionError(Exception):
    """Aggregate of every InputError found while resolving a run's inputs.

    Raised once, listing all unmet requirements, rather than stopping at
    the first problem.
    """

    def __init__(self, errors: Sequence[InputError]) -> None:
        if not errors:
            raise ValueError("InputResolutionError requires at least one error")
        self.errors: tuple[InputError, ...] = tuple(errors)
        lines = [f"{len(self.errors)} input problem(s) found:"]
        lines.extend(f"  - {error}" for error in self.errors)
        super().__init__("\n".join(lines))

    @property
    def missing(self) -> tuple[MissingRequiredInput, ...]:
        return tuple(e for e in self.errors if isinstance(e, MissingRequiredInput))

    @property
    def not_found(self) -> tuple[PathNotFound, ...]:
        return tuple(e for e in self.errors if isinstance(e, PathNotFound))


class StageFailure(Exception):
    """An external tool invocation exited non-zero or exceeded its budget.

    Attributes:
        stage: Name of the failing stage
        cause: Human-readable cause
        exit_code: Process exit status (None when the process was killed for
            exceeding its time budget, or never started)
        stderr_tail: Last lines of the tool's error output
        timed_out: True when the wall-clock budget was exceeded
    """

    def __init__(
        self,
        stage: str,
        cause: str,
        *,
        exit_code: int | None = None,
        stderr_tail: str = "",
        timed_out: bool = False,
    ) -> None:
        self.stage = stage
        self.cause = cause
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        self.timed_out = timed_out
        message = f"Stage '{stage}' failed: {cause}"
        if stderr_tail:
            message = f"{message}\n{stderr_tail}"
        super().__init__(message)


class NotificationFailure(Exception):
    """Best-effort delivery of the run summary failed."""

    def __init__(self, channel: str, cause: BaseException | str) -> None:
        self.channel = channel
        self.cause = cause
        super().__init__(f"Notification via {channel} failed: {cause}")
