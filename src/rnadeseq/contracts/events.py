# src/rnadeseq/contracts/events.py
"""Observability events for pipeline execution.

These domain events are emitted by the orchestrator and consumed by CLI
formatters for human-readable or structured output. All events are emitted
from the scheduling thread, never from worker threads.
"""

from dataclasses import dataclass

from rnadeseq.contracts.enums import RunMode, RunStatus


@dataclass(frozen=True, slots=True)
class RunStarted:
    """Emitted once the graph is built, before the first stage is submitted."""

    run_name: str
    mode: RunMode
    stages: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class StageStarted:
    """Emitted when a stage is handed to a worker."""

    stage: str


@dataclass(frozen=True, slots=True)
class StageCompleted:
    """Emitted when a stage succeeds and its outputs are published."""

    stage: str
    duration_seconds: float
    attempts: int
    outputs: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class StageFailed:
    """Emitted when a stage fails. Its dependents will be skipped."""

    stage: str
    cause: str
    exit_code: int | None
    attempts: int


@dataclass(frozen=True, slots=True)
class StageSkipped:
    """Emitted when a stage becomes unreachable."""

    stage: str
    blocked_by: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class RunFinished:
    """Emitted when every stage has reached a terminal state."""

    run_name: str
    status: RunStatus
    succeeded: int
    failed: int
    skipped: int
    duration_seconds: float
