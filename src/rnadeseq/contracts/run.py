# src/rnadeseq/contracts/run.py
"""Immutable run context.

The RunContext is built once before execution and passed to every stage.
Stages read it, nothing writes to it. Completion fields are derived later by
the completion reporter from the stage results, never by mutating this
record.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import Any

from rnadeseq.contracts.enums import RunMode
from rnadeseq.contracts.parameters import ResolvedInputs


@dataclass(frozen=True, slots=True)
class ResourceLimits:
    """Per-run resource budget.

    Attributes:
        max_workers: Maximum stages running concurrently
        max_cpus: Cap on any stage's CPU request
        max_memory_gb: Cap on any stage's memory request
        max_time_seconds: Cap on any stage's wall-clock budget
        max_retries: Retries granted to a stage killed for resources
    """

    max_workers: int = 4
    max_cpus: int = 16
    max_memory_gb: float = 128.0
    max_time_seconds: float = 240 * 3600.0
    max_retries: int = 1

    def __post_init__(self) -> None:
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.max_cpus < 1:
            raise ValueError(f"max_cpus must be >= 1, got {self.max_cpus}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")

    def describe(self) -> str:
        hours = self.max_time_seconds / 3600
        return f"{self.max_memory_gb:g} GB memory, {self.max_cpus} cpus, {hours:g} h"


@dataclass(frozen=True, slots=True)
class Sample:
    """One metagenomic sample and its read file(s)."""

    name: str
    reads: tuple[Path, ...]

    @property
    def paired(self) -> bool:
        return len(self.reads) == 2


@dataclass(frozen=True, slots=True)
class RunContext:
    """Everything a stage may read about the run it belongs to.

    Attributes:
        run_name: Human-readable run name
        mode: REPORT or NO_REPORT
        inputs: Resolved file parameters (shared, read-only)
        values: Scalar options (species, thresholds, switches)
        samples: Discovered metagenomic samples
        resources: Resource budget
        outdir: Root under which stage outputs are published
        work_dir: Root of per-stage private namespaces
        launch_dir: Directory the run was launched from
        user: Launching user
        started_at: Run start timestamp
    """

    run_name: str
    mode: RunMode
    inputs: ResolvedInputs
    outdir: Path
    work_dir: Path
    values: Mapping[str, Any] = field(default_factory=dict)
    samples: tuple[Sample, ...] = ()
    resources: ResourceLimits = field(default_factory=ResourceLimits)
    launch_dir: Path = field(default_factory=Path.cwd)
    user: str = "unknown"
    started_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    @property
    def report_mode(self) -> bool:
        return self.mode == RunMode.REPORT

    def namespace(self, stage: str) -> Path:
        """Private working directory of ``stage``."""
        return self.work_dir / stage
