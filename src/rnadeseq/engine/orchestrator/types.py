# src/rnadeseq/engine/orchestrator/types.py
"""Run result types.

This module is a LEAF MODULE: it must NOT import from core.py. Other
orchestrator modules import from here.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from rnadeseq.contracts.enums import RunStatus, StageStatus
from rnadeseq.contracts.results import StageResult


@dataclass(frozen=True, slots=True)
class RunResult:
    """Terminal outcome of a run: one StageResult per scheduled stage.

    Attributes:
        run_name: Run name
        status: COMPLETED when every stage succeeded, FAILED otherwise
        results: Stage name -> result, in topological order
        duration_seconds: Wall-clock time from first submission to last result
    """

    run_name: str
    status: RunStatus
    results: Mapping[str, StageResult] = field(default_factory=dict)
    duration_seconds: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "results", MappingProxyType(dict(self.results)))

    def _with_status(self, status: StageStatus) -> tuple[StageResult, ...]:
        return tuple(r for r in self.results.values() if r.status == status)

    @property
    def succeeded(self) -> tuple[StageResult, ...]:
        return self._with_status(StageStatus.SUCCEEDED)

    @property
    def failed(self) -> tuple[StageResult, ...]:
        return self._with_status(StageStatus.FAILED)

    @property
    def skipped(self) -> tuple[StageResult, ...]:
        return self._with_status(StageStatus.SKIPPED)

    @property
    def success(self) -> bool:
        return self.status == RunStatus.COMPLETED
