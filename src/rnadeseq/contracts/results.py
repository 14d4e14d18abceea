# src/rnadeseq/contracts/results.py
"""Artifacts and per-stage results.

Artifacts are immutable once emitted. Consumers receive them read-only and
may read them concurrently.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

from rnadeseq.contracts.commands import CommandSpec
from rnadeseq.contracts.enums import ArtifactKind, StageStatus
from rnadeseq.contracts.errors import StageFailure


@dataclass(frozen=True, slots=True)
class ArtifactRef:
    """Names one declared output of one stage: ``stage.output``."""

    stage: str
    output: str

    def __str__(self) -> str:
        return f"{self.stage}.{self.output}"


@dataclass(frozen=True, slots=True)
class Artifact:
    """A produced output.

    FILE and ZIP_ARCHIVE artifacts carry exactly one path, FILE_SET
    artifacts carry one path per matched file in sorted order.
    """

    ref: ArtifactRef
    kind: ArtifactKind
    paths: tuple[Path, ...]

    @property
    def path(self) -> Path:
        """The single path of a FILE or ZIP_ARCHIVE artifact."""
        if len(self.paths) != 1:
            raise ValueError(f"Artifact {self.ref} has {len(self.paths)} paths, expected exactly one")
        return self.paths[0]


def _freeze_artifacts(artifacts: Mapping[str, Artifact] | None) -> MappingProxyType[str, Artifact]:
    return MappingProxyType(dict(artifacts or {}))


@dataclass(frozen=True, slots=True)
class StageResult:
    """Terminal outcome of one stage.

    Attributes:
        stage: Stage name
        status: SUCCEEDED, FAILED or SKIPPED
        artifacts: Output name -> artifact (empty unless SUCCEEDED)
        failure: The StageFailure for FAILED stages
        blocked_by: For SKIPPED stages, the upstream stages that did not succeed
        attempts: Number of execution attempts (0 when skipped)
        duration_seconds: Wall-clock time spent executing
        command: The materialized command (None when skipped before materializing)
    """

    stage: str
    status: StageStatus
    artifacts: Mapping[str, Artifact] = field(default_factory=dict)
    failure: StageFailure | None = None
    blocked_by: tuple[str, ...] = ()
    attempts: int = 0
    duration_seconds: float = 0.0
    command: CommandSpec | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "artifacts", _freeze_artifacts(self.artifacts))
        if self.status == StageStatus.FAILED and self.failure is None:
            raise ValueError(f"FAILED result for stage '{self.stage}' requires a failure")
        if self.status not in (StageStatus.SUCCEEDED, StageStatus.FAILED, StageStatus.SKIPPED):
            raise ValueError(f"StageResult must be terminal, got {self.status}")

    @classmethod
    def skipped(cls, stage: str, blocked_by: tuple[str, ...]) -> StageResult:
        return cls(stage=stage, status=StageStatus.SKIPPED, blocked_by=blocked_by)

    @property
    def succeeded(self) -> bool:
        return self.status == StageStatus.SUCCEEDED

    def artifact(self, output: str) -> Artifact:
        return self.artifacts[output]
