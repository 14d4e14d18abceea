# src/rnadeseq/reporting/summary.py
"""Run summary: built once at start, finalized once at the end.

The summary is immutable. ``finalize`` is the single reduce over stage
results and returns a new summary; nothing is ever updated in place, and
nothing outside the completion reporter produces completion fields.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType

from rnadeseq import __version__
from rnadeseq.contracts.enums import RunStatus, StageStatus
from rnadeseq.contracts.run import RunContext
from rnadeseq.engine.orchestrator.types import RunResult

# Scalar values echoed in the summary, in display order
_VALUE_LABELS: tuple[tuple[str, str], ...] = (
    ("species", "Species"),
    ("logfc_threshold", "logFC threshold"),
    ("relevel", "Relevel"),
    ("batch_effect", "Batch effect"),
    ("min_deg_pathway", "Min DEG per pathway"),
)


@dataclass(frozen=True, slots=True)
class FailureEntry:
    stage: str
    cause: str
    exit_code: int | None
    stderr_tail: str = ""


@dataclass(frozen=True, slots=True)
class SkipEntry:
    stage: str
    blocked_by: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class RunSummary:
    """Descriptive fields of a run plus, once finalized, its outcome.

    Attributes:
        run_name: Run name
        started_at: Run start time
        fields: Key-ordered descriptive fields (inputs, resources, dirs)
        completed_at: Completion time (None until finalized)
        duration_seconds: Run duration (None until finalized)
        success: Whether every stage succeeded (None until finalized)
        exit_status: Exit status of the first failing tool, 0 on success
        failures: Every failed stage with its cause
        skipped: Every skipped stage with the upstream that blocked it
        stage_statuses: Stage name -> terminal status, topological order
    """

    run_name: str
    started_at: datetime
    fields: Mapping[str, str] = field(default_factory=dict)
    completed_at: datetime | None = None
    duration_seconds: float | None = None
    success: bool | None = None
    exit_status: int | None = None
    failures: tuple[FailureEntry, ...] = ()
    skipped: tuple[SkipEntry, ...] = ()
    stage_statuses: Mapping[str, StageStatus] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))
        object.__setattr__(self, "stage_statuses", MappingProxyType(dict(self.stage_statuses)))

    @property
    def is_final(self) -> bool:
        return self.completed_at is not None

    @property
    def duration(self) -> str:
        if self.duration_seconds is None:
            return "-"
        return format_duration(self.duration_seconds)

    @property
    def error_report(self) -> str:
        """Causes of every failed stage, one block per stage."""
        blocks = []
        for failure in self.failures:
            block = f"{failure.stage}: {failure.cause}"
            if failure.stderr_tail:
                block = f"{block}\n{failure.stderr_tail}"
            blocks.append(block)
        return "\n\n".join(blocks)

    def finalize(self, result: RunResult, completed_at: datetime | None = None) -> RunSummary:
        """Reduce ``result`` into a new, finalized summary.

        Raises:
            ValueError: The summary was already finalized
        """
        if self.is_final:
            raise ValueError(f"Run summary for '{self.run_name}' is already finalized")

        failures: list[FailureEntry] = []
        skipped: list[SkipEntry] = []
        for stage_result in result.results.values():
            if stage_result.status == StageStatus.FAILED:
                assert stage_result.failure is not None
                failure = stage_result.failure
                failures.append(FailureEntry(stage_result.stage, failure.cause, failure.exit_code, failure.stderr_tail))
            elif stage_result.status == StageStatus.SKIPPED:
                skipped.append(SkipEntry(stage_result.stage, stage_result.blocked_by))

        success = result.status == RunStatus.COMPLETED
        if success:
            exit_status = 0
        else:
            exit_status = next((f.exit_code for f in failures if f.exit_code is not None), 1)

        return dataclasses.replace(
            self,
            completed_at=completed_at or datetime.now(),
            duration_seconds=result.duration_seconds,
            success=success,
            exit_status=exit_status,
            failures=tuple(failures),
            skipped=tuple(skipped),
            stage_statuses={name: r.status for name, r in result.results.items()},
        )

    def to_dict(self) -> dict[str, object]:
        """JSON-compatible representation (for the JSON output format)."""
        return {
            "run_name": self.run_name,
            "started_at": self.started_at.isoformat(timespec="seconds"),
            "completed_at": self.completed_at.isoformat(timespec="seconds") if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "success": self.success,
            "exit_status": self.exit_status,
            "fields": dict(self.fields),
            "failures": [dataclasses.asdict(f) for f in self.failures],
            "skipped": [{"stage": s.stage, "blocked_by": list(s.blocked_by)} for s in self.skipped],
            "stages": {name: status.value for name, status in self.stage_statuses.items()},
        }


def format_duration(seconds: float) -> str:
    """``3725.0`` -> ``"1h 2m 5s"``."""
    total = round(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def build_run_summary(
    context: RunContext,
    *,
    profile: str = "standard",
    container: str | None = None,
    email: str | None = None,
    command_line: str | None = None,
) -> RunSummary:
    """Assemble the start-of-run summary from the run context."""
    fields: dict[str, str] = {
        "Run Name": context.run_name,
        "Pipeline Version": __version__,
        "Mode": "report" if context.report_mode else "no report (--NoReportNeeded)",
    }

    for name, resolved in context.inputs.items():
        fields[resolved.spec.label] = str(resolved.value)

    for key, label in _VALUE_LABELS:
        value = context.values.get(key)
        if value is not None:
            fields[label] = str(value)

    if context.samples:
        layout = "paired-end" if all(s.paired for s in context.samples) else "single-end"
        fields["Samples"] = f"{len(context.samples)} ({layout}): {', '.join(s.name for s in context.samples)}"

    fields["Max Resources"] = context.resources.describe()
    fields["Max Workers"] = str(context.resources.max_workers)
    if container:
        fields["Container"] = container
    fields["Output dir"] = str(context.outdir)
    fields["Launch dir"] = str(context.launch_dir)
    fields["Working dir"] = str(context.work_dir)
    fields["User"] = context.user
    fields["Config Profile"] = profile
    if email:
        fields["E-mail Address"] = email
    if command_line:
        fields["Command Line"] = command_line
    fields["Started"] = context.started_at.isoformat(sep=" ", timespec="seconds")

    return RunSummary(run_name=context.run_name, started_at=context.started_at, fields=fields)
