# src/rnadeseq/pipeline.py
"""Run assembly: settings -> RunContext -> graph -> results -> report.

prepare_run() does all validation that must happen before any stage
starts and raises one InputResolutionError listing every problem.
execute_run() then runs the graph and the completion reporter.
"""

from __future__ import annotations

import getpass
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog

from rnadeseq import __version__
from rnadeseq.contracts.enums import RunMode
from rnadeseq.contracts.errors import InputError, MissingRequiredInput, SampleDiscoveryError
from rnadeseq.contracts.run import RunContext, Sample
from rnadeseq.core.config import PipelineSettings
from rnadeseq.core.dag.builder import build_stage_graph
from rnadeseq.core.dag.graph import StageGraph
from rnadeseq.core.events import EventBusProtocol
from rnadeseq.core.logging import bind_run, unbind_run
from rnadeseq.core.resolver import resolve_all
from rnadeseq.core.samples import discover_samples
from rnadeseq.engine.clock import Clock
from rnadeseq.engine.executor import StageExecutor
from rnadeseq.engine.orchestrator import Orchestrator, RunResult
from rnadeseq.engine.runner import CommandRunner, SubprocessRunner
from rnadeseq.reporting.completion import CompletionOutcome, CompletionReporter
from rnadeseq.reporting.notify import EmailNotifier, MailTransport
from rnadeseq.reporting.summary import build_run_summary
from rnadeseq.stages import PARAMETERS

slog = structlog.get_logger(__name__)


def default_run_name(now: datetime) -> str:
    return f"rnadeseq_{now:%Y%m%d_%H%M%S}"


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


def supplied_values(settings: PipelineSettings) -> dict[str, str | None]:
    """Raw file inputs by parameter name, plus ``reads`` for companion rules."""
    supplied: dict[str, str | None] = dict(settings.inputs.model_dump())
    metagenomics = settings.metagenomics
    supplied["nucleotide_db"] = metagenomics.nucleotide_db
    supplied["protein_db"] = metagenomics.protein_db
    supplied["taxonomic_db"] = metagenomics.taxonomic_db
    supplied["reads"] = metagenomics.reads
    return supplied


def run_values(settings: PipelineSettings) -> dict[str, Any]:
    """Scalar values commands may reference."""
    analysis = settings.analysis
    return {
        "species": analysis.species or None,
        "logfc_threshold": analysis.logfc_threshold,
        "relevel": analysis.relevel or None,
        "batch_effect": analysis.batch_effect,
        "min_deg_pathway": analysis.min_deg_pathway,
        "pipeline_version": __version__,
    }


def prepare_run(
    settings: PipelineSettings,
    *,
    now: datetime | None = None,
    launch_dir: Path | None = None,
    user: str | None = None,
) -> RunContext:
    """Resolve every input and build the immutable run context.

    Raises:
        InputResolutionError: Listing every missing input, nonexistent
            path and read discovery problem
    """
    started_at = now or datetime.now()
    mode = settings.mode
    errors: list[InputError] = []

    samples: tuple[Sample, ...] = ()
    if settings.metagenomics.reads:
        try:
            samples = discover_samples(settings.metagenomics.reads, single_end=settings.metagenomics.single_end)
        except SampleDiscoveryError as e:
            errors.append(e)

    values = run_values(settings)
    if mode == RunMode.REPORT and not values["species"]:
        errors.append(MissingRequiredInput("species", flag="--species", reason="required in report mode"))

    inputs = resolve_all(PARAMETERS, supplied_values(settings), mode, extra_errors=errors)

    return RunContext(
        run_name=settings.name or default_run_name(started_at),
        mode=mode,
        inputs=inputs,
        outdir=settings.outdir.expanduser().resolve(),
        work_dir=settings.work_dir.expanduser().resolve(),
        values=values,
        samples=samples,
        resources=settings.resources.to_limits(),
        launch_dir=launch_dir or Path.cwd(),
        user=user or _current_user(),
        started_at=started_at,
    )


@dataclass(frozen=True, slots=True)
class PipelineOutcome:
    context: RunContext
    graph: StageGraph
    result: RunResult
    completion: CompletionOutcome

    @property
    def success(self) -> bool:
        return self.result.success


def execute_run(
    settings: PipelineSettings,
    context: RunContext,
    *,
    graph: StageGraph | None = None,
    runner: CommandRunner | None = None,
    event_bus: EventBusProtocol | None = None,
    transport: MailTransport | None = None,
    clock: Clock | None = None,
    command_line: str | None = None,
) -> PipelineOutcome:
    """Run the graph for ``context`` and write the completion report.

    Raises:
        GraphValidationError: The planned stages do not form a valid DAG
        OSError: The completion report could not be written
    """
    if graph is None:
        graph = build_stage_graph(context)

    summary = build_run_summary(
        context,
        profile=settings.profile,
        container=settings.container,
        email=settings.notification.email,
        command_line=command_line,
    )

    bind_run(context.run_name, context.mode.value)
    try:
        slog.info("run_planned", stages=graph.stage_count, outdir=context.outdir, work_dir=context.work_dir)
        executor = StageExecutor(context, runner if runner is not None else SubprocessRunner(clock=clock), clock=clock)
        result = Orchestrator(executor, event_bus=event_bus, clock=clock).run(graph)

        notifier = EmailNotifier(settings.notification, transport) if settings.notification.email else None
        completion = CompletionReporter(context, notifier=notifier).complete(summary, result)
    finally:
        unbind_run()
    return PipelineOutcome(context=context, graph=graph, result=result, completion=completion)
