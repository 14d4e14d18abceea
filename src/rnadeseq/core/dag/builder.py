# src/rnadeseq/core/dag/builder.py
"""Stage graph construction for one run.

Decides which catalogue stages a run schedules, then wires and validates
them. Scheduling is decided here, at build time: a stage that is not
needed is never added to the graph, as opposed to being skipped at
runtime.

Dependency: the stage catalogue, which depends only on models.py.
"""

from __future__ import annotations

import structlog

from rnadeseq.contracts.run import RunContext
from rnadeseq.core.dag.graph import StageGraph
from rnadeseq.core.dag.models import StageSpec
from rnadeseq.stages import (
    PARAMETER_NAMES,
    deseq2_stage,
    humann2_merge_stage,
    humann2_stage,
    krona_stage,
    output_documentation_stage,
    pathway_stage,
    prepare_reference_stage,
    report_stage,
    software_versions_stage,
)

slog = structlog.get_logger(__name__)


def plan_stages(context: RunContext) -> list[StageSpec]:
    """Select the stages for ``context``.

    Rules:
    - The differential expression stage needs raw counts.
    - Pathway analysis needs the differential expression stage and a species.
    - Report-only stages (versions, report, documentation) exist only in
      report mode.
    - The metagenomic sub-graph needs at least one discovered sample. The
      reference is prepared once and broadcast to every per-sample stage;
      the merge and Krona stages join all of them.
    """
    stages: list[StageSpec] = []

    has_deseq2 = context.inputs.is_present("rawcounts")
    has_pathway = has_deseq2 and bool(context.values.get("species"))

    if has_deseq2:
        stages.append(deseq2_stage())
    if has_pathway:
        stages.append(pathway_stage())

    if context.report_mode:
        stages.append(software_versions_stage())
        stages.append(output_documentation_stage())
        if has_deseq2:
            stages.append(report_stage(with_pathway=has_pathway))

    if context.samples:
        stages.append(prepare_reference_stage())
        stages.extend(humann2_stage(sample) for sample in context.samples)
        stages.append(humann2_merge_stage(context.samples))
        stages.append(krona_stage(context.samples))

    return stages


def build_stage_graph(context: RunContext) -> StageGraph:
    """Plan, wire and validate the stage graph for ``context``.

    Raises:
        GraphValidationError: If the planned stages do not form a valid DAG
    """
    stages = plan_stages(context)
    graph = StageGraph.from_stages(stages, parameters=PARAMETER_NAMES)
    if graph.stage_count == 0:
        slog.warning("empty_stage_graph", mode=context.mode.value)
    slog.debug(
        "stage_graph_built",
        stages=graph.stage_count,
        edges=graph.edge_count,
        order=graph.topological_order(),
    )
    return graph
