# src/rnadeseq/core/dag/graph.py
"""StageGraph: query, validation, and traversal of the stage DAG.

Construction logic lives in builder.py. Edges run from producer to
consumer and carry the ArtifactRefs that flow along them, so fan-out (one
artifact, many consumers) and fan-in (many producers, one collection
stage) are both explicit in the graph.
"""

from __future__ import annotations

from collections.abc import Iterable

import networkx as nx
from networkx import DiGraph

from rnadeseq.contracts.enums import Branch
from rnadeseq.contracts.results import ArtifactRef
from rnadeseq.core.dag.models import (
    GraphValidationError,
    ParameterSource,
    StageSpec,
    _suggest_similar,
)


class StageGraph:
    """Directed acyclic graph of StageSpecs.

    Wraps a NetworkX DiGraph. Each edge stores the tuple of ArtifactRefs the
    consumer reads from the producer.
    """

    def __init__(self) -> None:
        self._graph: DiGraph[str] = nx.DiGraph()

    @classmethod
    def from_stages(cls, stages: Iterable[StageSpec], *, parameters: Iterable[str] = ()) -> StageGraph:
        """Build and validate a graph from stage specs.

        Args:
            stages: Stage specs, in any order
            parameters: Names of declared pipeline parameters bindings may use

        Raises:
            GraphValidationError: Duplicate stages, dangling bindings, cycles
        """
        graph = cls()
        for stage in stages:
            graph.add_stage(stage)
        graph.connect()
        graph.validate(parameters=frozenset(parameters))
        return graph

    @property
    def stage_count(self) -> int:
        return self._graph.number_of_nodes()

    @property
    def edge_count(self) -> int:
        return self._graph.number_of_edges()

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self._graph.has_node(name)

    def get_nx_graph(self) -> DiGraph[str]:
        """Return a frozen copy of the underlying NetworkX graph."""
        return nx.freeze(self._graph.copy())  # type: ignore[no-any-return]

    def add_stage(self, stage: StageSpec) -> None:
        if self._graph.has_node(stage.name):
            raise GraphValidationError(f"Duplicate stage name: '{stage.name}'")
        self._graph.add_node(stage.name, spec=stage)

    def connect(self) -> None:
        """Add an edge for every artifact binding whose producer is in the graph.

        Bindings to stages that are absent are left dangling and reported by
        validate().
        """
        for name in list(self._graph.nodes()):
            stage = self.get_stage(name)
            for binding in stage.inputs:
                ref = binding.source
                if not isinstance(ref, ArtifactRef) or not self._graph.has_node(ref.stage):
                    continue
                if self._graph.has_edge(ref.stage, name):
                    refs: tuple[ArtifactRef, ...] = self._graph.edges[ref.stage, name]["refs"]
                    if ref not in refs:
                        self._graph.edges[ref.stage, name]["refs"] = (*refs, ref)
                else:
                    self._graph.add_edge(ref.stage, name, refs=(ref,))

    def is_acyclic(self) -> bool:
        """Check if the graph is acyclic (a valid DAG)."""
        return nx.is_directed_acyclic_graph(self._graph)

    def validate(self, *, parameters: frozenset[str] | None = None) -> None:
        """Validate the graph structure.

        Validates:
        1. Graph is acyclic
        2. Every artifact binding names an existing stage and a declared output
        3. Every parameter binding names a declared parameter (when
           ``parameters`` is given)
        4. Collection stages have at least one upstream stage

        Raises:
            GraphValidationError: If validation fails
        """
        if not self.is_acyclic():
            try:
                cycle = nx.find_cycle(self._graph)
                cycle_str = " -> ".join(f"{edge[0]}" for edge in cycle)
                raise GraphValidationError(f"Graph contains a cycle: {cycle_str}")
            except nx.NetworkXNoCycle:
                raise GraphValidationError("Graph contains a cycle") from None

        stage_names = sorted(self._graph.nodes())
        for name in stage_names:
            stage = self.get_stage(name)
            for binding in stage.inputs:
                source = binding.source
                if isinstance(source, ArtifactRef):
                    if not self._graph.has_node(source.stage):
                        suggestions = _suggest_similar(source.stage, stage_names)
                        hint = f" Did you mean: {', '.join(suggestions)}?" if suggestions else ""
                        raise GraphValidationError(f"Stage '{name}' binds '{source}' but stage '{source.stage}' is not in the graph.{hint}")
                    producer = self.get_stage(source.stage)
                    if not producer.has_output(source.output):
                        raise GraphValidationError(
                            f"Stage '{name}' binds '{source}' but '{source.stage}' declares outputs "
                            f"{[o.name for o in producer.outputs]}"
                        )
                elif isinstance(source, ParameterSource) and parameters is not None and source.name not in parameters:
                    suggestions = _suggest_similar(source.name, sorted(parameters))
                    hint = f" Did you mean: {', '.join(suggestions)}?" if suggestions else ""
                    raise GraphValidationError(f"Stage '{name}' binds unknown parameter '{source.name}'.{hint}")
            if stage.collect and not stage.upstream_stages:
                raise GraphValidationError(f"Collection stage '{name}' has no upstream stages to join")

    def topological_order(self) -> list[str]:
        """Return stage names in a deterministic topological order.

        Raises:
            GraphValidationError: If graph has cycles
        """
        try:
            return list(nx.lexicographical_topological_sort(self._graph))
        except nx.NetworkXUnfeasible as e:
            raise GraphValidationError(f"Cannot sort graph: {e}") from e

    def get_stage(self, name: str) -> StageSpec:
        """Get the spec of a stage.

        Raises:
            KeyError: If the stage doesn't exist
        """
        if not self._graph.has_node(name):
            raise KeyError(f"Stage not found: {name}")
        spec: StageSpec = self._graph.nodes[name]["spec"]
        return spec

    def get_stages(self) -> list[StageSpec]:
        """All stage specs in topological order."""
        return [self.get_stage(name) for name in self.topological_order()]

    def upstream(self, name: str) -> tuple[str, ...]:
        return tuple(sorted(self._graph.predecessors(name)))

    def downstream(self, name: str) -> tuple[str, ...]:
        return tuple(sorted(self._graph.successors(name)))

    def descendants(self, name: str) -> frozenset[str]:
        """Every stage that transitively consumes an output of ``name``."""
        return frozenset(nx.descendants(self._graph, name))

    def edge_refs(self, producer: str, consumer: str) -> tuple[ArtifactRef, ...]:
        refs: tuple[ArtifactRef, ...] = self._graph.edges[producer, consumer]["refs"]
        return refs

    def roots(self) -> tuple[str, ...]:
        """Stages with no upstream stage."""
        return tuple(sorted(n for n in self._graph.nodes() if self._graph.in_degree(n) == 0))

    def branch_stages(self, branch: Branch) -> tuple[str, ...]:
        return tuple(name for name in self.topological_order() if self.get_stage(name).branch == branch)
