# tests/engine/test_orchestrator.py
"""Tests for Orchestrator scheduling: fan-out, fan-in barriers, skip propagation."""

import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pytest

from rnadeseq.contracts.enums import RunMode, RunStatus, StageStatus
from rnadeseq.contracts.errors import StageFailure
from rnadeseq.contracts.events import RunFinished, RunStarted, StageCompleted, StageFailed, StageSkipped, StageStarted
from rnadeseq.contracts.results import ArtifactRef, StageResult
from rnadeseq.contracts.run import ResourceLimits, RunContext
from rnadeseq.core.dag import InputBinding, StageGraph, StageSpec
from rnadeseq.core.dag.builder import build_stage_graph
from rnadeseq.core.events import EventBus
from rnadeseq.engine.clock import MockClock
from rnadeseq.engine.executor import StageExecutor
from rnadeseq.engine.orchestrator import Orchestrator
from tests.fixtures.factories import make_context, make_samples, make_stage, write_reads
from tests.fixtures.runners import ScriptedRunner


class ScriptedExecutor:
    """Executor stub: fails or crashes the named stages, succeeds the rest, tracks concurrency."""

    def __init__(self, context: RunContext, *, fail: set[str] | None = None, crash: set[str] | None = None) -> None:
        self._context = context
        self._fail = fail or set()
        self._crash = crash or set()
        self._lock = threading.Lock()
        self._running = 0
        self.max_concurrent = 0
        self.executed: list[str] = []
        self.upstream_seen: dict[str, set[str]] = {}

    @property
    def context(self) -> RunContext:
        return self._context

    def execute(self, stage: StageSpec, upstream: Mapping[str, StageResult]) -> StageResult:
        with self._lock:
            self._running += 1
            self.max_concurrent = max(self.max_concurrent, self._running)
            self.executed.append(stage.name)
            self.upstream_seen[stage.name] = set(upstream)
        try:
            if stage.name in self._crash:
                raise UnicodeEncodeError("utf-8", "\udcff", 0, 1, "surrogates not allowed")
            if stage.name in self._fail:
                return StageResult(
                    stage=stage.name,
                    status=StageStatus.FAILED,
                    failure=StageFailure(stage.name, "scripted failure", exit_code=2),
                    attempts=1,
                )
            return StageResult(stage=stage.name, status=StageStatus.SUCCEEDED, attempts=1)
        finally:
            with self._lock:
                self._running -= 1


def _consumes(stage: str) -> InputBinding:
    return InputBinding("in", ArtifactRef(stage, "out"))


def _fan_graph() -> StageGraph:
    """reference -> a, b, c -> merge (collect); b -> b_report."""
    return StageGraph.from_stages(
        [
            make_stage("reference"),
            make_stage("a", inputs=(_consumes("reference"),)),
            make_stage("b", inputs=(_consumes("reference"),)),
            make_stage("c", inputs=(_consumes("reference"),)),
            make_stage("b_report", inputs=(_consumes("b"),)),
            make_stage("merge", inputs=(_consumes("a"), _consumes("b"), _consumes("c")), collect=True),
            make_stage("independent"),
        ]
    )


def _record(bus: EventBus) -> list[Any]:
    events: list[Any] = []
    for event_type in (RunStarted, StageStarted, StageCompleted, StageFailed, StageSkipped, RunFinished):
        bus.subscribe(event_type, events.append)
    return events


class TestScheduling:
    def test_all_succeed(self, tmp_path: Path) -> None:
        executor = ScriptedExecutor(make_context(tmp_path, mode=RunMode.NO_REPORT))

        result = Orchestrator(executor, clock=MockClock()).run(_fan_graph())

        assert result.status == RunStatus.COMPLETED
        assert result.success
        assert len(result.succeeded) == 7
        assert executor.upstream_seen["merge"] == {"a", "b", "c"}
        assert list(result.results) == _fan_graph().topological_order()

    def test_failure_skips_only_dependents(self, tmp_path: Path) -> None:
        executor = ScriptedExecutor(make_context(tmp_path, mode=RunMode.NO_REPORT), fail={"b"})

        result = Orchestrator(executor).run(_fan_graph())

        assert result.status == RunStatus.FAILED
        statuses = {name: r.status for name, r in result.results.items()}
        assert statuses == {
            "reference": StageStatus.SUCCEEDED,
            "a": StageStatus.SUCCEEDED,
            "b": StageStatus.FAILED,
            "c": StageStatus.SUCCEEDED,
            "b_report": StageStatus.SKIPPED,
            "merge": StageStatus.SKIPPED,
            "independent": StageStatus.SUCCEEDED,
        }
        assert result.results["b_report"].blocked_by == ("b",)
        assert result.results["merge"].blocked_by == ("b",)
        assert "merge" not in executor.executed
        assert "b_report" not in executor.executed

    def test_skip_propagates_transitively(self, tmp_path: Path) -> None:
        graph = StageGraph.from_stages(
            [
                make_stage("root"),
                make_stage("mid", inputs=(_consumes("root"),)),
                make_stage("leaf", inputs=(_consumes("mid"),)),
            ]
        )
        executor = ScriptedExecutor(make_context(tmp_path, mode=RunMode.NO_REPORT), fail={"root"})

        result = Orchestrator(executor).run(graph)

        assert result.results["mid"].blocked_by == ("root",)
        assert result.results["leaf"].blocked_by == ("mid",)
        assert executor.executed == ["root"]

    def test_worker_limit_is_respected(self, tmp_path: Path) -> None:
        graph = StageGraph.from_stages([make_stage(f"s{i}") for i in range(8)])
        executor = ScriptedExecutor(make_context(tmp_path, mode=RunMode.NO_REPORT))

        Orchestrator(executor, max_workers=2).run(graph)

        assert executor.max_concurrent <= 2
        assert len(executor.executed) == 8

    def test_default_worker_limit_comes_from_context(self, tmp_path: Path) -> None:
        context = make_context(tmp_path, mode=RunMode.NO_REPORT, resources=ResourceLimits(max_workers=1))
        graph = StageGraph.from_stages([make_stage(f"s{i}") for i in range(4)])
        executor = ScriptedExecutor(context)

        Orchestrator(executor).run(graph)

        assert executor.max_concurrent == 1

    def test_invalid_worker_limit(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="max_workers"):
            Orchestrator(ScriptedExecutor(make_context(tmp_path, mode=RunMode.NO_REPORT)), max_workers=0)

    def test_empty_graph(self, tmp_path: Path) -> None:
        executor = ScriptedExecutor(make_context(tmp_path, mode=RunMode.NO_REPORT))

        result = Orchestrator(executor).run(StageGraph.from_stages([]))

        assert result.status == RunStatus.COMPLETED
        assert result.results == {}

    def test_executor_crash_fails_the_stage_and_run_still_finishes(self, tmp_path: Path) -> None:
        bus = EventBus()
        events = _record(bus)
        executor = ScriptedExecutor(make_context(tmp_path, mode=RunMode.NO_REPORT), crash={"b"})

        result = Orchestrator(executor, event_bus=bus).run(_fan_graph())

        crashed = result.results["b"]
        assert crashed.status == StageStatus.FAILED
        assert crashed.failure is not None
        assert "UnicodeEncodeError" in crashed.failure.cause
        assert crashed.failure.exit_code is None
        assert result.results["b_report"].blocked_by == ("b",)
        assert result.results["merge"].blocked_by == ("b",)
        assert result.results["independent"].succeeded
        assert isinstance(events[-1], RunFinished)
        assert events[-1].failed == 1


class TestEvents:
    def test_event_sequence(self, tmp_path: Path) -> None:
        bus = EventBus()
        events = _record(bus)
        graph = StageGraph.from_stages([make_stage("first"), make_stage("second", inputs=(_consumes("first"),))])
        executor = ScriptedExecutor(make_context(tmp_path, mode=RunMode.NO_REPORT, run_name="evt"), fail={"first"})

        Orchestrator(executor, event_bus=bus).run(graph)

        assert [type(e) for e in events] == [RunStarted, StageStarted, StageFailed, StageSkipped, RunFinished]
        assert events[0].stages == ("first", "second")
        assert events[2].exit_code == 2
        assert events[3].blocked_by == ("first",)
        finished = events[-1]
        assert (finished.run_name, finished.status, finished.failed, finished.skipped) == ("evt", RunStatus.FAILED, 1, 1)


class TestMetagenomicsFanIn:
    """Real executor and catalogue stages, three samples, one failing."""

    def test_failed_sample_blocks_merge_and_krona_only(self, tmp_path: Path, databases: dict[str, str]) -> None:
        samples = make_samples(write_reads(tmp_path / "reads", ["a", "b", "c"]))
        context = make_context(tmp_path, mode=RunMode.NO_REPORT, supplied=databases, samples=samples)
        runner = ScriptedRunner(exit_codes={"humann2_b": [1]})
        graph = build_stage_graph(context)

        result = Orchestrator(StageExecutor(context, runner)).run(graph)

        assert result.results["prepare_reference"].succeeded
        assert result.results["humann2_a"].succeeded
        assert result.results["humann2_c"].succeeded
        assert result.results["humann2_b"].status == StageStatus.FAILED
        assert result.results["humann2_merge"].blocked_by == ("humann2_b",)
        assert result.results["krona"].blocked_by == ("humann2_b",)
        assert "humann2_merge" not in runner.stages_run
        assert "krona" not in runner.stages_run
        assert not (context.outdir / "metagenomics").exists()

    def test_all_samples_succeed(self, tmp_path: Path, databases: dict[str, str]) -> None:
        samples = make_samples(write_reads(tmp_path / "reads", ["a", "b", "c"]))
        context = make_context(tmp_path, mode=RunMode.NO_REPORT, supplied=databases, samples=samples)
        runner = ScriptedRunner()

        result = Orchestrator(StageExecutor(context, runner)).run(build_stage_graph(context))

        assert result.success
        assert len(runner.specs_for("prepare_reference")) == 1
        merge_argv = runner.commands_for("humann2_merge")[0].argv
        tables = merge_argv[merge_argv.index("--input") + 1]
        assert Path(tables).name == "tables"
        assert sorted(p.name for p in Path(tables).iterdir()) == [
            f"{s}_{t}.tsv" for s in ("a", "b", "c") for t in ("genefamilies", "pathabundance", "pathcoverage")
        ]
        assert (context.outdir / "metagenomics" / "humann2_tables.zip").is_file()
        assert (context.outdir / "metagenomics" / "taxonomy_krona.html").is_file()
