# src/rnadeseq/engine/orchestrator/core.py
"""Orchestrator: runs a StageGraph on a bounded worker pool.

Scheduling rules:
- A stage is submitted once every upstream stage has SUCCEEDED.
- When a stage fails or is skipped, each ordinary consumer is skipped at
  once, naming it as the blocker. Stages in other branches are unaffected.
- A collection stage sits behind a JoinBarrier: it waits until every
  upstream stage is terminal, then runs only if all of them succeeded.

Only the scheduling thread touches scheduling state and emits events.
Workers run StageExecutor.execute and hand back a StageResult.
"""

from __future__ import annotations

import contextvars
from collections import deque
from collections.abc import Mapping
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Protocol

import structlog

from rnadeseq.contracts.enums import RunStatus, StageStatus
from rnadeseq.contracts.errors import StageFailure
from rnadeseq.contracts.events import (
    RunFinished,
    RunStarted,
    StageCompleted,
    StageFailed,
    StageSkipped,
    StageStarted,
)
from rnadeseq.contracts.results import StageResult
from rnadeseq.contracts.run import RunContext
from rnadeseq.core.dag.graph import StageGraph
from rnadeseq.core.dag.models import StageSpec
from rnadeseq.core.events import EventBusProtocol, NullEventBus
from rnadeseq.engine.barrier import JoinBarrier
from rnadeseq.engine.clock import DEFAULT_CLOCK, Clock
from rnadeseq.engine.orchestrator.types import RunResult

slog = structlog.get_logger(__name__)


class StageExecutorProtocol(Protocol):
    """What the orchestrator needs from a stage executor."""

    @property
    def context(self) -> RunContext: ...

    def execute(self, stage: StageSpec, upstream: Mapping[str, StageResult]) -> StageResult: ...


class Orchestrator:
    """Runs every stage of a graph to a terminal state.

    Example:
        executor = StageExecutor(context, SubprocessRunner())
        result = Orchestrator(executor, event_bus=bus).run(graph)
    """

    def __init__(
        self,
        executor: StageExecutorProtocol,
        *,
        event_bus: EventBusProtocol | None = None,
        clock: Clock | None = None,
        max_workers: int | None = None,
    ) -> None:
        self._executor = executor
        self._events: EventBusProtocol = event_bus if event_bus is not None else NullEventBus()
        self._clock = clock if clock is not None else DEFAULT_CLOCK
        self._max_workers = max_workers if max_workers is not None else executor.context.resources.max_workers
        if self._max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self._max_workers}")

    def run(self, graph: StageGraph) -> RunResult:
        """Execute ``graph`` and return one result per stage.

        Stage failures never raise; they are reported in the RunResult.
        """
        context = self._executor.context
        order = graph.topological_order()
        started = self._clock.monotonic()

        status: dict[str, StageStatus] = dict.fromkeys(order, StageStatus.PENDING)
        results: dict[str, StageResult] = {}
        waiting_on: dict[str, set[str]] = {name: set(graph.upstream(name)) for name in order}
        barriers: dict[str, JoinBarrier] = {
            name: JoinBarrier(name, graph.upstream(name)) for name in order if graph.get_stage(name).collect
        }
        ready: deque[str] = deque(name for name in order if not waiting_on[name])
        futures: dict[Future[StageResult], str] = {}

        self._events.emit(RunStarted(run_name=context.run_name, mode=context.mode, stages=tuple(order)))
        slog.info("run_started", run_name=context.run_name, mode=context.mode.value, stages=len(order))

        def finish(name: str, result: StageResult) -> None:
            """Record a terminal result and release or skip its consumers."""
            status[name] = result.status
            results[name] = result
            self._emit_result(result)

            for consumer in graph.downstream(name):
                if status[consumer] != StageStatus.PENDING:
                    continue
                barrier = barriers.get(consumer)
                if barrier is not None:
                    outcome = barrier.arrive(name, result.status)
                    if outcome is None:
                        continue
                    if outcome.ready:
                        ready.append(consumer)
                    else:
                        finish(consumer, StageResult.skipped(consumer, outcome.lost_branches))
                elif result.succeeded:
                    waiting_on[consumer].discard(name)
                    if not waiting_on[consumer]:
                        ready.append(consumer)
                else:
                    finish(consumer, StageResult.skipped(consumer, (name,)))

        with ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="stage") as pool:
            while ready or futures:
                while ready:
                    name = ready.popleft()
                    status[name] = StageStatus.RUNNING
                    upstream = {u: results[u] for u in graph.upstream(name)}
                    self._events.emit(StageStarted(stage=name))
                    # Workers inherit the run's logging context
                    work = contextvars.copy_context()
                    futures[pool.submit(work.run, self._executor.execute, graph.get_stage(name), upstream)] = name

                done, _ = wait(futures, return_when=FIRST_COMPLETED)
                for future in done:
                    name = futures.pop(future)
                    finish(name, self._result_of(name, future))

        unfinished = [name for name in order if not status[name].is_terminal]
        if unfinished:
            raise RuntimeError(f"Scheduler stopped with non-terminal stages: {unfinished}")

        ordered = {name: results[name] for name in order}
        run_status = RunStatus.COMPLETED if all(r.succeeded for r in ordered.values()) else RunStatus.FAILED
        run_result = RunResult(
            run_name=context.run_name,
            status=run_status,
            results=ordered,
            duration_seconds=self._clock.monotonic() - started,
        )

        self._events.emit(
            RunFinished(
                run_name=context.run_name,
                status=run_status,
                succeeded=len(run_result.succeeded),
                failed=len(run_result.failed),
                skipped=len(run_result.skipped),
                duration_seconds=run_result.duration_seconds,
            )
        )
        slog.info(
            "run_finished",
            run_name=context.run_name,
            status=run_status.value,
            failed=[r.stage for r in run_result.failed],
            skipped=[r.stage for r in run_result.skipped],
        )
        return run_result

    def _result_of(self, name: str, future: Future[StageResult]) -> StageResult:
        """The stage's result; an executor crash counts as a stage failure."""
        try:
            return future.result()
        except Exception as e:
            slog.exception("stage_crashed", stage=name, error_type=type(e).__name__)
            return StageResult(
                stage=name,
                status=StageStatus.FAILED,
                failure=StageFailure(name, f"unexpected error: {e!r}"),
                attempts=1,
            )

    def _emit_result(self, result: StageResult) -> None:
        if result.status == StageStatus.SUCCEEDED:
            outputs = tuple(str(path) for artifact in result.artifacts.values() for path in artifact.paths)
            self._events.emit(
                StageCompleted(
                    stage=result.stage,
                    duration_seconds=result.duration_seconds,
                    attempts=result.attempts,
                    outputs=outputs,
                )
            )
        elif result.status == StageStatus.FAILED:
            assert result.failure is not None
            self._events.emit(
                StageFailed(
                    stage=result.stage,
                    cause=result.failure.cause,
                    exit_code=result.failure.exit_code,
                    attempts=result.attempts,
                )
            )
        else:
            slog.info("stage_skipped", stage=result.stage, blocked_by=list(result.blocked_by))
            self._events.emit(StageSkipped(stage=result.stage, blocked_by=result.blocked_by))
