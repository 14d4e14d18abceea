# src/rnadeseq/engine/__init__.py
"""Execution engine: materialize, run, collect and publish stages.

- Orchestrator: schedules a StageGraph on a bounded worker pool
- StageExecutor: runs one stage in its private namespace
- JoinBarrier: all-or-nothing fan-in for collection stages
- RetryManager: tenacity-backed retry of resource-killed stages

Example:
    from rnadeseq.engine import Orchestrator, StageExecutor, SubprocessRunner

    executor = StageExecutor(context, SubprocessRunner())
    result = Orchestrator(executor).run(graph)
"""

from rnadeseq.engine.barrier import BarrierOutcome, JoinBarrier
from rnadeseq.engine.clock import DEFAULT_CLOCK, Clock, MockClock, SystemClock
from rnadeseq.engine.executor import StageExecutor, write_archive
from rnadeseq.engine.materializer import bind_inputs, materialize
from rnadeseq.engine.orchestrator import Orchestrator, RunResult
from rnadeseq.engine.retry import (
    RETRYABLE_EXIT_CODES,
    MaxRetriesExceeded,
    RetryConfig,
    RetryManager,
    is_resource_kill,
)
from rnadeseq.engine.runner import CommandRunner, SubprocessRunner

__all__ = [
    "DEFAULT_CLOCK",
    "RETRYABLE_EXIT_CODES",
    "BarrierOutcome",
    "Clock",
    "CommandRunner",
    "JoinBarrier",
    "MaxRetriesExceeded",
    "MockClock",
    "Orchestrator",
    "RetryConfig",
    "RetryManager",
    "RunResult",
    "StageExecutor",
    "SubprocessRunner",
    "SystemClock",
    "bind_inputs",
    "is_resource_kill",
    "materialize",
    "write_archive",
]
