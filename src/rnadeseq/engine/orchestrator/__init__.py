# src/rnadeseq/engine/orchestrator/__init__.py
"""Orchestrator package: schedules a stage graph to completion.

Module structure:
- core.py: Orchestrator class (main entry point)
- types.py: RunResult
"""

from rnadeseq.engine.orchestrator.core import Orchestrator
from rnadeseq.engine.orchestrator.types import RunResult

__all__ = [
    "Orchestrator",
    "RunResult",
]
