# src/rnadeseq/core/dag/__init__.py
"""Stage graph: declarations, validation and traversal.

The builder is imported from rnadeseq.core.dag.builder directly; it depends
on the stage catalogue, which itself depends on the models here.
"""

from rnadeseq.core.dag.graph import StageGraph
from rnadeseq.core.dag.models import (
    BindingSource,
    GraphValidationError,
    InputBinding,
    OutputSpec,
    ParameterSource,
    StageSpec,
    StaticSource,
)

__all__ = [
    "BindingSource",
    "GraphValidationError",
    "InputBinding",
    "OutputSpec",
    "ParameterSource",
    "StageGraph",
    "StageSpec",
    "StaticSource",
]
