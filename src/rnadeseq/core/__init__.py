# src/rnadeseq/core/__init__.py
"""Core infrastructure: configuration, input resolution, stage graph, logging."""

from rnadeseq.core.config import (
    AnalysisSettings,
    InputSettings,
    MetagenomicsSettings,
    NotificationSettings,
    PipelineSettings,
    ResourceSettings,
    load_settings,
    resolve_config,
)
from rnadeseq.core.dag import (
    GraphValidationError,
    InputBinding,
    OutputSpec,
    StageGraph,
    StageSpec,
)
from rnadeseq.core.events import (
    EventBus,
    EventBusProtocol,
    NullEventBus,
)
from rnadeseq.core.logging import bind_run, configure_logging, get_logger, unbind_run
from rnadeseq.core.resolver import resolve, resolve_all
from rnadeseq.core.resources import ResourceRequest, check_max
from rnadeseq.core.samples import discover_samples

__all__ = [
    "AnalysisSettings",
    "EventBus",
    "EventBusProtocol",
    "GraphValidationError",
    "InputBinding",
    "InputSettings",
    "MetagenomicsSettings",
    "NotificationSettings",
    "NullEventBus",
    "OutputSpec",
    "PipelineSettings",
    "ResourceRequest",
    "ResourceSettings",
    "StageGraph",
    "StageSpec",
    "bind_run",
    "check_max",
    "configure_logging",
    "discover_samples",
    "get_logger",
    "load_settings",
    "resolve",
    "resolve_all",
    "resolve_config",
    "unbind_run",
]
