"""Shared contracts for cross-boundary data types.

This package is a LEAF MODULE with no outbound dependencies to core/engine.
Settings classes are NOT re-exported here - import them from
rnadeseq.core.config.

Import patterns:
    from rnadeseq.contracts import StageStatus, ArtifactRef, Sentinel
    from rnadeseq.core.config import PipelineSettings
"""

from rnadeseq.contracts.commands import (
    Command,
    CommandArg,
    CommandSpec,
    CommandTemplate,
    Formatted,
    InputArg,
    InputOption,
    Repeated,
    ResourceOption,
    Switch,
    Token,
    ValueArg,
    ValueOption,
)
from rnadeseq.contracts.enums import (
    ArtifactKind,
    Branch,
    ParameterKind,
    RunMode,
    RunStatus,
    StageStatus,
)
from rnadeseq.contracts.errors import (
    InputError,
    InputResolutionError,
    MissingRequiredInput,
    NotificationFailure,
    PathNotFound,
    SampleDiscoveryError,
    StageFailure,
)
from rnadeseq.contracts.events import (
    RunFinished,
    RunStarted,
    StageCompleted,
    StageFailed,
    StageSkipped,
    StageStarted,
)
from rnadeseq.contracts.parameters import (
    DEFAULT_CONTRASTS,
    NO_FILE,
    SENTINEL_LITERALS,
    ParameterSpec,
    PathValue,
    ResolvedInputs,
    ResolvedParameter,
    ResolvedValue,
    Sentinel,
    Unset,
)
from rnadeseq.contracts.results import Artifact, ArtifactRef, StageResult
from rnadeseq.contracts.run import ResourceLimits, RunContext, Sample

__all__ = [
    "DEFAULT_CONTRASTS",
    "NO_FILE",
    "SENTINEL_LITERALS",
    "Artifact",
    "ArtifactKind",
    "ArtifactRef",
    "Branch",
    "Command",
    "CommandArg",
    "CommandSpec",
    "CommandTemplate",
    "Formatted",
    "InputArg",
    "InputError",
    "InputOption",
    "InputResolutionError",
    "MissingRequiredInput",
    "NotificationFailure",
    "ParameterKind",
    "ParameterSpec",
    "PathNotFound",
    "PathValue",
    "Repeated",
    "ResolvedInputs",
    "ResolvedParameter",
    "ResolvedValue",
    "ResourceLimits",
    "ResourceOption",
    "RunContext",
    "RunFinished",
    "RunMode",
    "RunStarted",
    "RunStatus",
    "Sample",
    "SampleDiscoveryError",
    "Sentinel",
    "StageCompleted",
    "StageFailed",
    "StageFailure",
    "StageResult",
    "StageSkipped",
    "StageStarted",
    "StageStatus",
    "Switch",
    "Token",
    "Unset",
    "ValueArg",
    "ValueOption",
]
