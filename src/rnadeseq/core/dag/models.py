# src/rnadeseq/core/dag/models.py
"""Types and exceptions for the stage graph.

Leaf module: only contracts and resource types are imported, so the
builder, the graph and the engine can all depend on it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

from rnadeseq.contracts.commands import CommandTemplate
from rnadeseq.contracts.enums import ArtifactKind, Branch
from rnadeseq.contracts.results import ArtifactRef
from rnadeseq.core.resources import ResourceRequest


class GraphValidationError(ValueError):
    """Raised when graph validation fails."""

    pass


_STAGE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


@dataclass(frozen=True, slots=True)
class ParameterSource:
    """Binds a resolved pipeline parameter."""

    name: str


@dataclass(frozen=True, slots=True)
class StaticSource:
    """Binds paths known at build time (e.g. a sample's read files)."""

    paths: tuple[Path, ...]


type BindingSource = ParameterSource | StaticSource | ArtifactRef


@dataclass(frozen=True, slots=True)
class InputBinding:
    """One input of a stage: where it comes from and the alias commands use.

    Several bindings may share an alias; their paths are concatenated in
    binding order. This is how collection stages receive one path per
    upstream stage.

    Attributes:
        alias: Name referenced by command template arguments
        source: Parameter, static paths, or an upstream artifact
        stage_as: Copy the input into this path under the stage namespace
            before running (a directory for multi-path or unpacked inputs)
        unpack: Extract the (zip) input into ``stage_as``
        concatenate: Concatenate all paths into the single file ``stage_as``
    """

    alias: str
    source: BindingSource
    stage_as: str | None = None
    unpack: bool = False
    concatenate: bool = False

    def __post_init__(self) -> None:
        if (self.unpack or self.concatenate) and self.stage_as is None:
            raise GraphValidationError(f"Binding '{self.alias}': unpack/concatenate need a stage_as target")
        if self.unpack and self.concatenate:
            raise GraphValidationError(f"Binding '{self.alias}': unpack and concatenate are exclusive")

    @property
    def upstream_stage(self) -> str | None:
        if isinstance(self.source, ArtifactRef):
            return self.source.stage
        return None


@dataclass(frozen=True, slots=True)
class OutputSpec:
    """A declared stage output.

    Attributes:
        name: Output name, unique within the stage
        kind: FILE, FILE_SET or ZIP_ARCHIVE
        pattern: Path relative to the namespace. A glob for FILE_SET, the
            archive file name for ZIP_ARCHIVE.
        members: ZIP_ARCHIVE only: namespace-relative files or directories
            packed into the archive, in order
        optional: FILE_SET only: an empty match is accepted
        publish: Copy to the stage's publish directory
    """

    name: str
    kind: ArtifactKind
    pattern: str
    members: tuple[str, ...] = ()
    optional: bool = False
    publish: bool = True

    def __post_init__(self) -> None:
        if self.kind == ArtifactKind.ZIP_ARCHIVE and not self.members:
            raise GraphValidationError(f"Output '{self.name}': a zip archive needs members")
        if self.kind != ArtifactKind.ZIP_ARCHIVE and self.members:
            raise GraphValidationError(f"Output '{self.name}': only zip archives take members")


@dataclass(frozen=True, slots=True)
class StageSpec:
    """A node of the stage graph: one external tool invocation step.

    A stage runs its commands in order inside its private namespace
    ``work_dir/<name>``. Collection stages (``collect=True``) sit behind a
    join barrier: they wait for every upstream stage to be terminal and are
    skipped rather than run on partial input.
    """

    name: str
    branch: Branch
    commands: tuple[CommandTemplate, ...]
    inputs: tuple[InputBinding, ...] = ()
    outputs: tuple[OutputSpec, ...] = ()
    resources: ResourceRequest = field(default_factory=ResourceRequest)
    publish_dir: str | None = None
    collect: bool = False
    scratch_dirs: tuple[str, ...] = ()
    description: str = ""

    def __post_init__(self) -> None:
        if not _STAGE_NAME_PATTERN.match(self.name):
            raise GraphValidationError(f"Invalid stage name: {self.name!r}")
        if not self.commands:
            raise GraphValidationError(f"Stage '{self.name}' has no commands")
        names = [output.name for output in self.outputs]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise GraphValidationError(f"Stage '{self.name}' declares duplicate outputs: {duplicates}")

    @property
    def upstream_stages(self) -> tuple[str, ...]:
        """Stages this one consumes artifacts from, in first-binding order."""
        seen: dict[str, None] = {}
        for binding in self.inputs:
            if binding.upstream_stage is not None:
                seen.setdefault(binding.upstream_stage, None)
        return tuple(seen)

    @property
    def parameters(self) -> tuple[str, ...]:
        return tuple(b.source.name for b in self.inputs if isinstance(b.source, ParameterSource))

    def output(self, name: str) -> OutputSpec:
        for output in self.outputs:
            if output.name == name:
                return output
        raise KeyError(f"Stage '{self.name}' has no output '{name}'")

    def has_output(self, name: str) -> bool:
        return any(output.name == name for output in self.outputs)


def _suggest_similar(name: str, candidates: list[str]) -> list[str]:
    """Suggest similar names for wiring validation errors."""
    import difflib

    return difflib.get_close_matches(name, candidates, n=3, cutoff=0.6)
