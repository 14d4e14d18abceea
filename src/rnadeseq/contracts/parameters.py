# src/rnadeseq/contracts/parameters.py
"""Parameter declarations and their resolved states.

A resolved parameter is a tagged variant:

- ``Unset``: nothing supplied and the parameter has no sentinel
- ``Sentinel(value)``: a reserved literal standing in for "absent"
- ``PathValue(path)``: a real, existing path

The command materializer turns ``Sentinel`` and ``Unset`` into flag
omission, so downstream command construction never has to compare strings.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType

from rnadeseq.contracts.enums import ParameterKind

# The two sentinels are independent constants. The contrast table's
# "absent" marker has always been DEFAULT, every other optional file uses
# NO_FILE.
NO_FILE = "NO_FILE"
DEFAULT_CONTRASTS = "DEFAULT"

SENTINEL_LITERALS: frozenset[str] = frozenset({NO_FILE, DEFAULT_CONTRASTS})


@dataclass(frozen=True, slots=True)
class Unset:
    """Nothing was supplied and no sentinel applies."""

    def __str__(self) -> str:
        return "-"


@dataclass(frozen=True, slots=True)
class Sentinel:
    """A synthetic marker for an absent optional input."""

    value: str

    def __post_init__(self) -> None:
        if self.value not in SENTINEL_LITERALS:
            raise ValueError(f"Unknown sentinel literal: {self.value!r}")

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class PathValue:
    """A supplied path that existed at resolution time."""

    path: Path

    def __str__(self) -> str:
        return str(self.path)


type ResolvedValue = Unset | Sentinel | PathValue


@dataclass(frozen=True, slots=True)
class ParameterSpec:
    """Declaration of one file-valued pipeline input.

    Attributes:
        name: Logical name (key in settings and in stage bindings)
        label: Human-readable label used in run summaries
        flag: Command-line flag of the pipeline itself (for diagnostics)
        kind: Whether the path must be a file or a directory
        report_required: Required when report mode is active
        sentinel: Literal substituted when the value is absent and optional;
            None means the parameter resolves to Unset instead
        required_with: Inputs whose presence makes this parameter required
            (e.g. metadata is required as soon as raw counts are given)
    """

    name: str
    label: str
    flag: str
    kind: ParameterKind = ParameterKind.FILE
    report_required: bool = False
    sentinel: str | None = NO_FILE
    required_with: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.sentinel is not None and self.sentinel not in SENTINEL_LITERALS:
            raise ValueError(f"Parameter '{self.name}' declares unknown sentinel {self.sentinel!r}")


@dataclass(frozen=True, slots=True)
class ResolvedParameter:
    """Outcome of resolving one ParameterSpec against a supplied value."""

    spec: ParameterSpec
    value: ResolvedValue

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def is_present(self) -> bool:
        """True only for a real path."""
        return isinstance(self.value, PathValue)

    @property
    def path(self) -> Path | None:
        if isinstance(self.value, PathValue):
            return self.value.path
        return None


class ResolvedInputs(Mapping[str, ResolvedParameter]):
    """Read-only mapping of parameter name to its resolution.

    Resolution happens once per run; every consuming stage reads the same
    shared result without re-validating it.
    """

    __slots__ = ("_items",)

    def __init__(self, resolved: Mapping[str, ResolvedParameter] | None = None) -> None:
        self._items: MappingProxyType[str, ResolvedParameter] = MappingProxyType(dict(resolved or {}))

    def __getitem__(self, name: str) -> ResolvedParameter:
        return self._items[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"ResolvedInputs({dict(self._items)!r})"

    def value(self, name: str) -> ResolvedValue:
        """Resolved value for ``name``; Unset when the parameter was never declared."""
        if name in self._items:
            return self._items[name].value
        return Unset()

    def is_present(self, name: str) -> bool:
        return name in self._items and self._items[name].is_present
