# src/rnadeseq/contracts/commands.py
"""Command templates and materialized commands.

A stage declares one or more CommandTemplates. Each template is an
executable followed by typed arguments; the materializer turns them into a
concrete CommandSpec once the stage's inputs are bound.

Argument kinds:
    Token          literal token, always emitted
    InputOption    ``flag path...``; omitted when the input is absent
    InputArg       positional path(s); omitted when the input is absent
    Repeated       one formatted token per bound path ("{path}", "{name}")
    ValueOption    ``flag value`` from run values; omitted when value is None
    ValueArg       positional value; omitted when value is None
    Switch         bare flag, emitted only when the run value is truthy
    ResourceOption ``flag n`` from the stage's capped resources
    Formatted      ``[flag] text`` where text is a template over bound inputs
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Literal


@dataclass(frozen=True, slots=True)
class Token:
    value: str


@dataclass(frozen=True, slots=True)
class InputOption:
    flag: str
    alias: str


@dataclass(frozen=True, slots=True)
class InputArg:
    alias: str


@dataclass(frozen=True, slots=True)
class Repeated:
    alias: str
    template: str = "{path}"


@dataclass(frozen=True, slots=True)
class ValueOption:
    flag: str
    key: str


@dataclass(frozen=True, slots=True)
class ValueArg:
    key: str


@dataclass(frozen=True, slots=True)
class Switch:
    flag: str
    key: str


@dataclass(frozen=True, slots=True)
class ResourceOption:
    flag: str
    resource: Literal["cpus", "memory_gb"]


@dataclass(frozen=True, slots=True)
class Formatted:
    """Template over bound inputs, e.g. ``"--bowtie2db {metaphlan_db}"``.

    Placeholders name input aliases and expand to the alias's first path.
    The whole argument is omitted when any referenced input is absent.
    """

    template: str
    flag: str | None = None


type CommandArg = Token | InputOption | InputArg | Repeated | ValueOption | ValueArg | Switch | ResourceOption | Formatted


@dataclass(frozen=True, slots=True)
class CommandTemplate:
    executable: str
    args: tuple[CommandArg, ...] = ()


@dataclass(frozen=True, slots=True)
class Command:
    """One concrete process invocation."""

    argv: tuple[str, ...]

    def __str__(self) -> str:
        return shlex.join(self.argv)


@dataclass(frozen=True, slots=True)
class CommandSpec:
    """Everything needed to run a stage's commands.

    Attributes:
        stage: Stage name
        commands: Commands run in order; the stage fails at the first non-zero exit
        cwd: The stage's private namespace directory
        timeout_seconds: Wall-clock budget for the whole stage (None = unbounded)
    """

    stage: str
    commands: tuple[Command, ...]
    cwd: Path
    timeout_seconds: float | None = None

    @property
    def tokens(self) -> tuple[str, ...]:
        """All tokens of all commands, in order."""
        return tuple(token for command in self.commands for token in command.argv)
