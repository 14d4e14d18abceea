# src/rnadeseq/engine/materializer.py
"""Command materialization: stage templates + bound inputs -> CommandSpec.

Omission rule: an input that is not a real path (a sentinel or unset
parameter, or an upstream output that produced nothing) contributes no
tokens at all, flag included. The same holds for a None scalar value and a
false switch. Materialization reads only its arguments, so identical
bindings and context always yield identical tokens.
"""

from __future__ import annotations

import string
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

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
from rnadeseq.contracts.parameters import PathValue, ResolvedInputs
from rnadeseq.contracts.results import ArtifactRef, StageResult
from rnadeseq.contracts.run import RunContext
from rnadeseq.core.dag.models import InputBinding, ParameterSource, StageSpec, StaticSource
from rnadeseq.core.resources import ResourceRequest, check_max

type Bindings = Mapping[str, Sequence[Path]]


def resolve_binding(
    binding: InputBinding,
    inputs: ResolvedInputs,
    upstream: Mapping[str, StageResult],
) -> tuple[Path, ...] | None:
    """Paths a binding refers to, or None when the input is absent.

    An upstream artifact with zero paths (an empty optional file set) is
    present but empty, which is different from absent.

    Raises:
        KeyError: The upstream stage has no successful result
    """
    source = binding.source
    if isinstance(source, ParameterSource):
        value = inputs.value(source.name)
        if isinstance(value, PathValue):
            return (value.path,)
        return None
    if isinstance(source, StaticSource):
        return source.paths
    assert isinstance(source, ArtifactRef)
    result = upstream.get(source.stage)
    if result is None or not result.succeeded:
        raise KeyError(f"No successful result for '{source.stage}' (needed for {source})")
    return result.artifact(source.output).paths


def bind_inputs(
    stage: StageSpec,
    inputs: ResolvedInputs,
    upstream: Mapping[str, StageResult],
) -> dict[str, tuple[Path, ...]]:
    """Alias -> paths for every present input, concatenated across bindings."""
    bound: dict[str, tuple[Path, ...]] = {}
    for binding in stage.inputs:
        paths = resolve_binding(binding, inputs, upstream)
        if paths is None:
            continue
        bound[binding.alias] = bound.get(binding.alias, ()) + paths
    return bound


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)


def _formatted_fields(template: str) -> list[str]:
    return [field for _, field, _, _ in string.Formatter().parse(template) if field]


def _arg_tokens(
    arg: CommandArg,
    bindings: Bindings,
    values: Mapping[str, Any],
    resources: ResourceRequest,
) -> list[str]:
    match arg:
        case Token(value=value):
            return [value]
        case InputOption(flag=flag, alias=alias):
            paths = bindings.get(alias, ())
            return [flag, *(str(p) for p in paths)] if paths else []
        case InputArg(alias=alias):
            return [str(p) for p in bindings.get(alias, ())]
        case Repeated(alias=alias, template=template):
            return [template.format(path=p, name=p.name.split(".", 1)[0], filename=p.name) for p in bindings.get(alias, ())]
        case ValueOption(flag=flag, key=key):
            value = values.get(key)
            if value is None or value == "":
                return []
            return [flag, _format_value(value)]
        case ValueArg(key=key):
            value = values.get(key)
            if value is None or value == "":
                return []
            return [_format_value(value)]
        case Switch(flag=flag, key=key):
            return [flag] if values.get(key) else []
        case ResourceOption(flag=flag, resource="cpus"):
            return [flag, str(resources.cpus)]
        case ResourceOption(flag=flag, resource="memory_gb"):
            return [flag, f"{resources.memory_gb:g}"]
        case Formatted(template=template, flag=flag):
            fields = _formatted_fields(template)
            if any(not bindings.get(field) for field in fields):
                return []
            text = template.format(**{field: bindings[field][0] for field in fields})
            return [flag, text] if flag else [text]
    raise TypeError(f"Unknown command argument: {arg!r}")


def materialize_command(
    template: CommandTemplate,
    bindings: Bindings,
    values: Mapping[str, Any],
    resources: ResourceRequest,
) -> Command:
    argv = [template.executable]
    for arg in template.args:
        argv.extend(_arg_tokens(arg, bindings, values, resources))
    return Command(tuple(argv))


def materialize(
    stage: StageSpec,
    bindings: Bindings,
    context: RunContext,
    resources: ResourceRequest | None = None,
) -> CommandSpec:
    """Build the concrete commands of ``stage``.

    Args:
        stage: Stage declaration
        bindings: Alias -> paths of every present input (absent aliases
            are simply missing from the mapping)
        context: Run context supplying scalar values and limits
        resources: Capped resources for this attempt; defaults to the
            stage's request capped by the run's limits

    Returns:
        CommandSpec whose timeout is the stage's capped time budget
    """
    if resources is None:
        resources = check_max(stage.resources, context.resources)
    commands = tuple(materialize_command(t, bindings, context.values, resources) for t in stage.commands)
    return CommandSpec(
        stage=stage.name,
        commands=commands,
        cwd=context.namespace(stage.name),
        timeout_seconds=resources.time_seconds,
    )
