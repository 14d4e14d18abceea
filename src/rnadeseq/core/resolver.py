# src/rnadeseq/core/resolver.py
"""Input resolution: supplied strings to Unset, Sentinel or PathValue.

Rules for one parameter (``resolve``):

1. Empty value, required under the active mode -> MissingRequiredInput
2. Empty value, optional -> the parameter's sentinel (no filesystem access),
   or Unset when it declares none
3. Value equal to a sentinel literal -> Sentinel(value), no existence check
4. Any other value -> PathValue if it exists, PathNotFound otherwise

``resolve_all`` applies the rules to a whole parameter set and raises a
single InputResolutionError listing every problem.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path

import structlog

from rnadeseq.contracts.enums import ParameterKind, RunMode
from rnadeseq.contracts.errors import (
    InputError,
    InputResolutionError,
    MissingRequiredInput,
    PathNotFound,
)
from rnadeseq.contracts.parameters import (
    SENTINEL_LITERALS,
    ParameterSpec,
    PathValue,
    ResolvedInputs,
    ResolvedParameter,
    Sentinel,
    Unset,
)

slog = structlog.get_logger(__name__)


def _is_empty(value: str | None) -> bool:
    return value is None or not value.strip()


def is_required(spec: ParameterSpec, mode: RunMode, supplied: Mapping[str, str | None]) -> bool:
    """Whether ``spec`` must be supplied for this run.

    A parameter is required when report mode is active and it is needed by
    the report, or when any input it accompanies was supplied.
    """
    if mode == RunMode.REPORT and spec.report_required:
        return True
    return any(not _is_empty(supplied.get(name)) for name in spec.required_with)


def resolve(
    spec: ParameterSpec,
    supplied_value: str | None,
    mode: RunMode,
    *,
    required: bool | None = None,
) -> ResolvedParameter:
    """Resolve one parameter.

    Args:
        spec: Parameter declaration
        supplied_value: Raw value from settings (None or blank means absent)
        mode: Active run mode
        required: Override of the mode-derived requirement (used by
            resolve_all to account for companion inputs)

    Raises:
        MissingRequiredInput: Required and absent
        PathNotFound: Supplied, not a sentinel, and missing on disk
    """
    if required is None:
        required = mode == RunMode.REPORT and spec.report_required

    if _is_empty(supplied_value):
        if required:
            reason = "required in report mode" if mode == RunMode.REPORT and spec.report_required else None
            raise MissingRequiredInput(spec.name, flag=spec.flag, reason=reason)
        if spec.sentinel is not None:
            return ResolvedParameter(spec=spec, value=Sentinel(spec.sentinel))
        return ResolvedParameter(spec=spec, value=Unset())

    assert supplied_value is not None
    value = supplied_value.strip()

    if value in SENTINEL_LITERALS:
        # Explicitly passing a marker is a request for "absent"
        if required:
            raise MissingRequiredInput(spec.name, flag=spec.flag, reason=f"{value} is not accepted here")
        return ResolvedParameter(spec=spec, value=Sentinel(value))

    path = Path(value).expanduser()
    exists = path.is_dir() if spec.kind == ParameterKind.DIRECTORY else path.is_file()
    if not exists:
        raise PathNotFound(spec.name, path)
    return ResolvedParameter(spec=spec, value=PathValue(path.resolve()))


def resolve_all(
    specs: Iterable[ParameterSpec],
    supplied: Mapping[str, str | None],
    mode: RunMode,
    *,
    extra_errors: Iterable[InputError] = (),
) -> ResolvedInputs:
    """Resolve every declared parameter exactly once.

    Args:
        specs: Parameter declarations
        supplied: Raw values by parameter name (may include names that are
            not parameters themselves, such as ``reads``, so companion rules
            can see them)
        mode: Active run mode
        extra_errors: Problems found by other validators (sample discovery,
            scalar values) to report in the same diagnostic

    Returns:
        Immutable mapping shared by every consuming stage

    Raises:
        InputResolutionError: Listing every missing or nonexistent input
    """
    errors: list[InputError] = list(extra_errors)
    resolved: dict[str, ResolvedParameter] = {}

    for spec in specs:
        if spec.name in resolved:
            raise ValueError(f"Parameter '{spec.name}' declared twice")
        try:
            resolved[spec.name] = resolve(
                spec,
                supplied.get(spec.name),
                mode,
                required=is_required(spec, mode, supplied),
            )
        except InputError as exc:
            errors.append(exc)

    if errors:
        slog.error("input_resolution_failed", problems=len(errors), mode=mode.value)
        raise InputResolutionError(errors)

    slog.debug(
        "inputs_resolved",
        present=sorted(name for name, item in resolved.items() if item.is_present),
        mode=mode.value,
    )
    return ResolvedInputs(resolved)
