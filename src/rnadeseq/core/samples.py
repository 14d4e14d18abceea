# src/rnadeseq/core/samples.py
"""Metagenomic read discovery.

Turns a read glob into named samples. Paired-end globs carry one brace
group naming the mates, e.g. ``data/*_R{1,2}.fastq.gz``. The text matched by
the first ``*`` in the file name becomes the sample name; when the file name
has no ``*`` (``data/*/reads_R{1,2}.fq``) the last ``*`` of the directory
part names the sample instead. Single-end samples are named after their file
name up to the first dot.

Sample names end up in stage names and work directories, so they are
limited to letters, digits, ``_``, ``.`` and ``-``.
"""

from __future__ import annotations

import glob
import re
from collections import defaultdict
from pathlib import Path

import structlog

from rnadeseq.contracts.errors import SampleDiscoveryError
from rnadeseq.contracts.run import Sample

slog = structlog.get_logger(__name__)

_BRACE_PATTERN = re.compile(r"\{([^{}]+)\}")
_SAMPLE_NAME = re.compile(r"^[A-Za-z0-9_.-]+$")


def _expand_braces(pattern: str) -> list[str]:
    """Expand the first brace group: ``a{1,2}b`` -> ``[a1b, a2b]``."""
    match = _BRACE_PATTERN.search(pattern)
    if match is None:
        return [pattern]
    head, tail = pattern[: match.start()], pattern[match.end() :]
    return [f"{head}{option}{tail}" for option in match.group(1).split(",")]


def _path_regex(path_pattern: str) -> tuple[re.Pattern[str], int | None]:
    """Regex over a whole glob path, plus the group that names the sample.

    Each ``*`` captures within one path component, ``?`` matches one
    character and ``[...]`` stays a character class. The naming group is the
    first capture in the file name, else the last capture in the
    directories, else None.
    """
    parts: list[str] = []
    groups = 0
    basename_start = path_pattern.rfind("/") + 1
    directory_group: int | None = None
    name_group: int | None = None
    position = 0
    while position < len(path_pattern):
        char = path_pattern[position]
        close = path_pattern.find("]", position + 2) if char == "[" else -1
        if char == "*":
            groups += 1
            parts.append("([^/]*?)")
            if position >= basename_start:
                if name_group is None:
                    name_group = groups
            else:
                directory_group = groups
        elif char == "?":
            parts.append("[^/]")
        elif close != -1:
            body = path_pattern[position + 1 : close]
            if body.startswith("!"):
                body = "^" + body[1:]
            parts.append("[" + body.replace("\\", "\\\\") + "]")
            position = close
        else:
            parts.append(re.escape(char))
        position += 1
    regex = re.compile("^" + "".join(parts) + "$")
    return regex, name_group if name_group is not None else directory_group


def _single_end_name(path: Path) -> str:
    return path.name.split(".", 1)[0]


def _check_names(pattern: str, names: list[str]) -> None:
    invalid = sorted(name for name in names if not _SAMPLE_NAME.match(name))
    if invalid:
        listed = ", ".join(repr(name) for name in invalid)
        raise SampleDiscoveryError(
            pattern, f"sample name(s) {listed} may only use letters, digits, '_', '.' and '-'"
        )


def discover_samples(pattern: str, *, single_end: bool = False) -> tuple[Sample, ...]:
    """Expand ``pattern`` into samples sorted by name.

    Raises:
        SampleDiscoveryError: Nothing matched, a mate is missing, two files
            map to the same sample name, the pattern cannot name paired
            samples, or a sample name has characters outside [A-Za-z0-9_.-]
    """
    pattern = str(Path(pattern).expanduser())

    if single_end:
        paths = sorted({Path(p) for mate in _expand_braces(pattern) for p in glob.glob(mate) if Path(p).is_file()})
        if not paths:
            raise SampleDiscoveryError(pattern, "no files matched")
        by_name: dict[str, Path] = {}
        for path in paths:
            name = _single_end_name(path)
            if name in by_name:
                raise SampleDiscoveryError(pattern, f"'{by_name[name].name}' and '{path.name}' both map to sample '{name}'")
            by_name[name] = path
        _check_names(pattern, list(by_name))
        samples = tuple(Sample(name=name, reads=(path.resolve(),)) for name, path in sorted(by_name.items()))
        slog.info("samples_discovered", count=len(samples), paired=False)
        return samples

    mates = _expand_braces(pattern)
    if len(mates) != 2:
        raise SampleDiscoveryError(pattern, "paired-end reads need a two-way brace group such as '_R{1,2}'")

    grouped: dict[str, list[Path | None]] = defaultdict(lambda: [None, None])
    for index, mate_pattern in enumerate(mates):
        regex, name_group = _path_regex(mate_pattern)
        if name_group is None:
            raise SampleDiscoveryError(pattern, "paired-end reads need a '*' to name each sample, e.g. '*_R{1,2}.fq'")
        for raw in sorted(glob.glob(mate_pattern)):
            path = Path(raw)
            match = regex.match(raw)
            if match is None or not path.is_file():
                continue
            name = match.group(name_group)
            if grouped[name][index] is not None:
                raise SampleDiscoveryError(pattern, f"more than one file for mate {index + 1} of sample '{name}'")
            grouped[name][index] = path

    if not grouped:
        raise SampleDiscoveryError(pattern, "no files matched")

    _check_names(pattern, list(grouped))
    incomplete = sorted(name for name, pair in grouped.items() if None in pair)
    if incomplete:
        raise SampleDiscoveryError(pattern, f"missing mate for sample(s): {', '.join(incomplete)}")

    samples = tuple(
        Sample(name=name, reads=tuple(path.resolve() for path in pair if path is not None)) for name, pair in sorted(grouped.items())
    )
    slog.info("samples_discovered", count=len(samples), paired=True)
    return samples
