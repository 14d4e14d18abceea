# src/rnadeseq/core/resources.py
"""Resource requests, unit parsing, and capping against the run budget.

Memory and time accept the unit notation used in workflow configs
(``"128.GB"``, ``"16 GB"``, ``"240.h"``, ``"30m"``) as well as bare numbers
(gigabytes and hours respectively).
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from rnadeseq.contracts.run import ResourceLimits

_QUANTITY_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*\.?\s*([a-zA-Z]*)\s*$")

_MEMORY_UNITS_GB: dict[str, float] = {
    "": 1.0,
    "b": 1 / 1024**3,
    "kb": 1 / 1024**2,
    "mb": 1 / 1024,
    "gb": 1.0,
    "tb": 1024.0,
}

_TIME_UNITS_SECONDS: dict[str, float] = {
    "": 3600.0,
    "s": 1.0,
    "sec": 1.0,
    "m": 60.0,
    "min": 60.0,
    "h": 3600.0,
    "d": 86400.0,
}


def _split_quantity(text: str, what: str) -> tuple[float, str]:
    match = _QUANTITY_PATTERN.match(text)
    if match is None:
        raise ValueError(f"Cannot parse {what} {text!r}")
    return float(match.group(1)), match.group(2).lower()


def parse_memory_gb(value: str | float | int) -> float:
    """Parse a memory quantity into gigabytes."""
    if isinstance(value, int | float):
        return float(value)
    amount, unit = _split_quantity(value, "memory")
    if unit not in _MEMORY_UNITS_GB:
        raise ValueError(f"Unknown memory unit {unit!r} in {value!r}")
    return amount * _MEMORY_UNITS_GB[unit]


def parse_duration_seconds(value: str | float | int) -> float:
    """Parse a duration into seconds. Bare numbers are hours."""
    if isinstance(value, int | float):
        return float(value) * 3600.0
    amount, unit = _split_quantity(value, "duration")
    if unit not in _TIME_UNITS_SECONDS:
        raise ValueError(f"Unknown time unit {unit!r} in {value!r}")
    return amount * _TIME_UNITS_SECONDS[unit]


@dataclass(frozen=True, slots=True)
class ResourceRequest:
    """What a stage asks for. Capped by the run's ResourceLimits before use."""

    cpus: int = 1
    memory_gb: float = 2.0
    time_seconds: float = 3600.0

    def scaled(self, attempt: int) -> ResourceRequest:
        """Request for a retry: memory and time grow with the attempt number."""
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        return ResourceRequest(
            cpus=self.cpus,
            memory_gb=self.memory_gb * attempt,
            time_seconds=self.time_seconds * attempt,
        )


def check_max(request: ResourceRequest, limits: ResourceLimits) -> ResourceRequest:
    """Cap every dimension of ``request`` at the run's maximum."""
    return ResourceRequest(
        cpus=min(request.cpus, limits.max_cpus),
        memory_gb=min(request.memory_gb, limits.max_memory_gb),
        time_seconds=min(request.time_seconds, limits.max_time_seconds),
    )
