# src/rnadeseq/engine/barrier.py
"""JoinBarrier: all-or-nothing fan-in for collection stages.

A barrier holds until every expected upstream stage has reached a terminal
state. It then opens (every branch succeeded) or refuses (at least one
branch was lost). There is no first-N or quorum policy: a collection stage
never runs on partial input.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock

from rnadeseq.contracts.enums import StageStatus


@dataclass(frozen=True, slots=True)
class BarrierOutcome:
    """Result of a barrier once every branch has arrived.

    Attributes:
        ready: True when every branch succeeded
        lost_branches: Branch stages that failed or were skipped, sorted
    """

    ready: bool
    lost_branches: tuple[str, ...] = ()


@dataclass
class JoinBarrier:
    """Tracks arrivals for one collection stage.

    Example:
        barrier = JoinBarrier("humann2_merge", ("humann2_a", "humann2_b"))
        barrier.arrive("humann2_a", StageStatus.SUCCEEDED)   # None: still held
        barrier.arrive("humann2_b", StageStatus.FAILED)      # BarrierOutcome(ready=False, ...)
    """

    stage: str
    expected: tuple[str, ...]
    _arrived: dict[str, StageStatus] = field(default_factory=dict, init=False, repr=False)
    _lock: Lock = field(default_factory=Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.expected:
            raise ValueError(f"JoinBarrier for '{self.stage}' needs at least one branch")
        if len(set(self.expected)) != len(self.expected):
            raise ValueError(f"JoinBarrier for '{self.stage}' lists a branch twice")

    def arrive(self, branch: str, status: StageStatus) -> BarrierOutcome | None:
        """Record that ``branch`` reached ``status``.

        Returns:
            The outcome on the last arrival, None while still held

        Raises:
            ValueError: Unknown branch, non-terminal status, or a second arrival
        """
        if branch not in self.expected:
            raise ValueError(f"'{branch}' is not a branch of barrier '{self.stage}'")
        if not status.is_terminal:
            raise ValueError(f"Barrier '{self.stage}' got non-terminal status {status} from '{branch}'")
        with self._lock:
            if branch in self._arrived:
                raise ValueError(f"'{branch}' already arrived at barrier '{self.stage}'")
            self._arrived[branch] = status
            if len(self._arrived) < len(self.expected):
                return None
            return self._outcome()

    def _outcome(self) -> BarrierOutcome:
        lost = tuple(sorted(b for b, s in self._arrived.items() if s != StageStatus.SUCCEEDED))
        return BarrierOutcome(ready=not lost, lost_branches=lost)

    @property
    def pending(self) -> tuple[str, ...]:
        """Branches that have not arrived yet, in expected order."""
        with self._lock:
            return tuple(b for b in self.expected if b not in self._arrived)

    @property
    def is_complete(self) -> bool:
        with self._lock:
            return len(self._arrived) == len(self.expected)
