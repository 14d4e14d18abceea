# tests/engine/test_barrier.py
"""Tests for the all-or-nothing join barrier."""

import pytest

from rnadeseq.contracts.enums import StageStatus
from rnadeseq.engine.barrier import BarrierOutcome, JoinBarrier


class TestJoinBarrier:
    def test_holds_until_every_branch_arrives(self) -> None:
        barrier = JoinBarrier("merge", ("a", "b", "c"))

        assert barrier.arrive("a", StageStatus.SUCCEEDED) is None
        assert barrier.arrive("c", StageStatus.SUCCEEDED) is None
        assert barrier.pending == ("b",)
        assert not barrier.is_complete

        outcome = barrier.arrive("b", StageStatus.SUCCEEDED)

        assert outcome == BarrierOutcome(ready=True)
        assert barrier.is_complete

    def test_one_lost_branch_refuses(self) -> None:
        barrier = JoinBarrier("merge", ("a", "b", "c"))
        barrier.arrive("a", StageStatus.SUCCEEDED)
        barrier.arrive("b", StageStatus.FAILED)

        outcome = barrier.arrive("c", StageStatus.SUCCEEDED)

        assert outcome == BarrierOutcome(ready=False, lost_branches=("b",))

    def test_skipped_branches_are_lost_too(self) -> None:
        barrier = JoinBarrier("krona", ("x", "y"))
        barrier.arrive("y", StageStatus.SKIPPED)

        outcome = barrier.arrive("x", StageStatus.FAILED)

        assert outcome is not None
        assert outcome.lost_branches == ("x", "y")

    def test_unknown_branch(self) -> None:
        barrier = JoinBarrier("merge", ("a",))

        with pytest.raises(ValueError, match="not a branch"):
            barrier.arrive("z", StageStatus.SUCCEEDED)

    def test_double_arrival(self) -> None:
        barrier = JoinBarrier("merge", ("a", "b"))
        barrier.arrive("a", StageStatus.SUCCEEDED)

        with pytest.raises(ValueError, match="already arrived"):
            barrier.arrive("a", StageStatus.SUCCEEDED)

    def test_non_terminal_status(self) -> None:
        barrier = JoinBarrier("merge", ("a",))

        with pytest.raises(ValueError, match="non-terminal"):
            barrier.arrive("a", StageStatus.RUNNING)

    def test_needs_branches(self) -> None:
        with pytest.raises(ValueError, match="at least one branch"):
            JoinBarrier("merge", ())
