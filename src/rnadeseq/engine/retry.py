# src/rnadeseq/engine/retry.py
"""Retry of resource-killed stages, built on tenacity.

A tool killed by the scheduler or the OOM killer exits with one of
RETRYABLE_EXIT_CODES. Such a stage is run again, and the executor gives the
new attempt a larger budget (time and memory scale with the attempt
number). Any other failure is final on the first attempt.

Attempts follow each other immediately: a larger budget, not waiting, is
what makes the next attempt succeed.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from rnadeseq.contracts.errors import StageFailure

T = TypeVar("T")

# 104 (connection reset when a node is reclaimed), then SIGABRT, SIGKILL,
# SIGSEGV and SIGTERM reported as 128+N.
RETRYABLE_EXIT_CODES: frozenset[int] = frozenset({104, 134, 137, 139, 143})


def is_resource_kill(error: BaseException) -> bool:
    """True for stage failures whose exit code indicates a resource kill."""
    return isinstance(error, StageFailure) and error.exit_code in RETRYABLE_EXIT_CODES


class MaxRetriesExceeded(Exception):
    """Every attempt ended in a retryable failure."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")


@dataclass(frozen=True)
class RetryConfig:
    """How many times a stage may run.

    max_attempts counts every run of the stage, the first one included, so
    a run configured with ``max_retries=1`` gets ``max_attempts=2``.
    """

    max_attempts: int = 2
    delay: float = 0.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.delay < 0:
            raise ValueError(f"delay must be >= 0, got {self.delay}")

    @classmethod
    def no_retry(cls) -> "RetryConfig":
        return cls(max_attempts=1)

    @classmethod
    def from_max_retries(cls, max_retries: int) -> "RetryConfig":
        """Config for a run's ``max_retries`` budget (retries on top of the first try)."""
        return cls(max_attempts=max_retries + 1)


class RetryManager:
    """Runs an operation until it succeeds, fails for good, or runs out of attempts.

    The operation receives the 1-based attempt number, which the executor
    uses to scale the stage's resources.

    Example:
        manager = RetryManager(RetryConfig.from_max_retries(context.resources.max_retries))
        manager.execute_with_retry(attempt_once, is_retryable=is_resource_kill, on_retry=log_retry)
    """

    def __init__(self, config: RetryConfig) -> None:
        self._config = config

    @property
    def config(self) -> RetryConfig:
        return self._config

    def execute_with_retry(
        self,
        operation: Callable[[int], T],
        *,
        is_retryable: Callable[[BaseException], bool],
        on_retry: Callable[[int, BaseException], None] | None = None,
    ) -> T:
        """Call ``operation(attempt)`` under the retry policy.

        Args:
            operation: Called with the 1-based attempt number
            is_retryable: Decides whether an error earns another attempt
            on_retry: Called with (failed attempt, error) before each retry

        Returns:
            The operation's result

        Raises:
            MaxRetriesExceeded: Every attempt failed with a retryable error
            Exception: The first non-retryable error, unchanged
        """

        def before_retry(state: RetryCallState) -> None:
            if on_retry is None or state.outcome is None:
                return
            error = state.outcome.exception()
            if error is not None:
                on_retry(state.attempt_number, error)

        retrying = Retrying(
            stop=stop_after_attempt(self._config.max_attempts),
            wait=wait_fixed(self._config.delay),
            retry=retry_if_exception(is_retryable),
            before_sleep=before_retry,
            reraise=False,
        )
        try:
            for attempt in retrying:
                with attempt:
                    return operation(attempt.retry_state.attempt_number)
        except RetryError as e:
            last = e.last_attempt
            error = last.exception()
            assert error is not None, "tenacity gave up on an attempt that did not fail"
            raise MaxRetriesExceeded(last.attempt_number, error) from error

        raise RuntimeError("retry loop ended without an outcome")  # pragma: no cover
