# tests/conftest.py
"""Shared test fixtures.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

import logging
import os
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog
from hypothesis import Phase, Verbosity, settings

from tests.fixtures.factories import write_databases, write_reads, write_report_inputs
from tests.fixtures.runners import ScriptedRunner

# =============================================================================
# Hypothesis Configuration
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Environment isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep RNADESEQ_* variables from the developer's shell out of tests.

    Also restores the root logger, which the CLI callback reconfigures to
    write to a stream that CliRunner closes after each invocation.
    """
    for key in list(os.environ):
        if key.startswith("RNADESEQ_"):
            monkeypatch.delenv(key)
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()


# =============================================================================
# Inputs and runners
# =============================================================================


@pytest.fixture
def report_inputs(tmp_path: Path) -> dict[str, str]:
    """Every report-mode input file, as supplied values."""
    return write_report_inputs(tmp_path / "inputs")


@pytest.fixture
def reads_glob(tmp_path: Path) -> str:
    """Paired-end reads for samples a, b and c."""
    return write_reads(tmp_path / "reads", ["a", "b", "c"])


@pytest.fixture
def databases(tmp_path: Path) -> dict[str, str]:
    return write_databases(tmp_path / "db")


@pytest.fixture
def scripted_runner() -> ScriptedRunner:
    return ScriptedRunner()
