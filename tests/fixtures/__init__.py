# tests/fixtures/__init__.py
"""Shared test infrastructure for rnadeseq tests.

Available helpers:
- ScriptedRunner: CommandRunner that fakes each tool's outputs
- factories: input files, run contexts and toy stages
"""

from tests.fixtures.runners import ScriptedRunner

__all__ = [
    "ScriptedRunner",
]
