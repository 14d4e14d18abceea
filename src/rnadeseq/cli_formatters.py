# src/rnadeseq/cli_formatters.py
"""CLI event formatter factories for pipeline execution output.

Each factory returns a dict mapping event types to handler callables,
suitable for subscribing to an EventBus.
"""

from __future__ import annotations

import json
from collections.abc import Callable

import typer

from rnadeseq.contracts.events import (
    RunFinished,
    RunStarted,
    StageCompleted,
    StageFailed,
    StageSkipped,
    StageStarted,
)
from rnadeseq.core.events import EventBusProtocol


def _duration(seconds: float) -> str:
    return f"{seconds:.2f}s" if seconds < 60 else f"{seconds / 60:.1f}m"


def create_console_formatters() -> dict[type, Callable[..., None]]:
    """Create console formatters for human-readable CLI output."""

    def _format_run_started(event: RunStarted) -> None:
        typer.echo(f"Run '{event.run_name}' ({event.mode.value}): {len(event.stages)} stage(s) scheduled")

    def _format_stage_started(event: StageStarted) -> None:
        typer.echo(f"[{event.stage}] started")

    def _format_stage_completed(event: StageCompleted) -> None:
        retries = f" after {event.attempts} attempts" if event.attempts > 1 else ""
        typer.echo(f"[{event.stage}] ✓ completed in {_duration(event.duration_seconds)}{retries}")

    def _format_stage_failed(event: StageFailed) -> None:
        status = f" (exit {event.exit_code})" if event.exit_code is not None else ""
        typer.echo(f"[{event.stage}] ✗ failed{status}: {event.cause}", err=True)

    def _format_stage_skipped(event: StageSkipped) -> None:
        typer.echo(f"[{event.stage}] ⚠ skipped: blocked by {', '.join(event.blocked_by)}")

    def _format_run_finished(event: RunFinished) -> None:
        symbol = "✓" if event.failed == 0 and event.skipped == 0 else "✗"
        typer.echo(
            f"\n{symbol} Run {event.status.value.upper()}: "
            f"✓{event.succeeded} succeeded | "
            f"✗{event.failed} failed | "
            f"⚠{event.skipped} skipped | "
            f"{event.duration_seconds:.2f}s total"
        )

    return {
        RunStarted: _format_run_started,
        StageStarted: _format_stage_started,
        StageCompleted: _format_stage_completed,
        StageFailed: _format_stage_failed,
        StageSkipped: _format_stage_skipped,
        RunFinished: _format_run_finished,
    }


def create_json_formatters() -> dict[type, Callable[..., None]]:
    """Create JSON formatters for structured CLI output (one object per line)."""

    def _format_run_started_json(event: RunStarted) -> None:
        typer.echo(json.dumps({"event": "run_started", "run_name": event.run_name, "mode": event.mode.value, "stages": list(event.stages)}))

    def _format_stage_started_json(event: StageStarted) -> None:
        typer.echo(json.dumps({"event": "stage_started", "stage": event.stage}))

    def _format_stage_completed_json(event: StageCompleted) -> None:
        typer.echo(
            json.dumps(
                {
                    "event": "stage_completed",
                    "stage": event.stage,
                    "duration_seconds": event.duration_seconds,
                    "attempts": event.attempts,
                    "outputs": list(event.outputs),
                }
            )
        )

    def _format_stage_failed_json(event: StageFailed) -> None:
        typer.echo(
            json.dumps(
                {
                    "event": "stage_failed",
                    "stage": event.stage,
                    "cause": event.cause,
                    "exit_code": event.exit_code,
                    "attempts": event.attempts,
                }
            ),
            err=True,
        )

    def _format_stage_skipped_json(event: StageSkipped) -> None:
        typer.echo(json.dumps({"event": "stage_skipped", "stage": event.stage, "blocked_by": list(event.blocked_by)}))

    def _format_run_finished_json(event: RunFinished) -> None:
        typer.echo(
            json.dumps(
                {
                    "event": "run_finished",
                    "run_name": event.run_name,
                    "status": event.status.value,
                    "succeeded": event.succeeded,
                    "failed": event.failed,
                    "skipped": event.skipped,
                    "duration_seconds": event.duration_seconds,
                }
            )
        )

    return {
        RunStarted: _format_run_started_json,
        StageStarted: _format_stage_started_json,
        StageCompleted: _format_stage_completed_json,
        StageFailed: _format_stage_failed_json,
        StageSkipped: _format_stage_skipped_json,
        RunFinished: _format_run_finished_json,
    }


def subscribe_formatters(
    event_bus: EventBusProtocol,
    formatters: dict[type, Callable[..., None]],
) -> None:
    """Subscribe all formatters to the event bus."""
    for event_type, handler in formatters.items():
        event_bus.subscribe(event_type, handler)
